"""Service layer modules."""

from .account import (
    AccountNonce,
    DeployResult,
    GasTankAccount,
    TokenBalance,
    Web3GasTankAccount,
    create_gas_tank_account,
)
from .orchestrator import initialize_sponsorship, required_funding
from .policy import AllowAllPolicy, CallerContext, PolicyDecision, SponsorshipPolicy
from .registry import TankRegistry

__all__ = [
    "AccountNonce",
    "AllowAllPolicy",
    "CallerContext",
    "DeployResult",
    "GasTankAccount",
    "PolicyDecision",
    "SponsorshipPolicy",
    "TankRegistry",
    "TokenBalance",
    "Web3GasTankAccount",
    "create_gas_tank_account",
    "initialize_sponsorship",
    "required_funding",
]
