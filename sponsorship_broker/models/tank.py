"""Gas tank configuration and registry entry models."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..services.account import GasTankAccount


@dataclass(frozen=True)
class ChainDescriptor:
    """Target chain of a gas tank."""

    chain_id: int
    name: str = ""


@dataclass(frozen=True)
class GasTankConfiguration:
    """One (chain, token) pair to initialize on startup."""

    token_address: str
    chain: ChainDescriptor
    amount_to_deposit: int
    rpc_url: str
    private_key: str = field(repr=False)

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id


@dataclass
class GasTank:
    """A deployed or deployable gas tank held by the registry."""

    chain_id: int
    token_address: str
    gas_tank_address: str
    account: "GasTankAccount" = field(repr=False, compare=False)


@dataclass
class GasTankInfo:
    """Balance report for one gas tank."""

    chain_id: int
    token_address: str
    balance: str
    decimals: int
    gas_tank_address: str

    def to_dict(self) -> dict:
        return {
            "chainId": self.chain_id,
            "token": {
                "address": self.token_address,
                "balance": self.balance,
                "decimals": self.decimals,
            },
            "gasTankAddress": self.gas_tank_address,
        }
