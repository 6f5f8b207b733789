"""Sponsorship request handlers.

Each handler reads the registry, delegates one operation to a tank's account
and returns a JSON-ready value. Failures are raised as ``SponsorshipError``
subclasses and turned into the error envelope by the HTTP layer.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..core.errors import BusinessRuleViolation, TankNotFound, ValidationFailed
from ..core.utils import format_units, is_address, is_hash, parse_chain_id, same_address, to_jsonable
from ..models import GasTank, GasTankInfo, SponsorshipQuote
from .policy import CallerContext, SponsorshipPolicy
from .registry import TankRegistry

logger = logging.getLogger(__name__)

INFO_FALLBACK = "Failed to fetch gas tank info"
NONCE_FALLBACK = "Failed to fetch gas tank nonce"
RECEIPT_FALLBACK = "Failed to fetch transaction receipt"
SIGN_FALLBACK = "Failed to sign sponsorship quote"


def _require_chain_id(chain_id: Optional[str]) -> int:
    parsed = parse_chain_id(chain_id)
    if parsed is None:
        raise ValidationFailed("Invalid chain id")
    return parsed


def _require_tank(registry: TankRegistry, chain_id: int, gas_tank_address: Optional[str]) -> GasTank:
    if not gas_tank_address or not is_address(gas_tank_address):
        raise ValidationFailed("Invalid gas tank address")
    tank = registry.find(chain_id, gas_tank_address)
    if tank is None:
        raise TankNotFound("Gas tank not found")
    return tank


async def _tank_info(tank: GasTank) -> GasTankInfo:
    token = await tank.account.get_balance(tank.token_address)
    return GasTankInfo(
        chain_id=tank.chain_id,
        token_address=tank.token_address,
        balance=format_units(token.balance, token.decimals),
        decimals=token.decimals,
        gas_tank_address=tank.gas_tank_address,
    )


async def get_info(registry: TankRegistry) -> Dict[str, List[dict]]:
    """Balances of every registered tank, grouped by chain id."""
    result: Dict[str, List[dict]] = {}
    for chain_id, tanks in registry.items():
        infos = await asyncio.gather(*(_tank_info(tank) for tank in tanks))
        result[str(chain_id)] = [info.to_dict() for info in infos]
    return result


async def get_nonce(
    registry: TankRegistry, chain_id: Optional[str], gas_tank_address: Optional[str]
) -> Dict[str, str]:
    """Current nonce and nonce key of a tank, as decimal strings."""
    tank = _require_tank(registry, _require_chain_id(chain_id), gas_tank_address)
    nonce = await tank.account.get_nonce()
    return {"nonceKey": str(nonce.nonce_key), "nonce": str(nonce.nonce)}


async def get_receipt(
    registry: TankRegistry, chain_id: Optional[str], tx_hash: Optional[str]
) -> Dict[str, Any]:
    """Transaction receipt fetched through the chain's first tank.

    Only the canonical tank of the chain is used, so every tank on a chain is
    assumed to talk to the same node.
    """
    parsed_chain_id = _require_chain_id(chain_id)
    if not tx_hash or not is_hash(tx_hash):
        raise ValidationFailed("Invalid transaction hash")

    tank = registry.first(parsed_chain_id)
    if tank is None:
        raise TankNotFound("No gas tanks found")

    receipt = await tank.account.public_client.get_transaction_receipt(tx_hash)
    return to_jsonable(receipt)


async def sign_quote(
    registry: TankRegistry,
    policy: SponsorshipPolicy,
    chain_id: Optional[str],
    gas_tank_address: Optional[str],
    payload: Any,
    client_host: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Sign a sponsorship quote with the requested tank."""
    parsed_chain_id = _require_chain_id(chain_id)
    tank = _require_tank(registry, parsed_chain_id, gas_tank_address)

    if not isinstance(payload, dict):
        raise ValidationFailed("Invalid sponsorship quote")
    try:
        quote = SponsorshipQuote(**payload)
    except ValidationError as exc:
        logger.debug("Rejected sponsorship quote: %s", exc)
        raise ValidationFailed("Invalid sponsorship quote") from exc

    if not same_address(quote.paymentInfo.token, tank.token_address):
        raise BusinessRuleViolation("Sponsorship token not supported.")

    caller = CallerContext(
        chain_id=parsed_chain_id,
        gas_tank_address=tank.gas_tank_address,
        client_host=client_host,
        headers=headers or {},
    )
    decision = await policy.authorize(payload, caller)
    if not decision.allowed:
        raise BusinessRuleViolation(decision.reason or "Sponsorship not authorized")

    signed = await tank.account.sign_sponsorship(payload)
    logger.info(
        "[SIGN] Sponsored quote on chain %s with gas tank %s",
        parsed_chain_id,
        tank.gas_tank_address,
    )
    return signed
