"""Startup initialization of sponsorship gas tanks."""

import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from eth_account import Account

from ..core.config import Config
from ..core.errors import ConfigurationError
from ..models import GasTank, GasTankConfiguration
from .account import ERC20_ABI, GasTankAccount
from .registry import TankRegistry

logger = logging.getLogger(__name__)

AccountFactory = Callable[[GasTankConfiguration], Awaitable[GasTankAccount]]

# 25% on top of the deposit is kept for deployment fees.
DEPOSIT_BUFFER_NUMERATOR = 125
DEPOSIT_BUFFER_DENOMINATOR = 100


def required_funding(amount_to_deposit: int) -> int:
    """Owner balance needed to deploy a tank with ``amount_to_deposit``."""
    return amount_to_deposit * DEPOSIT_BUFFER_NUMERATOR // DEPOSIT_BUFFER_DENOMINATOR


async def initialize_sponsorship(
    tank_configs: Iterable[GasTankConfiguration],
    registry: TankRegistry,
    account_factory: AccountFactory,
    config: Optional[Config] = None,
) -> List[GasTank]:
    """Deploy (when funded) and register one gas tank per configuration.

    A failure for one configuration is logged and the next one is processed.
    Returns the tanks added to the registry by this call.
    """
    added: List[GasTank] = []
    for tank_config in tank_configs:
        try:
            tank = await _initialize_tank(tank_config, registry, account_factory, config)
        except Exception:
            logger.exception(
                "[TANK] Initialization failed for chain %s token %s",
                tank_config.chain_id,
                tank_config.token_address,
            )
            continue
        if tank is not None:
            added.append(tank)
    return added


async def _initialize_tank(
    tank_config: GasTankConfiguration,
    registry: TankRegistry,
    account_factory: AccountFactory,
    config: Optional[Config],
) -> Optional[GasTank]:
    chain_id = tank_config.chain_id
    token_address = tank_config.token_address

    account = await account_factory(tank_config)
    gas_tank_address = await account.get_address()

    if registry.find(chain_id, gas_tank_address, token_address) is not None:
        logger.info("[TANK] Gas tank %s on chain %s already registered", gas_tank_address, chain_id)
        return None

    try:
        owner_address = Account.from_key(tank_config.private_key).address
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(f"Invalid private key for chain {chain_id}") from exc

    logger.info("[TANK] Gas tank (%s) EOA account address: %s", chain_id, owner_address)
    logger.info("[TANK] Gas tank (%s) account address: %s", chain_id, gas_tank_address)

    if not await account.is_deployed():
        balance = await account.public_client.read_contract(
            token_address, ERC20_ABI, "balanceOf", [owner_address]
        )
        required = required_funding(tank_config.amount_to_deposit)
        if int(balance) < required:
            logger.warning(
                "[TANK] Not enough balance to deploy gas tank on chain %s "
                "(have %s, need %s). Deployment is skipped",
                chain_id,
                balance,
                required,
            )
            return None
        logger.info("[TANK] Gas tank account on chain %s is being deployed", chain_id)

    result = await account.deploy(token_address, tank_config.amount_to_deposit)
    if result.hash:
        link = config.scan_link(result.hash) if config else result.hash
        logger.info("[TANK] Gas tank deployment transaction link: %s", link)
    else:
        logger.info("[TANK] Gas tank account on chain %s was already deployed", chain_id)

    tank = GasTank(
        chain_id=chain_id,
        token_address=token_address,
        gas_tank_address=gas_tank_address,
        account=account,
    )
    if not await registry.add(tank):
        logger.info("[TANK] Gas tank %s on chain %s already registered", gas_tank_address, chain_id)
        return None
    return tank
