"""Configuration management."""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from ..models.tank import ChainDescriptor, GasTankConfiguration
from .errors import ConfigurationError
from .utils import is_address, parse_units

logger = logging.getLogger(__name__)

ENTRY_POINT_V07_ADDRESS = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
DEFAULT_TOKEN_DECIMALS = 6


@dataclass
class Config:
    """Application configuration."""

    host: str
    port: int
    api_prefix: str
    log_level: str
    gas_tanks_file: str
    default_private_key: str
    account_factory_address: str
    entry_point_address: str
    scan_link_template: str
    rpc_timeout_seconds: float

    def scan_link(self, tx_hash: str) -> str:
        return self.scan_link_template.format(hash=tx_hash)


def get_config(env_file: Optional[str] = None) -> Config:
    """Load configuration from environment variables (and ``.env`` if present)."""
    load_dotenv(env_file)
    return Config(
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3004")),
        api_prefix=os.getenv("API_PREFIX", "/v1"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        gas_tanks_file=os.getenv("GAS_TANKS_FILE", "gas_tanks.json"),
        default_private_key=os.getenv("GAS_TANK_PRIVATE_KEY", ""),
        account_factory_address=os.getenv("ACCOUNT_FACTORY_ADDRESS", ""),
        entry_point_address=os.getenv("ENTRY_POINT_ADDRESS", ENTRY_POINT_V07_ADDRESS),
        scan_link_template=os.getenv(
            "SCAN_LINK_TEMPLATE", "https://meescan.biconomy.io/details/{hash}"
        ),
        rpc_timeout_seconds=float(os.getenv("RPC_TIMEOUT_SECONDS", "30")),
    )


def parse_tank_configuration(
    entry: dict, default_private_key: str = ""
) -> GasTankConfiguration:
    """Build a ``GasTankConfiguration`` from one JSON entry.

    ``amountToDeposit`` is a human readable amount scaled by ``tokenDecimals``.
    """
    if not isinstance(entry, dict):
        raise ConfigurationError("Gas tank entry must be an object")

    try:
        chain_id = int(entry["chainId"])
        token_address = str(entry["tokenAddress"]).strip()
        rpc_url = str(entry["rpcUrl"]).strip()
        raw_amount = entry["amountToDeposit"]
    except KeyError as exc:
        raise ConfigurationError(f"Gas tank entry is missing {exc.args[0]}") from exc
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid gas tank entry: {exc}") from exc

    if chain_id <= 0:
        raise ConfigurationError(f"Invalid chain id {chain_id}")
    if not is_address(token_address):
        raise ConfigurationError(f"Invalid token address '{token_address}'")
    if not rpc_url:
        raise ConfigurationError(f"Missing RPC URL for chain {chain_id}")

    try:
        decimals = int(entry.get("tokenDecimals", DEFAULT_TOKEN_DECIMALS))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid token decimals for chain {chain_id}") from exc
    if decimals < 0:
        raise ConfigurationError(f"Invalid token decimals for chain {chain_id}")

    try:
        amount = parse_units(str(raw_amount), decimals)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    if amount <= 0:
        raise ConfigurationError(f"Deposit amount for chain {chain_id} must be positive")

    private_key = str(entry.get("privateKey") or default_private_key).strip()
    if not private_key:
        raise ConfigurationError(f"No private key configured for chain {chain_id}")

    return GasTankConfiguration(
        token_address=token_address,
        chain=ChainDescriptor(chain_id=chain_id, name=str(entry.get("chainName", ""))),
        amount_to_deposit=amount,
        rpc_url=rpc_url,
        private_key=private_key,
    )


def load_tank_configurations(
    path: str, default_private_key: str = ""
) -> List[GasTankConfiguration]:
    """Read the list of gas tank configurations from a JSON file."""
    file_path = Path(path)
    if not file_path.exists():
        logger.warning("Gas tank configuration file %s not found, no tanks configured", path)
        return []

    try:
        entries = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc

    if not isinstance(entries, list):
        raise ConfigurationError(f"{path} must contain a list of gas tank entries")

    configurations: List[GasTankConfiguration] = []
    for position, entry in enumerate(entries):
        try:
            configurations.append(parse_tank_configuration(entry, default_private_key))
        except ConfigurationError as exc:
            logger.error("Skipping gas tank entry %d in %s: %s", position, path, exc)
    return configurations
