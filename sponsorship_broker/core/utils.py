"""Utility functions."""

import re
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from web3 import Web3

MAX_SAFE_INTEGER = 2**53 - 1

# Receipt and log fields kept as JSON numbers.
NUMERIC_FIELDS = frozenset({"status", "type", "transactionIndex", "logIndex"})

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def utcnow() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def is_address(value: Optional[str]) -> bool:
    """Return True for a 0x-prefixed 20 byte hex address.

    All-lowercase and all-uppercase inputs are accepted as is; mixed case
    must carry a valid EIP-55 checksum.
    """
    return isinstance(value, str) and value.startswith("0x") and Web3.is_address(value)


def is_hex_address(value: Optional[str]) -> bool:
    """Return True for anything shaped like an address, ignoring the checksum."""
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def is_hash(value: Optional[str]) -> bool:
    """Return True for a 0x-prefixed 32 byte hex string."""
    return isinstance(value, str) and bool(_HASH_RE.match(value))


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    """Case-insensitive address comparison."""
    if left is None or right is None:
        return False
    return left.lower() == right.lower()


def parse_chain_id(value: Optional[str]) -> Optional[int]:
    """Parse a base-10 chain id, returning None when it is missing or invalid."""
    if value is None:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    return int(value)


def format_units(value: int, decimals: int) -> str:
    """Scale an integer amount of base units into a decimal string.

    Trailing fractional zeros are dropped, so ``format_units(5_000_000, 6)``
    gives ``"5"`` and ``format_units(1_250_000, 6)`` gives ``"1.25"``.
    """
    negative = value < 0
    digits = str(abs(value)).rjust(decimals + 1, "0")
    split = len(digits) - decimals
    integer, fraction = digits[:split], digits[split:].rstrip("0")
    text = f"{integer}.{fraction}" if fraction else integer
    return f"-{text}" if negative else text


def parse_units(value: str, decimals: int) -> int:
    """Convert a decimal string into integer base units without rounding."""
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount '{value}'.") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount '{value}'.")
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount '{value}' has more than {decimals} decimals.")
    return int(scaled)


def to_jsonable(value: Any, key: Optional[str] = None) -> Any:
    """Convert chain data into JSON-safe values without losing precision.

    Bytes become 0x hex strings. Integers become decimal strings, so a field
    keeps one JSON type whatever its size, except the small counters and flags
    in ``NUMERIC_FIELDS``.
    """
    if isinstance(value, Mapping):
        return {str(name): to_jsonable(item, str(name)) for name, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        if key in NUMERIC_FIELDS and abs(value) <= MAX_SAFE_INTEGER:
            return value
        return str(value)
    return value
