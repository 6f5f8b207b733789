"""Core utilities and helpers."""

from .config import Config, get_config, load_tank_configurations
from .errors import (
    BusinessRuleViolation,
    ConfigurationError,
    ErrorKind,
    SponsorshipError,
    TankNotFound,
    UpstreamError,
    ValidationFailed,
)
from .logging_utils import configure_logging
from .utils import utcnow

__all__ = [
    "BusinessRuleViolation",
    "Config",
    "ConfigurationError",
    "ErrorKind",
    "SponsorshipError",
    "TankNotFound",
    "UpstreamError",
    "ValidationFailed",
    "configure_logging",
    "get_config",
    "load_tank_configurations",
    "utcnow",
]
