"""Data models for the sponsorship service."""

from .quote import PaymentInfo, SponsorshipQuote
from .tank import ChainDescriptor, GasTank, GasTankConfiguration, GasTankInfo

__all__ = [
    "ChainDescriptor",
    "GasTank",
    "GasTankConfiguration",
    "GasTankInfo",
    "PaymentInfo",
    "SponsorshipQuote",
]
