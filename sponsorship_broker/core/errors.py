"""Error taxonomy shared by handlers and collaborators."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Discriminates how a failure should be reported."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    BUSINESS_RULE = "business_rule"
    UPSTREAM = "upstream"
    INTERNAL = "internal"


class SponsorshipError(Exception):
    """Base error carrying a kind and a client-facing message."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str = "", *, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class ValidationFailed(SponsorshipError):
    """Malformed path parameter or request body."""

    kind = ErrorKind.VALIDATION


class TankNotFound(SponsorshipError):
    """Chain or gas tank absent from the registry."""

    kind = ErrorKind.NOT_FOUND


class BusinessRuleViolation(SponsorshipError):
    """Request is well formed but not allowed."""

    kind = ErrorKind.BUSINESS_RULE


class UpstreamError(SponsorshipError):
    """RPC, chain or signing failure."""

    kind = ErrorKind.UPSTREAM


class ConfigurationError(SponsorshipError):
    """Invalid tank configuration entry."""

    kind = ErrorKind.VALIDATION


def error_message(exc: BaseException, fallback: str) -> str:
    """Return the exception's message, or ``fallback`` when it has none."""
    message = getattr(exc, "message", None) or str(exc)
    return message or fallback
