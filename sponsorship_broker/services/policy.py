"""Authorization hook consulted before a quote is signed."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


@dataclass(frozen=True)
class CallerContext:
    """What is known about the client asking for a sponsorship."""

    chain_id: int
    gas_tank_address: str
    client_host: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "PolicyDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "PolicyDecision":
        return cls(allowed=False, reason=reason)


class SponsorshipPolicy(Protocol):
    """Decides whether a caller may have a quote sponsored.

    Project verification and spend limits belong here.
    """

    async def authorize(
        self, quote: Dict[str, Any], caller: CallerContext
    ) -> PolicyDecision: ...


class AllowAllPolicy:
    """Default policy: every well-formed quote is signed."""

    async def authorize(
        self, quote: Dict[str, Any], caller: CallerContext
    ) -> PolicyDecision:
        return PolicyDecision.allow()
