"""Rate limiter interfaces.

The HTTP layer depends on this abstraction, never on a concrete limiter, so
tests can substitute a limiter with a fake clock or store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
        degraded: True when the decision was made without the backing store
            (fail-open); no headers are emitted in that case.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None
    degraded: bool = False

    def headers(self) -> dict[str, str]:
        """Standard ``RateLimit-*`` headers, plus ``Retry-After`` when blocked."""
        if self.degraded:
            return {}
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(max(0, self.remaining)),
            "RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed and self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    limit: int
    window_seconds: int

    @abstractmethod
    async def consume(self, key: str) -> RateLimitResult:
        """Count one request against ``key``.

        Args:
            key: Identity being limited (user id, client IP).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError
