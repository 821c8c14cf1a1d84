"""In-memory window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
  Only used where that is acceptable (machine endpoints already behind a
  shared secret).
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from romc_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


@dataclass
class _WindowState:
    reset_at: float
    count: int


class InMemoryWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping one window per key in a local dict.

    A window opens on the first request for a key and lasts
    ``window_seconds``; the first request after it closes opens a new one
    with a count of 1.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of allowed requests per window.
            window_seconds: Window length in seconds.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}

    async def consume(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and decide whether it may proceed.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()

        with self._lock:
            state = self._state_by_key.get(key)
            if state is None or now >= state.reset_at:
                state = _WindowState(reset_at=now + self.window_seconds, count=1)
                self._state_by_key[key] = state
                return RateLimitResult(
                    allowed=True,
                    limit=self.limit,
                    remaining=self.limit - 1,
                    reset_at=int(math.ceil(state.reset_at)),
                    retry_after_seconds=None,
                )

            if state.count >= self.limit:
                return RateLimitResult(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    reset_at=int(math.ceil(state.reset_at)),
                    retry_after_seconds=max(1, int(math.ceil(state.reset_at - now))),
                )

            state.count += 1
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=max(0, self.limit - state.count),
                reset_at=int(math.ceil(state.reset_at)),
                retry_after_seconds=None,
            )

    def reset(self) -> None:
        """Forget every window (test helper)."""
        with self._lock:
            self._state_by_key.clear()
