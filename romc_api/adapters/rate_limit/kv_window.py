"""Window rate limiter backed by the shared key-value store.

Each identity owns one counter key. ``INCR`` is atomic in the store, so
concurrent requests never lose increments; the window opens with the first
increment, which also sets the key's TTL, and closes when the key expires.
"""

from __future__ import annotations

import math
import time
from typing import Callable

from romc_api.adapters.kv.base import AbstractKeyValueStore
from romc_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


class KeyValueWindowRateLimiter(AbstractRateLimiter):
    """Shared, multi-instance rate limiter.

    Store failures propagate as ``DependencyAppError``; the caller decides
    whether to fail open.
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        limit: int,
        window_seconds: int,
        prefix: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if not prefix:
            raise ValueError("prefix must be a non-empty string")

        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix
        self._store = store
        self._clock = clock

    def key_for(self, identity: str) -> str:
        return f"{self.prefix}:{identity}"

    async def consume(self, key: str) -> RateLimitResult:
        if not key:
            raise ValueError("key must be a non-empty string")

        counter_key = self.key_for(key)
        count = await self._store.incr(counter_key)
        ttl = await self._store.ttl(counter_key)
        # A counter without TTL would never reset (e.g. a crash between INCR and EXPIRE)
        if count == 1 or ttl < 0:
            await self._store.expire(counter_key, self.window_seconds)
            ttl = self.window_seconds

        now = self._clock()
        reset_at = now + ttl

        if count <= self.limit:
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - count,
                reset_at=int(math.ceil(reset_at)),
                retry_after_seconds=None,
            )

        return RateLimitResult(
            allowed=False,
            limit=self.limit,
            remaining=0,
            reset_at=int(math.ceil(reset_at)),
            retry_after_seconds=max(1, int(math.ceil(reset_at - now))),
        )
