"""In-memory key-value store.

Notes:
- Per-process only: suitable for tests and single-worker development.
- Thread-safe: uses a lock around shared state.
- Expiry is evaluated lazily against an injectable clock.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from romc_api.adapters.kv.base import TTL_MISSING, TTL_PERSISTENT, AbstractKeyValueStore


@dataclass
class _Entry:
    value: str
    expires_at: float | None


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Dictionary-backed store honoring per-key TTLs."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry else None

    async def set(self, key: str, value: str, *, ex: int | None = None) -> None:
        if ex is not None and ex < 1:
            raise ValueError("ex must be >= 1")
        with self._lock:
            expires_at = self._clock() + ex if ex is not None else None
            self._entries[key] = _Entry(value=str(value), expires_at=expires_at)

    async def incr(self, key: str) -> int:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                self._entries[key] = _Entry(value="1", expires_at=None)
                return 1
            try:
                count = int(entry.value) + 1
            except ValueError as exc:
                raise ValueError(f"value at {key!r} is not an integer") from exc
            entry.value = str(count)
            return count

    async def expire(self, key: str, seconds: int) -> bool:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            entry.expires_at = self._clock() + seconds
            return True

    async def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return TTL_MISSING
            if entry.expires_at is None:
                return TTL_PERSISTENT
            return max(0, int(math.ceil(entry.expires_at - self._clock())))

    async def delete(self, key: str) -> int:
        with self._lock:
            return 1 if self._entries.pop(key, None) is not None else 0

    def clear(self) -> None:
        """Drop every key (test helper)."""
        with self._lock:
            self._entries.clear()
