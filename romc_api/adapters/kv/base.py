"""Key-value store interface.

The method set mirrors the small subset of Redis commands the guard layer
needs. Backends must raise ``DependencyAppError`` when the store cannot be
reached so callers can apply their own fail-open/fail-closed policy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

# Sentinel TTL values, same meaning as Redis TTL replies
TTL_MISSING = -2
TTL_PERSISTENT = -1


class AbstractKeyValueStore(ABC):
    """Interface for async key-value stores with per-key expiry."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored at ``key`` or None."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str, *, ex: int | None = None) -> None:
        """Store ``value`` at ``key``, replacing any previous value and TTL.

        Args:
            key: Key to write.
            value: String value.
            ex: Optional expiry in seconds.
        """
        raise NotImplementedError

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Atomically increment the integer at ``key`` (missing counts as 0).

        An existing TTL is preserved.
        """
        raise NotImplementedError

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool:
        """Set a TTL on ``key``. Returns False if the key does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Remaining TTL in whole seconds.

        Returns:
            ``TTL_MISSING`` (-2) when the key does not exist,
            ``TTL_PERSISTENT`` (-1) when it has no expiry.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Delete ``key``. Returns the number of keys removed."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""
        return None
