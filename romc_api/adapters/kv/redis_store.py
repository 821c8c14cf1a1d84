"""Redis-backed key-value store (shared across workers and instances)."""

from __future__ import annotations

import logging

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from romc_api.adapters.kv.base import AbstractKeyValueStore
from romc_api.core.errors import DependencyAppError

logger = logging.getLogger(__name__)


class RedisKeyValueStore(AbstractKeyValueStore):
    """Thin wrapper over ``redis.asyncio`` translating failures.

    Every Redis error surfaces as ``DependencyAppError`` so guards apply one
    failure policy regardless of the backend.
    """

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float | None = None) -> "RedisKeyValueStore":
        client = aioredis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def _unavailable(self, op: str, exc: Exception) -> DependencyAppError:
        logger.error(
            "kv.unavailable",
            extra={"operation": op, "error_type": type(exc).__name__, "error_msg": str(exc)},
        )
        return DependencyAppError(
            code="kv_unavailable",
            message="Key-value store is unavailable",
            details={"context": {"operation": op}},
        )

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise self._unavailable("get", exc) from exc

    async def set(self, key: str, value: str, *, ex: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ex)
        except RedisError as exc:
            raise self._unavailable("set", exc) from exc

    async def incr(self, key: str) -> int:
        try:
            return int(await self._client.incr(key))
        except RedisError as exc:
            raise self._unavailable("incr", exc) from exc

    async def expire(self, key: str, seconds: int) -> bool:
        try:
            return bool(await self._client.expire(key, seconds))
        except RedisError as exc:
            raise self._unavailable("expire", exc) from exc

    async def ttl(self, key: str) -> int:
        try:
            return int(await self._client.ttl(key))
        except RedisError as exc:
            raise self._unavailable("ttl", exc) from exc

    async def delete(self, key: str) -> int:
        try:
            return int(await self._client.delete(key))
        except RedisError as exc:
            raise self._unavailable("delete", exc) from exc

    async def close(self) -> None:
        await self._client.aclose()
