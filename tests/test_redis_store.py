"""Unit tests for the Redis store wrapper (client mocked)."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from romc_api.adapters.kv.redis_store import RedisKeyValueStore
from romc_api.core.errors import DependencyAppError


@pytest.fixture
def redis_client() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def store(redis_client: AsyncMock) -> RedisKeyValueStore:
    return RedisKeyValueStore(redis_client)


async def test_get_passes_through(store, redis_client) -> None:
    redis_client.get.return_value = "v"

    assert await store.get("k") == "v"
    redis_client.get.assert_awaited_once_with("k")


async def test_set_forwards_expiry(store, redis_client) -> None:
    await store.set("k", "v", ex=30)

    redis_client.set.assert_awaited_once_with("k", "v", ex=30)


async def test_incr_and_ttl_return_ints(store, redis_client) -> None:
    redis_client.incr.return_value = 3
    redis_client.ttl.return_value = 42

    assert await store.incr("c") == 3
    assert await store.ttl("c") == 42


@pytest.mark.parametrize("operation", ["get", "incr", "ttl", "delete"])
async def test_redis_errors_become_dependency_errors(store, redis_client, operation) -> None:
    getattr(redis_client, operation).side_effect = RedisConnectionError("connection refused")

    with pytest.raises(DependencyAppError) as exc_info:
        await getattr(store, operation)("k")

    assert exc_info.value.code == "kv_unavailable"
    assert exc_info.value.status_code == 503


async def test_expire_error_becomes_dependency_error(store, redis_client) -> None:
    redis_client.expire.side_effect = RedisConnectionError("timeout")

    with pytest.raises(DependencyAppError):
        await store.expire("k", 10)


async def test_close_releases_client(store, redis_client) -> None:
    await store.close()

    redis_client.aclose.assert_awaited_once()
