"""Key-value store factory and FastAPI dependency."""

from __future__ import annotations

import logging

from romc_api.adapters.kv.base import AbstractKeyValueStore
from romc_api.adapters.kv.in_memory import InMemoryKeyValueStore
from romc_api.adapters.kv.redis_store import RedisKeyValueStore
from romc_api.core.config import CacheSettings, settings
from romc_api.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

_store: AbstractKeyValueStore | None = None
_store_config: tuple[str, str] | None = None


def create_kv_store(cache_settings: CacheSettings) -> AbstractKeyValueStore:
    """Build the configured backend.

    Raises:
        ConfigurationAppError: If the backend name is unknown.
    """
    backend = cache_settings.backend.lower()
    if backend == "memory":
        return InMemoryKeyValueStore()
    if backend == "redis":
        return RedisKeyValueStore.from_url(
            cache_settings.redis_url,
            socket_timeout=cache_settings.socket_timeout_seconds,
        )
    raise ConfigurationAppError(
        code="unknown_cache_backend",
        message=f"Unsupported cache backend: {cache_settings.backend}",
        details={"hint": "Set CACHE_BACKEND to memory or redis"},
    )


def get_kv_store() -> AbstractKeyValueStore:
    """Return the process-wide store, rebuilding it if configuration changed."""

    global _store, _store_config

    config = (settings.cache.backend, settings.cache.redis_url)
    if _store is None or _store_config != config:
        _store = create_kv_store(settings.cache)
        _store_config = config
        logger.info("kv.initialized", extra={"backend": settings.cache.backend})
    return _store


async def close_kv_store() -> None:
    global _store, _store_config
    if _store is not None:
        await _store.close()
    _store = None
    _store_config = None
