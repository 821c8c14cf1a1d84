"""Feature flags (kill switches) stored in the key-value store.

Flags default to enabled unless they are risky, in which case they default
to disabled. A store outage falls back to the default, so a risky feature
can never be switched on by an outage.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated

from fastapi import Depends

from romc_api.adapters.kv.base import AbstractKeyValueStore
from romc_api.adapters.kv.factory import get_kv_store
from romc_api.core.errors import DependencyAppError

logger = logging.getLogger(__name__)


class FeatureFlag(str, Enum):
    CLAIMS = "CLAIMS"
    CORRECTIONS = "CORRECTIONS"
    API_ACCESS = "API_ACCESS"
    CRON_AUDIT_VERIFY = "CRON_AUDIT_VERIFY"
    READ_ONLY_MODE = "READ_ONLY_MODE"


# Flags that are off unless explicitly switched on
DEFAULT_DISABLED_FLAGS: frozenset[FeatureFlag] = frozenset({FeatureFlag.READ_ONLY_MODE})


def default_value(flag: FeatureFlag) -> bool:
    return flag not in DEFAULT_DISABLED_FLAGS


def flag_key(flag: FeatureFlag) -> str:
    return f"flag:{flag.value}"


def parse_flag(name: str) -> FeatureFlag:
    """Look up a flag by name.

    Raises:
        ValueError: If ``name`` is not a known flag.
    """
    try:
        return FeatureFlag(name)
    except ValueError:
        raise ValueError(f"unknown feature flag: {name}") from None


class FlagService:
    def __init__(self, store: AbstractKeyValueStore) -> None:
        self._store = store

    async def get(self, flag: FeatureFlag) -> bool:
        try:
            raw = await self._store.get(flag_key(flag))
        except DependencyAppError:
            logger.error("flags.read_failed", extra={"flag": flag.value})
            return default_value(flag)
        if raw is None:
            return default_value(flag)
        return raw == "1"

    async def set(self, flag: FeatureFlag, value: bool) -> None:
        """Persist a flag value; store errors propagate to the admin caller."""
        await self._store.set(flag_key(flag), "1" if value else "0")
        logger.info("flags.updated", extra={"flag": flag.value, "value": value})

    async def all(self) -> dict[str, bool]:
        return {flag.value: await self.get(flag) for flag in FeatureFlag}


def get_flag_service(
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
) -> FlagService:
    return FlagService(store)
