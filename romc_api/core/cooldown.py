"""Per-(kind, user, resource) cooldowns.

A cooldown is just a key with a TTL: while ``cooldown:{kind}:{user}:{resource}``
exists the action is blocked and the key's remaining TTL is reported to the
caller. ``commit`` must only run after the guarded action succeeded so a
failed attempt can be retried immediately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Literal

from fastapi import Depends

from romc_api.adapters.kv.base import AbstractKeyValueStore
from romc_api.adapters.kv.factory import get_kv_store
from romc_api.core.errors import DependencyAppError

logger = logging.getLogger(__name__)

CooldownKind = Literal["claim", "submission"]

COOLDOWN_SECONDS: dict[str, int] = {
    "claim": 60 * 60 * 24 * 30,
    "submission": 60 * 60 * 24 * 7,
}


def cooldown_key(kind: CooldownKind, user_id: str, resource_id: str) -> str:
    return f"cooldown:{kind}:{user_id}:{resource_id}"


def cooldown_seconds(kind: CooldownKind) -> int:
    try:
        return COOLDOWN_SECONDS[kind]
    except KeyError:
        raise ValueError(f"unknown cooldown kind: {kind}") from None


@dataclass(frozen=True)
class CooldownResult:
    ok: bool
    remaining_seconds: int


class CooldownGuard:
    """Check and commit cooldowns against the shared key-value store."""

    def __init__(self, store: AbstractKeyValueStore) -> None:
        self._store = store

    async def remaining_seconds(self, kind: CooldownKind, user_id: str, resource_id: str) -> int:
        """Seconds left on the cooldown, 0 when none is active.

        An unreachable store reads as "no cooldown".
        """
        key = cooldown_key(kind, user_id, resource_id)
        try:
            ttl = await self._store.ttl(key)
        except DependencyAppError:
            logger.error("cooldown.store_error", extra={"kind": kind, "operation": "ttl"})
            return 0
        return ttl if ttl > 0 else 0

    async def check(self, kind: CooldownKind, user_id: str, resource_id: str) -> CooldownResult:
        remaining = await self.remaining_seconds(kind, user_id, resource_id)
        if remaining > 0:
            logger.info("cooldown.active", extra={"kind": kind, "remaining_s": remaining})
            return CooldownResult(ok=False, remaining_seconds=remaining)
        return CooldownResult(ok=True, remaining_seconds=0)

    async def commit(self, kind: CooldownKind, user_id: str, resource_id: str) -> None:
        """Start the cooldown after a successful action.

        The action already happened, so a store failure is logged rather than
        surfaced to the caller.
        """
        key = cooldown_key(kind, user_id, resource_id)
        try:
            await self._store.set(key, "1", ex=cooldown_seconds(kind))
        except DependencyAppError:
            logger.error("cooldown.store_error", extra={"kind": kind, "operation": "set"})


def get_cooldown_guard(
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
) -> CooldownGuard:
    return CooldownGuard(store)
