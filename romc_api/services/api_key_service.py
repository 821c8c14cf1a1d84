"""API keys for machine access to the public API.

Raw keys look like ``romc_<48 hex chars>`` and are shown exactly once, at
creation. Only an HMAC-SHA256 of the key (keyed with the shared secret) is
stored, plus the last four characters for display.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from romc_api.adapters.kv.base import AbstractKeyValueStore
from romc_api.core.config import settings
from romc_api.core.errors import ConfigurationAppError, DependencyAppError, NotFoundAppError
from romc_api.models.api_key import ApiKey

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "romc_"
API_KEY_RANDOM_BYTES = 24


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_hex(API_KEY_RANDOM_BYTES)}"


def hash_api_key(raw: str, secret: str) -> str:
    """Deterministic keyed digest of a raw API key (hex)."""
    return hmac.new(secret.encode("utf-8"), raw.encode("utf-8"), hashlib.sha256).hexdigest()


def last4(raw: str) -> str:
    return raw[-4:]


def require_secret() -> str:
    """The shared secret used for key hashing.

    Raises:
        ConfigurationAppError: If SECURITY_SECRET_KEY is not set.
    """
    secret = settings.security.secret_key
    if not secret:
        logger.error("api_key.secret_not_configured")
        raise ConfigurationAppError(
            code="secret_not_configured",
            message="SECRET_KEY not configured",
            details={"hint": "Set SECURITY_SECRET_KEY"},
        )
    return secret


@dataclass(frozen=True)
class ApiKeyContext:
    """Resolved caller for an API-key authenticated request."""

    id: str
    plan: str
    rate_limit_kind: str


class ApiKeyService:
    def __init__(self, db: Session, secret: str) -> None:
        self._db = db
        self._secret = secret

    def create(
        self,
        *,
        label: str,
        plan: str,
        rate_limit_kind: str = "premium",
        active: bool = True,
    ) -> tuple[ApiKey, str]:
        """Create a key and return the row with the raw key (never stored)."""
        raw = generate_api_key()
        api_key = ApiKey(
            label=label.strip(),
            plan=plan,
            rate_limit_kind=rate_limit_kind,
            active=active,
            key_hash=hash_api_key(raw, self._secret),
            last4=last4(raw),
        )
        self._db.add(api_key)
        self._db.commit()
        logger.info(
            "api_key.created",
            extra={"api_key_id": api_key.id, "plan": plan, "tier": rate_limit_kind},
        )
        return api_key, raw

    def set_active(self, api_key_id: str, active: bool) -> ApiKey:
        """Enable or disable a key.

        Raises:
            NotFoundAppError: If no key has this id.
        """
        api_key = self._db.get(ApiKey, api_key_id)
        if api_key is None:
            raise NotFoundAppError(code="api_key_not_found", message="Not found")
        api_key.active = active
        self._db.commit()
        logger.info("api_key.toggled", extra={"api_key_id": api_key_id, "active": active})
        return api_key

    def lookup(self, raw: str) -> ApiKeyContext | None:
        """Resolve an active key; also stamps ``last_used_at``."""
        raw = raw.strip()
        if not raw:
            return None
        key_hash = hash_api_key(raw, self._secret)
        api_key = self._db.execute(
            select(ApiKey).where(ApiKey.key_hash == key_hash)
        ).scalar_one_or_none()
        if api_key is None or not api_key.active:
            logger.info("api_key.rejected", extra={"key_hash": key_hash[:16], "known": api_key is not None})
            return None

        api_key.last_used_at = datetime.now(timezone.utc)
        self._db.commit()

        kind = api_key.rate_limit_kind if api_key.rate_limit_kind in ("auth", "premium") else "anon"
        plan = api_key.plan if api_key.plan in ("PARTNER", "PREMIUM") else "FREE"
        return ApiKeyContext(id=api_key.id, plan=plan, rate_limit_kind=kind)


USAGE_KEY_TTL_SECONDS = 60 * 60 * 24 * 40


def usage_key(api_key_id: str, day: str) -> str:
    return f"apikey:usage:{api_key_id}:{day}"


async def record_api_key_usage(
    store: AbstractKeyValueStore,
    api_key_id: str,
    *,
    now: datetime | None = None,
) -> int | None:
    """Bump today's request counter for a key. Best-effort; None on store errors."""
    day = (now or datetime.now(timezone.utc)).date().isoformat()
    key = usage_key(api_key_id, day)
    try:
        count = await store.incr(key)
        if count == 1:
            await store.expire(key, USAGE_KEY_TTL_SECONDS)
    except DependencyAppError:
        logger.warning("api_key.usage_not_recorded", extra={"api_key_id": api_key_id})
        return None
    return count
