"""Rate limiting dependencies for FastAPI routes.

This module wires the rate limiting adapters into the HTTP layer.

Tiers (limits per window, configurable through ``RATE_LIMIT_*``):
- ``anon``: lowest ceiling, keyed by client IP
- ``auth``: keyed by user id
- ``premium``: highest ceiling, keyed by user id
- ``admin``: very low fixed ceiling, keyed by client IP regardless of identity

Costly endpoints use the ``expensive`` variant of the anon/auth/premium tiers.

``RateLimit-*`` headers are attached to successful responses and to every
error response produced later in the same request (see
``exception_handlers``); blocked requests also carry ``Retry-After``.

Failure policy: when the counter store is unreachable the request is allowed
and the error logged. Admin access is already gated by session plus
allowlist, so availability wins over strict throttling.
"""

from __future__ import annotations

import hashlib
import logging
import math
import time
from dataclasses import dataclass
from typing import Annotated, Callable, Literal

from fastapi import Depends, Request, Response

from romc_api.adapters.kv.base import AbstractKeyValueStore
from romc_api.adapters.kv.factory import get_kv_store
from romc_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from romc_api.adapters.rate_limit.in_memory import InMemoryWindowRateLimiter
from romc_api.adapters.rate_limit.kv_window import KeyValueWindowRateLimiter
from romc_api.core.auth import SessionUser, get_optional_session, require_api_key
from romc_api.core.config import settings
from romc_api.core.errors import DependencyAppError, RateLimitedAppError
from romc_api.services.api_key_service import ApiKeyContext

logger = logging.getLogger(__name__)

RateLimitTier = Literal["anon", "auth", "premium", "admin"]

RATE_LIMIT_HEADERS_STATE = "rate_limit_headers"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Ceiling, window and failure policy for one tier."""

    name: str
    limit: int
    window_seconds: int
    fail_open: bool = True


def policy_for(tier: RateLimitTier, *, expensive: bool = False) -> RateLimitPolicy:
    """Resolve the configured policy for a tier.

    Raises:
        ValueError: For an unknown tier, or ``expensive`` with the admin tier.
    """
    cfg = settings.rate_limit
    if tier == "admin":
        if expensive:
            raise ValueError("admin tier has no expensive variant")
        return RateLimitPolicy("admin", cfg.admin_limit, cfg.admin_window_seconds, fail_open=True)

    standard = {"anon": cfg.anon_limit, "auth": cfg.auth_limit, "premium": cfg.premium_limit}
    costly = {
        "anon": cfg.expensive_anon_limit,
        "auth": cfg.expensive_auth_limit,
        "premium": cfg.expensive_premium_limit,
    }
    if tier not in standard:
        raise ValueError(f"unknown rate limit tier: {tier}")
    if expensive:
        return RateLimitPolicy(f"expensive:{tier}", costly[tier], cfg.window_seconds, cfg.fail_open)
    return RateLimitPolicy(tier, standard[tier], cfg.window_seconds, cfg.fail_open)


def client_ip(request: Request) -> str:
    """Best-effort client address: first X-Forwarded-For hop, X-Real-IP, peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit identity for logging without exposing it."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def build_limiter(
    store: AbstractKeyValueStore,
    policy: RateLimitPolicy,
    *,
    clock: Callable[[], float] = time.time,
) -> KeyValueWindowRateLimiter:
    return KeyValueWindowRateLimiter(
        store,
        limit=policy.limit,
        window_seconds=policy.window_seconds,
        prefix=f"ratelimit:{policy.name}",
        clock=clock,
    )


async def rate_limit(
    store: AbstractKeyValueStore,
    identity: str,
    tier: RateLimitTier,
    *,
    expensive: bool = False,
    clock: Callable[[], float] = time.time,
) -> RateLimitResult:
    """Count one request for ``identity`` under ``tier``.

    Never raises for store outages: depending on the policy the result is a
    degraded allow (fail open) or a block (fail closed).
    """
    policy = policy_for(tier, expensive=expensive)
    limiter = build_limiter(store, policy, clock=clock)
    key_hash = _hash_limiter_key(identity)

    try:
        result = await limiter.consume(identity)
    except DependencyAppError as exc:
        now = clock()
        logger.error(
            "rate_limit.store_error",
            extra={
                "tier": policy.name,
                "key_hash": key_hash,
                "fail_open": policy.fail_open,
                "error_code": exc.code,
            },
        )
        if policy.fail_open:
            return RateLimitResult(
                allowed=True,
                limit=policy.limit,
                remaining=policy.limit,
                reset_at=int(math.ceil(now + policy.window_seconds)),
                retry_after_seconds=None,
                degraded=True,
            )
        return RateLimitResult(
            allowed=False,
            limit=policy.limit,
            remaining=0,
            reset_at=int(math.ceil(now + policy.window_seconds)),
            retry_after_seconds=policy.window_seconds,
        )

    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "tier": policy.name,
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
    else:
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "tier": policy.name,
                "key_hash": key_hash,
                "limit": result.limit,
                "window_s": policy.window_seconds,
                "retry_after_s": result.retry_after_seconds,
            },
        )
    return result


def apply_rate_limit_result(request: Request, response: Response, result: RateLimitResult) -> None:
    """Attach headers for this request, raising 429 when blocked.

    Raises:
        RateLimitedAppError: When ``result`` is not allowed.
    """
    headers = result.headers()
    setattr(request.state, RATE_LIMIT_HEADERS_STATE, headers)
    if result.allowed:
        for name, value in headers.items():
            response.headers[name] = value
        return

    raise RateLimitedAppError(
        code="rate_limited",
        message="Rate limit exceeded",
        details={"retry_after": result.retry_after_seconds or 0, "headers": headers},
    )


async def enforce_user_rate_limit(
    request: Request,
    response: Response,
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
    user: Annotated[SessionUser | None, Depends(get_optional_session)],
) -> None:
    """FastAPI dependency for end-user endpoints (anon/auth/premium tiers)."""
    if not settings.rate_limit.enabled:
        return
    if user is None:
        result = await rate_limit(store, client_ip(request), "anon")
    else:
        result = await rate_limit(store, f"user:{user.user_id}", user.rate_limit_tier)
    apply_rate_limit_result(request, response, result)


async def enforce_admin_rate_limit(
    request: Request,
    response: Response,
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
) -> None:
    """FastAPI dependency for admin endpoints: tight per-IP ceiling."""
    if not settings.rate_limit.enabled:
        return
    result = await rate_limit(store, client_ip(request), "admin")
    apply_rate_limit_result(request, response, result)


async def enforce_api_key_rate_limit(
    request: Request,
    response: Response,
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
    api_key: Annotated[ApiKeyContext, Depends(require_api_key)],
) -> ApiKeyContext:
    """FastAPI dependency for the public API: expensive tier of the key's kind."""
    if settings.rate_limit.enabled:
        result = await rate_limit(
            store, f"apikey:{api_key.id}", api_key.rate_limit_kind, expensive=True
        )
        apply_rate_limit_result(request, response, result)
    return api_key


_ip_limiter: AbstractRateLimiter | None = None
_ip_limiter_config: tuple[int, int] | None = None


def get_ip_rate_limiter() -> AbstractRateLimiter:
    """Process-local IP limiter for machine endpoints.

    Not shared across instances; only used behind a shared secret where a
    per-process ceiling is good enough. Rebuilt if configuration changes.
    """
    global _ip_limiter, _ip_limiter_config

    config = (settings.rate_limit.ip_limit, settings.rate_limit.window_seconds)
    if _ip_limiter is None or _ip_limiter_config != config:
        _ip_limiter = InMemoryWindowRateLimiter(
            limit=settings.rate_limit.ip_limit,
            window_seconds=settings.rate_limit.window_seconds,
        )
        _ip_limiter_config = config
    return _ip_limiter


async def enforce_ip_rate_limit(
    request: Request,
    response: Response,
    limiter: Annotated[AbstractRateLimiter, Depends(get_ip_rate_limiter)],
) -> None:
    """FastAPI dependency using the in-process limiter keyed by client IP."""
    if not settings.rate_limit.enabled:
        return
    result = await limiter.consume(client_ip(request))
    if not result.allowed:
        logger.warning(
            "rate_limit.exceeded",
            extra={"tier": "ip", "key_hash": _hash_limiter_key(client_ip(request))},
        )
    apply_rate_limit_result(request, response, result)
