"""Session, role and machine-credential checks.

End users authenticate with an opaque session token (cookie) that resolves
to a stored session record in the key-value store. The admin role is granted
by an email allowlist, so revoking admin access is a configuration change.

Machine callers never use sessions:
- cron jobs send the shared ``x-cron-secret`` header
- admin automation sends ``x-admin-api-key`` (or ``Authorization: Bearer``)
- public API consumers send ``x-api-key`` (see ``romc_api.services.api_key_service``)

Design principles:
- Dependency Injection: used via FastAPI Depends() for loose coupling
- Configuration-driven: secrets and allowlists come from env vars
- Secrets are compared in constant time
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from dataclasses import asdict, dataclass
from typing import Annotated

from fastapi import Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from romc_api.adapters.kv.base import AbstractKeyValueStore
from romc_api.adapters.kv.factory import get_kv_store
from romc_api.core.config import settings
from romc_api.core.csrf import CSRF_HEADER_NAME, constant_time_equals, require_csrf
from romc_api.core.errors import (
    AuthenticationAppError,
    AuthorizationAppError,
    ConfigurationAppError,
)
from romc_api.core.logging import set_user_id
from romc_api.db.session import get_db
from romc_api.services.api_key_service import ApiKeyContext, ApiKeyService, require_secret

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_USER = "user"
SESSION_KEY_PREFIX = "session"
ADMIN_API_KEY_ACTOR = "system:admin-api-key"


def parse_admin_emails(emails_string: str | None) -> set[str]:
    """Parse the comma-separated admin allowlist into lowercase emails.

    Examples:
        >>> sorted(parse_admin_emails("Ana@Example.com, bob@example.com ,"))
        ['ana@example.com', 'bob@example.com']
        >>> parse_admin_emails(None)
        set()
    """
    if not emails_string:
        return set()
    return {email.strip().lower() for email in emails_string.split(",") if email.strip()}


def resolve_role(email: str | None, stored_role: str | None = None) -> str:
    """Role for a user: allowlisted emails are always admin."""
    if email and email.strip().lower() in parse_admin_emails(settings.security.admin_emails):
        return ROLE_ADMIN
    return stored_role or ROLE_USER


@dataclass(frozen=True)
class SessionUser:
    """Authenticated caller as seen by route handlers."""

    user_id: str
    email: str | None = None
    role: str = ROLE_USER
    is_premium: bool = False
    auth_method: str = "session"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def rate_limit_tier(self) -> str:
        return "premium" if self.is_premium else "auth"


def _hash_token(token: str) -> str:
    """Short digest of a credential for log correlation."""
    return hashlib.sha256(token.encode()).hexdigest()[:16]


class SessionStore:
    """Create and resolve sessions stored under ``session:{token}``."""

    def __init__(self, store: AbstractKeyValueStore, *, ttl_seconds: int | None = None) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds or settings.security.session_ttl_seconds

    @staticmethod
    def key_for(token: str) -> str:
        return f"{SESSION_KEY_PREFIX}:{token}"

    async def create(
        self,
        user_id: str,
        *,
        email: str | None = None,
        role: str | None = None,
        is_premium: bool = False,
    ) -> str:
        """Persist a session and return its opaque token."""
        token = secrets.token_urlsafe(32)
        user = SessionUser(
            user_id=user_id,
            email=email,
            role=role or ROLE_USER,
            is_premium=is_premium,
        )
        await self._store.set(self.key_for(token), json.dumps(asdict(user)), ex=self._ttl_seconds)
        logger.info("session.created", extra={"session_hash": _hash_token(token)})
        return token

    async def get(self, token: str) -> SessionUser | None:
        raw = await self._store.get(self.key_for(token))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            user_id = str(data["user_id"])
        except (ValueError, KeyError, TypeError):
            logger.warning("session.corrupt", extra={"session_hash": _hash_token(token)})
            return None
        email = data.get("email")
        # The allowlist is re-evaluated on every lookup so removals take effect immediately
        role = resolve_role(email, None if data.get("role") == ROLE_ADMIN else data.get("role"))
        return SessionUser(
            user_id=user_id,
            email=email,
            role=role,
            is_premium=bool(data.get("is_premium", False)),
        )

    async def revoke(self, token: str) -> None:
        await self._store.delete(self.key_for(token))


def get_session_store(
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
) -> SessionStore:
    return SessionStore(store)


async def get_optional_session(
    request: Request,
    sessions: Annotated[SessionStore, Depends(get_session_store)],
) -> SessionUser | None:
    """Resolve the session cookie, if any.

    Missing or unknown tokens yield None; the decision to reject is left to
    ``require_session`` so rate limiting can still pick a tier first.
    """
    token = request.cookies.get(settings.security.session_cookie_name)
    if not token:
        return None
    user = await sessions.get(token)
    if user is not None:
        set_user_id(user.user_id)
    return user


async def require_session(
    user: Annotated[SessionUser | None, Depends(get_optional_session)],
) -> SessionUser:
    """FastAPI dependency requiring a signed-in user (401 otherwise)."""
    if user is None:
        raise AuthenticationAppError(code="unauthorized", message="Unauthorized")
    return user


def validate_admin_api_key(provided: str) -> None:
    """Check a machine admin credential.

    Raises:
        ConfigurationAppError: If no admin API key is configured.
        AuthenticationAppError: If the credential does not match.
    """
    expected = settings.security.admin_api_key
    if not expected:
        logger.error("admin_api_key.not_configured")
        raise ConfigurationAppError(
            code="admin_api_key_not_configured",
            message="ADMIN_API_KEY not configured",
            details={"hint": "Set SECURITY_ADMIN_API_KEY"},
        )
    token = provided[len("Bearer "):] if provided.startswith("Bearer ") else provided
    if not token or not constant_time_equals(token, expected):
        logger.warning(
            "admin_api_key.invalid",
            extra={"credential_hash": _hash_token(token) if token else None},
        )
        raise AuthenticationAppError(code="unauthorized", message="Unauthorized")


async def require_admin(
    user: Annotated[SessionUser | None, Depends(get_optional_session)],
    x_admin_api_key: Annotated[str | None, Header(alias="x-admin-api-key")] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> SessionUser:
    """FastAPI dependency for admin endpoints.

    Accepts either an admin session (allowlisted email) or the machine admin
    API key. Only ``Bearer`` authorization headers count as the machine
    credential; other schemes fall through to the session check. Returns the acting principal used for audit attribution.
    """
    bearer = authorization if authorization and authorization.startswith("Bearer ") else None
    machine_credential = x_admin_api_key or bearer
    if machine_credential:
        validate_admin_api_key(machine_credential)
        set_user_id(ADMIN_API_KEY_ACTOR)
        return SessionUser(
            user_id=ADMIN_API_KEY_ACTOR,
            role=ROLE_ADMIN,
            auth_method="admin_api_key",
        )

    if user is None:
        raise AuthenticationAppError(code="unauthorized", message="Unauthorized")
    if not user.is_admin:
        logger.warning("admin.forbidden", extra={"role": user.role})
        raise AuthorizationAppError(code="forbidden", message="Forbidden")
    return user


async def require_cron_secret(
    x_cron_secret: Annotated[str | None, Header(alias="x-cron-secret")] = None,
) -> None:
    """FastAPI dependency for cron endpoints (shared secret header)."""
    expected = settings.security.cron_secret
    if not expected or not x_cron_secret or not constant_time_equals(x_cron_secret, expected):
        logger.warning(
            "cron.forbidden",
            extra={"secret_configured": bool(expected), "secret_present": bool(x_cron_secret)},
        )
        raise AuthorizationAppError(code="forbidden", message="Forbidden")


async def require_admin_mutation(
    request: Request,
    admin: Annotated[SessionUser, Depends(require_admin)],
    x_csrf_token: Annotated[str | None, Header(alias=CSRF_HEADER_NAME)] = None,
) -> SessionUser:
    """Admin check for mutating endpoints.

    Browser sessions must also pass the CSRF check; the machine admin key is
    not sent by browsers and is exempt.
    """
    if admin.auth_method == "session":
        await require_csrf(request, x_csrf_token)
    return admin


async def require_api_key(
    db: Annotated[Session, Depends(get_db)],
    x_api_key: Annotated[str | None, Header(alias="x-api-key")] = None,
) -> ApiKeyContext:
    """FastAPI dependency for the public API (``x-api-key`` header)."""
    if not x_api_key or not x_api_key.strip():
        raise AuthenticationAppError(code="unauthorized", message="Unauthorized")
    service = ApiKeyService(db, require_secret())
    context = await run_in_threadpool(service.lookup, x_api_key)
    if context is None:
        raise AuthenticationAppError(code="invalid_api_key", message="Unauthorized")
    set_user_id(f"apikey:{context.id}")
    return context
