"""CSRF protection using the double-submit cookie pattern.

The token is issued in a cookie that client script can read (not HttpOnly)
and must be echoed back in the ``x-csrf-token`` header on every mutating
request made with a browser session. A cross-site attacker can make the
browser send the cookie but cannot read it to forge the header.

Validation fails closed: a missing cookie, a missing header or a length
mismatch are all rejections.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import Annotated

from fastapi import Header, Request, Response

from romc_api.core.config import settings
from romc_api.core.errors import AuthorizationAppError

logger = logging.getLogger(__name__)

CSRF_COOKIE_NAME = "csrf-token"
CSRF_HEADER_NAME = "x-csrf-token"
CSRF_TOKEN_BYTES = 32
CSRF_COOKIE_MAX_AGE = 60 * 60 * 24


def generate_csrf_token() -> str:
    """Return a fresh random token (64 hex characters)."""
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def constant_time_equals(left: str, right: str) -> bool:
    """Compare two strings without leaking where they differ.

    Lengths are compared first; the length of a token is not secret.
    """
    left_bytes = left.encode("utf-8")
    right_bytes = right.encode("utf-8")
    if len(left_bytes) != len(right_bytes):
        return False
    return hmac.compare_digest(left_bytes, right_bytes)


def validate_csrf_token(header_token: str | None, cookie_token: str | None) -> bool:
    """Check a submitted token against the cookie value.

    Returns:
        True only when both values are present, equally long and equal.
    """
    if not header_token or not cookie_token:
        return False
    return constant_time_equals(header_token, cookie_token)


def _cookie_secure() -> bool:
    configured = settings.security.csrf_cookie_secure
    if configured is not None:
        return configured
    return settings.is_production


def issue_csrf_token(response: Response, token: str | None = None) -> str:
    """Set the CSRF cookie on ``response`` and return the token value."""
    value = token or generate_csrf_token()
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=value,
        max_age=CSRF_COOKIE_MAX_AGE,
        path="/",
        secure=_cookie_secure(),
        httponly=False,
        samesite="lax",
    )
    return value


async def require_csrf(
    request: Request,
    x_csrf_token: Annotated[str | None, Header(alias=CSRF_HEADER_NAME)] = None,
) -> None:
    """FastAPI dependency rejecting requests without a matching CSRF token.

    Raises:
        AuthorizationAppError: 403 when the token is missing or mismatched.
    """
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME)
    if validate_csrf_token(x_csrf_token, cookie_token):
        return

    logger.warning(
        "csrf.rejected",
        extra={
            "header_present": bool(x_csrf_token),
            "cookie_present": bool(cookie_token),
            "path": request.url.path,
        },
    )
    raise AuthorizationAppError(code="csrf_invalid", message="Invalid CSRF token")
