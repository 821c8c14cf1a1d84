"""Application-level exception types.

This module defines domain errors used across guards, services and routes,
enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes consistent without forcing every
    error to carry every field.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    remaining_seconds: int
    headers: dict[str, str]
    field: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code = 400

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation fails."""


class AuthenticationAppError(AppError):
    """Raised when a session or credential is missing or invalid."""

    status_code = 401


class AuthorizationAppError(AppError):
    """Raised when the caller is authenticated but lacks the required role."""

    status_code = 403


class NotFoundAppError(AppError):
    """Raised when a referenced entity does not exist."""

    status_code = 404


class ConflictAppError(AppError):
    """Raised when an action conflicts with current state."""

    status_code = 409


class RateLimitedAppError(AppError):
    """Raised when a rate limit or cooldown blocks the request."""

    status_code = 429


class ConfigurationAppError(AppError):
    """Raised when a required secret or setting is missing."""

    status_code = 500


class DependencyAppError(AppError):
    """Raised when a backing store (cache, database) is unreachable."""

    status_code = 503


class ReadOnlyModeAppError(AppError):
    """Raised when a mutation is attempted while read-only mode is on."""

    status_code = 503


class FeatureDisabledAppError(AppError):
    """Raised when a kill switch has turned the requested feature off."""

    status_code = 503
