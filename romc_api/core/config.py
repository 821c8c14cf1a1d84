"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


def _build(settings_cls):
    """Build nested settings from environment.

    Static type checkers treat required fields as constructor arguments,
    which is not how BaseSettings is intended to be used.
    """

    return settings_cls()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    read_only_admin_bypass: bool = Field(
        True,
        description="Allow admins to mutate data while READ_ONLY_MODE is on",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class SecuritySettings(BaseSettings):
    """Secrets and allowlists consumed by the guard layer."""

    admin_emails: str | None = Field(
        None,
        description="Comma-separated list of emails granted the admin role",
    )
    secret_key: str | None = Field(
        None,
        description="Shared secret used to derive API key hashes",
    )
    cron_secret: str | None = Field(
        None,
        description="Shared secret expected in the x-cron-secret header",
    )
    admin_api_key: str | None = Field(
        None,
        description="Machine credential for admin endpoints (x-admin-api-key or Bearer)",
    )
    csrf_cookie_secure: bool | None = Field(
        None,
        description="Force the Secure flag on the CSRF cookie (defaults to production only)",
    )
    session_cookie_name: str = Field(
        "session-token",
        description="Cookie carrying the opaque session token",
    )
    session_ttl_seconds: int = Field(
        60 * 60 * 24 * 30,
        description="Lifetime of a stored session",
        ge=60,
    )

    model_config = SettingsConfigDict(
        env_prefix="SECURITY_",
        case_sensitive=False,
    )


class CacheSettings(BaseSettings):
    """Key-value store connection."""

    backend: str = Field(
        "memory",
        description="Key-value backend: memory or redis",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL when backend=redis",
    )
    socket_timeout_seconds: float = Field(
        2.0,
        description="Redis socket timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class DatabaseSettings(BaseSettings):
    """Relational store used for durable records (audit log, API keys)."""

    url: str = Field(
        "sqlite:///./romc.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(
        False,
        description="Log emitted SQL statements",
    )

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-tier request ceilings.

    Each tier counts requests in a window of ``window_seconds``. The
    ``expensive_*`` limits apply to costly endpoints instead of the standard
    ones.
    """

    enabled: bool = Field(
        True,
        description="Enable rate limiting",
    )
    window_seconds: int = Field(
        60,
        description="Window size in seconds for all tiers",
        ge=1,
    )
    anon_limit: int = Field(20, ge=1)
    auth_limit: int = Field(120, ge=1)
    premium_limit: int = Field(240, ge=1)
    admin_limit: int = Field(10, ge=1)
    admin_window_seconds: int = Field(60, ge=1)
    expensive_anon_limit: int = Field(5, ge=1)
    expensive_auth_limit: int = Field(30, ge=1)
    expensive_premium_limit: int = Field(60, ge=1)
    fail_open: bool = Field(
        True,
        description="Allow requests when the counter store is unreachable",
    )
    ip_limit: int = Field(
        20,
        description="Per-process IP limiter ceiling for machine endpoints",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate file after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=lambda: _build(AppSettings))
    security: SecuritySettings = Field(default_factory=lambda: _build(SecuritySettings))
    cache: CacheSettings = Field(default_factory=lambda: _build(CacheSettings))
    database: DatabaseSettings = Field(default_factory=lambda: _build(DatabaseSettings))
    rate_limit: RateLimitSettings = Field(default_factory=lambda: _build(RateLimitSettings))
    log: LogSettings = Field(default_factory=lambda: _build(LogSettings))

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


# Global settings instance - composed from domain-specific settings
settings = Settings()
