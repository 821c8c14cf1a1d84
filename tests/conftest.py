"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any ``romc_api`` import so the global
settings object is built for the testing environment.
"""

import asyncio
import os
from collections.abc import Callable, Iterator

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("SECURITY_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SECURITY_CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SECURITY_ADMIN_EMAILS", "admin@example.com")
os.environ.setdefault("SECURITY_ADMIN_API_KEY", "test-admin-api-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import romc_api.models  # noqa: F401
from romc_api.adapters.kv.factory import get_kv_store
from romc_api.adapters.kv.in_memory import InMemoryKeyValueStore
from romc_api.adapters.rate_limit.in_memory import InMemoryWindowRateLimiter
from romc_api.core.app_factory import create_app
from romc_api.core.auth import SessionStore
from romc_api.core.config import settings
from romc_api.core.errors import DependencyAppError
from romc_api.core.rate_limit import get_ip_rate_limiter
from romc_api.db.session import Base, create_tables, get_db
from romc_api.models import Company
from romc_api.services.audit_service import AuditLogService, get_audit_log_service

ADMIN_API_KEY_HEADERS = {"x-admin-api-key": "test-admin-api-key"}


class FakeClock:
    """Controllable time source (UNIX seconds)."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingKeyValueStore(InMemoryKeyValueStore):
    """Store whose every operation fails like an unreachable Redis."""

    def _fail(self) -> DependencyAppError:
        return DependencyAppError(code="kv_unavailable", message="Key-value store is unavailable")

    async def get(self, key):
        raise self._fail()

    async def set(self, key, value, *, ex=None):
        raise self._fail()

    async def incr(self, key):
        raise self._fail()

    async def expire(self, key, seconds):
        raise self._fail()

    async def ttl(self, key):
        raise self._fail()

    async def delete(self, key):
        raise self._fail()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(clock: FakeClock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def failing_store() -> FailingKeyValueStore:
    return FailingKeyValueStore()


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def audit_service(session_factory: sessionmaker) -> AuditLogService:
    return AuditLogService(session_factory)


@pytest.fixture
def ip_limiter() -> InMemoryWindowRateLimiter:
    return InMemoryWindowRateLimiter(
        limit=settings.rate_limit.ip_limit,
        window_seconds=settings.rate_limit.window_seconds,
    )


@pytest.fixture
def app(
    kv_store: InMemoryKeyValueStore,
    session_factory: sessionmaker,
    audit_service: AuditLogService,
    ip_limiter: InMemoryWindowRateLimiter,
) -> FastAPI:
    """App wired to the per-test store and database."""
    application = create_app(manage_lifespan=False)

    def override_get_db() -> Iterator[Session]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_kv_store] = lambda: kv_store
    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_audit_log_service] = lambda: audit_service
    application.dependency_overrides[get_ip_rate_limiter] = lambda: ip_limiter
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def login(client: TestClient, kv_store: InMemoryKeyValueStore) -> Callable[..., str]:
    """Create a stored session and attach its cookie to ``client``."""

    def _login(
        user_id: str = "user-1",
        *,
        email: str | None = "user@example.com",
        is_premium: bool = False,
    ) -> str:
        token = asyncio.run(
            SessionStore(kv_store).create(user_id, email=email, is_premium=is_premium)
        )
        client.cookies.set(settings.security.session_cookie_name, token)
        return token

    return _login


@pytest.fixture
def csrf_headers(client: TestClient) -> Callable[[], dict[str, str]]:
    """Fetch a CSRF token (sets the cookie on ``client``) and return the header."""

    def _csrf_headers() -> dict[str, str]:
        response = client.get("/api/csrf")
        assert response.status_code == 200
        return {"x-csrf-token": response.json()["token"]}

    return _csrf_headers


@pytest.fixture
def company(db_session: Session) -> Company:
    company = Company(cui="14399840", name="Exemplu SRL", slug="exemplu-srl", romc_score=71.5)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return dict(ADMIN_API_KEY_HEADERS)
