"""Tests for sessions, roles and machine credentials."""

import asyncio

import pytest

from romc_api.core.auth import (
    SessionStore,
    parse_admin_emails,
    resolve_role,
    validate_admin_api_key,
)
from romc_api.core.config import settings
from romc_api.core.errors import AuthenticationAppError, ConfigurationAppError


class TestParseAdminEmails:
    """Test admin allowlist parsing."""

    def test_parse_multiple_emails(self) -> None:
        assert parse_admin_emails("a@x.ro,b@x.ro") == {"a@x.ro", "b@x.ro"}

    def test_parse_lowercases_and_trims(self) -> None:
        assert parse_admin_emails("  Ana@Example.COM , ") == {"ana@example.com"}

    def test_parse_none_returns_empty_set(self) -> None:
        assert parse_admin_emails(None) == set()


class TestResolveRole:
    def test_allowlisted_email_is_admin(self) -> None:
        assert resolve_role("ADMIN@example.com") == "admin"

    def test_other_email_keeps_stored_role(self) -> None:
        assert resolve_role("user@example.com", "user") == "user"
        assert resolve_role(None) == "user"


class TestSessionStore:
    async def test_create_and_get(self, kv_store) -> None:
        sessions = SessionStore(kv_store)
        token = await sessions.create("u1", email="user@example.com", is_premium=True)

        user = await sessions.get(token)

        assert user.user_id == "u1"
        assert user.is_premium is True
        assert user.is_admin is False
        assert user.rate_limit_tier == "premium"

    async def test_session_expires(self, kv_store, clock) -> None:
        sessions = SessionStore(kv_store, ttl_seconds=3600)
        token = await sessions.create("u1")

        clock.advance(3600)

        assert await sessions.get(token) is None

    async def test_allowlist_grants_admin(self, kv_store) -> None:
        sessions = SessionStore(kv_store)
        token = await sessions.create("a1", email="admin@example.com")

        assert (await sessions.get(token)).is_admin is True

    async def test_stored_admin_role_is_not_trusted(self, kv_store) -> None:
        sessions = SessionStore(kv_store)
        token = await sessions.create("u1", email="former-admin@example.com", role="admin")

        assert (await sessions.get(token)).is_admin is False

    async def test_revoke(self, kv_store) -> None:
        sessions = SessionStore(kv_store)
        token = await sessions.create("u1")

        await sessions.revoke(token)

        assert await sessions.get(token) is None

    async def test_corrupt_record_reads_as_no_session(self, kv_store) -> None:
        await kv_store.set(SessionStore.key_for("bad"), "{not json")

        assert await SessionStore(kv_store).get("bad") is None


class TestAdminApiKey:
    def test_valid_key_and_bearer_form(self) -> None:
        validate_admin_api_key("test-admin-api-key")
        validate_admin_api_key("Bearer test-admin-api-key")

    def test_invalid_key(self) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_admin_api_key("wrong")

        assert exc_info.value.status_code == 401

    def test_not_configured(self, monkeypatch) -> None:
        monkeypatch.setattr(settings.security, "admin_api_key", None)

        with pytest.raises(ConfigurationAppError) as exc_info:
            validate_admin_api_key("anything")

        assert exc_info.value.code == "admin_api_key_not_configured"


class TestAdminAccessOverHttp:
    def test_anonymous_gets_401(self, client) -> None:
        response = client.get("/api/admin/flags")

        assert response.status_code == 401
        assert response.json() == {
            "ok": False,
            "error": "Unauthorized",
            "code": "unauthorized",
            "request_id": response.headers["X-Request-ID"],
        }

    def test_non_admin_session_gets_403(self, client, login) -> None:
        login("u1", email="user@example.com")

        response = client.get("/api/admin/flags")

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    def test_admin_session_can_read(self, client, login) -> None:
        login("a1", email="admin@example.com")

        assert client.get("/api/admin/flags").status_code == 200

    def test_bearer_admin_key(self, client) -> None:
        response = client.get(
            "/api/admin/flags", headers={"Authorization": "Bearer test-admin-api-key"}
        )

        assert response.status_code == 200

    def test_non_bearer_authorization_falls_back_to_session(self, client, login) -> None:
        login("a1", email="admin@example.com")

        response = client.get("/api/admin/flags", headers={"Authorization": "Basic dXNlcjpwYXNz"})

        assert response.status_code == 200

    def test_non_bearer_authorization_without_session_is_401(self, client) -> None:
        response = client.get("/api/admin/flags", headers={"Authorization": "Basic dXNlcjpwYXNz"})

        assert response.status_code == 401
        assert response.json()["code"] == "unauthorized"

    def test_wrong_admin_key_is_rejected_even_with_admin_session(self, client, login) -> None:
        login("a1", email="admin@example.com")

        response = client.get("/api/admin/flags", headers={"x-admin-api-key": "wrong"})

        assert response.status_code == 401

    def test_admin_session_mutation_needs_csrf(self, client, login, csrf_headers) -> None:
        login("a1", email="admin@example.com")
        body = {"flag": "CORRECTIONS", "value": "false"}

        rejected = client.post("/api/admin/flags/toggle", json=body)
        accepted = client.post("/api/admin/flags/toggle", json=body, headers=csrf_headers())

        assert rejected.status_code == 403
        assert rejected.json()["code"] == "csrf_invalid"
        assert accepted.status_code == 200

    def test_admin_api_key_mutation_skips_csrf(self, client, admin_headers) -> None:
        response = client.post(
            "/api/admin/flags/toggle",
            json={"flag": "CORRECTIONS", "value": "false"},
            headers=admin_headers,
        )

        assert response.status_code == 200

    def test_revoked_session_is_anonymous(self, client, login, kv_store) -> None:
        token = login("a1", email="admin@example.com")
        asyncio.run(SessionStore(kv_store).revoke(token))

        assert client.get("/api/admin/flags").status_code == 401
