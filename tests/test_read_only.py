"""Tests for read-only mode."""

from romc_api.core.auth import SessionUser
from romc_api.core.config import settings
from romc_api.core.read_only import should_block_mutation
from romc_api.services.flags_service import FeatureFlag, FlagService

ADMIN = SessionUser(user_id="a1", email="admin@example.com", role="admin")
USER = SessionUser(user_id="u1", email="user@example.com")


async def test_nothing_blocked_by_default(kv_store) -> None:
    assert await should_block_mutation(FlagService(kv_store), USER) is False


async def test_read_only_blocks_users_and_anonymous(kv_store) -> None:
    flags = FlagService(kv_store)
    await flags.set(FeatureFlag.READ_ONLY_MODE, True)

    assert await should_block_mutation(flags, USER) is True
    assert await should_block_mutation(flags, None) is True


async def test_admins_bypass_when_allowed(kv_store, monkeypatch) -> None:
    flags = FlagService(kv_store)
    await flags.set(FeatureFlag.READ_ONLY_MODE, True)

    assert await should_block_mutation(flags, ADMIN) is False

    monkeypatch.setattr(settings.app, "read_only_admin_bypass", False)
    assert await should_block_mutation(flags, ADMIN) is True


def test_claim_returns_503_in_read_only_mode(client, company, login, csrf_headers, admin_headers) -> None:
    toggled = client.post(
        "/api/admin/flags/toggle",
        json={"flag": "READ_ONLY_MODE", "value": "true"},
        headers=admin_headers,
    )
    assert toggled.status_code == 200

    login("u1")
    response = client.post(
        f"/api/company/{company.cui}/claim",
        json={"role": "founder"},
        headers=csrf_headers(),
    )

    assert response.status_code == 503
    assert response.json()["code"] == "read_only_mode"
