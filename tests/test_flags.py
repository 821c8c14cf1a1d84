"""Tests for KV-backed feature flags."""

import pytest

from romc_api.services.flags_service import (
    DEFAULT_DISABLED_FLAGS,
    FeatureFlag,
    FlagService,
    default_value,
    flag_key,
    parse_flag,
)


def test_risky_flags_default_off() -> None:
    for flag in DEFAULT_DISABLED_FLAGS:
        assert default_value(flag) is False
    assert default_value(FeatureFlag.READ_ONLY_MODE) is False
    assert default_value(FeatureFlag.CLAIMS) is True


def test_parse_flag() -> None:
    assert parse_flag("CLAIMS") is FeatureFlag.CLAIMS
    with pytest.raises(ValueError):
        parse_flag("claims")


async def test_get_returns_default_when_unset(kv_store) -> None:
    flags = FlagService(kv_store)

    assert await flags.get(FeatureFlag.API_ACCESS) is True
    assert await flags.get(FeatureFlag.READ_ONLY_MODE) is False


async def test_set_then_get(kv_store) -> None:
    flags = FlagService(kv_store)

    await flags.set(FeatureFlag.API_ACCESS, False)
    await flags.set(FeatureFlag.READ_ONLY_MODE, True)

    assert await flags.get(FeatureFlag.API_ACCESS) is False
    assert await flags.get(FeatureFlag.READ_ONLY_MODE) is True
    assert await kv_store.get(flag_key(FeatureFlag.API_ACCESS)) == "0"


async def test_store_outage_falls_back_to_default(failing_store) -> None:
    flags = FlagService(failing_store)

    assert await flags.get(FeatureFlag.READ_ONLY_MODE) is False
    assert await flags.get(FeatureFlag.CLAIMS) is True


async def test_all_lists_every_flag(kv_store) -> None:
    values = await FlagService(kv_store).all()

    assert set(values) == {flag.value for flag in FeatureFlag}


def test_only_gated_flags_exist() -> None:
    assert {flag.value for flag in FeatureFlag} == {
        "CLAIMS",
        "CORRECTIONS",
        "API_ACCESS",
        "CRON_AUDIT_VERIFY",
        "READ_ONLY_MODE",
    }
    with pytest.raises(ValueError):
        parse_flag("ENRICHMENT")


class TestFlagEndpoints:
    def test_list_flags(self, client, admin_headers) -> None:
        response = client.get("/api/admin/flags", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["flags"]["READ_ONLY_MODE"] is False

    def test_toggle_persists_and_audits(self, client, admin_headers, audit_service, db_session) -> None:
        response = client.post(
            "/api/admin/flags/toggle",
            json={"flag": "CLAIMS", "value": "false"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "flag": "CLAIMS", "value": False}

        listed = client.get("/api/admin/flags", headers=admin_headers).json()
        assert listed["flags"]["CLAIMS"] is False

        entries = audit_service.load_chain(db_session)
        assert len(entries) == 1
        assert entries[0].action == "FLAG_TOGGLE"
        assert entries[0].entity_id == "CLAIMS"
        assert entries[0].actor_user_id == "system:admin-api-key"
        assert entries[0].metadata_json == {"flag": "CLAIMS", "previousValue": True, "value": False}

    def test_unknown_flag_is_rejected(self, client, admin_headers) -> None:
        response = client.post(
            "/api/admin/flags/toggle",
            json={"flag": "NOPE", "value": "true"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "unknown_flag"

    def test_ungated_flag_name_is_rejected(self, client, admin_headers) -> None:
        response = client.post(
            "/api/admin/flags/toggle",
            json={"flag": "PREMIUM_PAYWALLS", "value": "true"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "unknown_flag"

    def test_invalid_value_is_rejected(self, client, admin_headers) -> None:
        response = client.post(
            "/api/admin/flags/toggle",
            json={"flag": "CLAIMS", "value": "yes"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_body"
