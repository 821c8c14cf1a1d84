"""Tests for the claim and correction endpoints."""

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from romc_api.core.auth import SessionStore
from romc_api.core.config import settings
from romc_api.core.cooldown import cooldown_key
from romc_api.models import Company, CompanyClaim, CorrectionSubmission


@pytest.fixture
def signed_in(login, csrf_headers) -> dict[str, str]:
    login("user-1")
    return csrf_headers()


class TestClaim:
    def test_claim_is_stored(self, client, company, signed_in, db_session) -> None:
        response = client.post(
            f"/api/company/{company.cui}/claim",
            json={"role": "founder", "evidence_url": "https://exemplu.ro/echipa", "note": "CEO"},
            headers=signed_in,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True

        claim = db_session.get(CompanyClaim, body["id"])
        assert claim.company_id == company.id
        assert claim.user_id == "user-1"
        assert claim.status == "PENDING"
        assert claim.evidence_url == "https://exemplu.ro/echipa"

    def test_ro_prefixed_cui_is_accepted(self, client, company, signed_in) -> None:
        response = client.post(f"/api/company/RO{company.cui}/claim", json={"role": "employee"}, headers=signed_in)

        assert response.status_code == 200

    def test_second_claim_hits_30_day_cooldown(self, client, company, signed_in) -> None:
        client.post(f"/api/company/{company.cui}/claim", json={"role": "founder"}, headers=signed_in)

        response = client.post(f"/api/company/{company.cui}/claim", json={"role": "founder"}, headers=signed_in)

        assert response.status_code == 429
        body = response.json()
        assert body["code"] == "cooldown_active"
        assert body["details"]["remaining_seconds"] == 2_592_000
        assert response.headers["Retry-After"] == "2592000"
        assert response.headers["RateLimit-Limit"] == "120"

    def test_cooldown_is_per_company(self, client, company, signed_in, db_session) -> None:
        other = Company(cui="9010105", name="Alta SA", slug="alta-sa")
        db_session.add(other)
        db_session.commit()

        client.post(f"/api/company/{company.cui}/claim", json={"role": "founder"}, headers=signed_in)
        response = client.post(f"/api/company/{other.cui}/claim", json={"role": "founder"}, headers=signed_in)

        assert response.status_code == 200

    def test_unknown_company(self, client, signed_in) -> None:
        response = client.post("/api/company/99999999/claim", json={"role": "founder"}, headers=signed_in)

        assert response.status_code == 404
        assert response.json()["ok"] is False

    def test_invalid_role(self, client, company, signed_in) -> None:
        response = client.post(f"/api/company/{company.cui}/claim", json={"role": "owner"}, headers=signed_in)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid body"

    def test_honeypot_is_rejected(self, client, company, signed_in, kv_store) -> None:
        response = client.post(
            f"/api/company/{company.cui}/claim",
            json={"role": "founder", "hp": "http://spam.example"},
            headers=signed_in,
        )

        assert response.status_code == 400
        assert asyncio.run(kv_store.get(cooldown_key("claim", "user-1", company.id))) is None

    def test_requires_session(self, client, company, csrf_headers) -> None:
        response = client.post(f"/api/company/{company.cui}/claim", json={"role": "founder"}, headers=csrf_headers())

        assert response.status_code == 401

    def test_disabled_by_kill_switch(self, client, company, signed_in, kv_store) -> None:
        asyncio.run(kv_store.set("flag:CLAIMS", "0"))

        response = client.post(f"/api/company/{company.cui}/claim", json={"role": "founder"}, headers=signed_in)

        assert response.status_code == 503
        assert response.json()["code"] == "feature_disabled"

    def test_failed_insert_does_not_start_cooldown(self, app, company, kv_store, monkeypatch) -> None:
        def failing_create_claim(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("database is down"))

        monkeypatch.setattr("romc_api.api.routes.company.create_claim", failing_create_claim)
        client = TestClient(app, raise_server_exceptions=False)
        token = asyncio.run(SessionStore(kv_store).create("user-1"))
        client.cookies.set(settings.security.session_cookie_name, token)
        csrf = client.get("/api/csrf").json()["token"]

        response = client.post(
            f"/api/company/{company.cui}/claim",
            json={"role": "founder"},
            headers={"x-csrf-token": csrf},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["ok"] is False
        assert body["code"] == "internal_server_error"
        assert "database is down" not in response.text
        assert asyncio.run(kv_store.get(cooldown_key("claim", "user-1", company.id))) is None


class TestCorrections:
    def test_correction_is_stored_then_cooled_down(self, client, company, signed_in, db_session) -> None:
        body = {"cui": company.cui, "field": "website", "proposed_value": "https://exemplu.ro"}

        first = client.post("/api/corrections/request", json=body, headers=signed_in)
        second = client.post("/api/corrections/request", json=body, headers=signed_in)

        assert first.status_code == 200
        submission = db_session.get(CorrectionSubmission, first.json()["id"])
        assert submission.field == "website"
        assert submission.company_id == company.id

        assert second.status_code == 429
        assert second.json()["details"]["remaining_seconds"] == 604_800

    def test_cooldown_expires_after_a_week(self, client, company, signed_in, clock) -> None:
        body = {"cui": company.cui, "field": "name", "proposed_value": "Exemplu SRL"}
        client.post("/api/corrections/request", json=body, headers=signed_in)

        clock.advance(604_800)

        assert client.post("/api/corrections/request", json=body, headers=signed_in).status_code == 200

    def test_invalid_cui_format(self, client, signed_in) -> None:
        body = {"cui": "not-a-cui", "field": "name", "proposed_value": "x"}

        response = client.post("/api/corrections/request", json=body, headers=signed_in)

        assert response.status_code == 400
