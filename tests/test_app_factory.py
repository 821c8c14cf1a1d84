"""Tests for app construction and the generated OpenAPI document."""

from romc_api.core.openapi import SECURITY_SCHEMES, security_for_path


def test_routes_are_registered(app) -> None:
    paths = set(app.openapi()["paths"])

    for expected in (
        "/health",
        "/api/csrf",
        "/api/company/{cui}/claim",
        "/api/corrections/request",
        "/api/admin/flags/toggle",
        "/api/admin/audit/verify",
        "/api/cron/audit-verify",
        "/api/v1/company/{cui}",
    ):
        assert expected in paths


def test_openapi_documents_security_schemes(client) -> None:
    schema = client.get("/openapi.json").json()

    assert set(SECURITY_SCHEMES) <= set(schema["components"]["securitySchemes"])
    assert schema["paths"]["/health"]["get"]["security"] == []
    assert schema["paths"]["/api/cron/audit-verify"]["post"]["security"] == [{"CronSecret": []}]
    assert schema["paths"]["/api/v1/company/{cui}"]["get"]["security"] == [{"ApiKeyAuth": []}]


def test_security_for_path() -> None:
    assert security_for_path("/api/csrf") == []
    assert security_for_path("/api/corrections/request") == [{"SessionCookie": []}]
    assert security_for_path("/api/admin/flags") == [{"SessionCookie": []}, {"AdminApiKey": []}]


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True, "status": "ok"}
