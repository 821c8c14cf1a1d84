"""OpenAPI customization.

Documents the four ways a caller authenticates (session cookie, admin API
key, public API key, cron secret) and attaches the matching requirement to
each operation by path prefix. Health and CSRF issuance are public.
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import FastAPI

from romc_api.core.config import settings

SECURITY_SCHEMES: Dict[str, Dict[str, Any]] = {
    "SessionCookie": {
        "type": "apiKey",
        "in": "cookie",
        "name": settings.security.session_cookie_name,
        "description": "Browser session; mutations also need the x-csrf-token header.",
    },
    "AdminApiKey": {
        "type": "apiKey",
        "in": "header",
        "name": "x-admin-api-key",
        "description": "Machine credential for admin endpoints.",
    },
    "ApiKeyAuth": {
        "type": "apiKey",
        "in": "header",
        "name": "x-api-key",
        "description": "Public API key created by an admin.",
    },
    "CronSecret": {
        "type": "apiKey",
        "in": "header",
        "name": "x-cron-secret",
        "description": "Shared secret sent by the scheduler.",
    },
}

TAGS: List[Dict[str, str]] = [
    {"name": "Health", "description": "Liveness checks."},
    {"name": "Security", "description": "CSRF token issuance."},
    {"name": "Company", "description": "Claims and corrections by signed-in users."},
    {"name": "Admin", "description": "Feature flags, API keys and the audit log."},
    {"name": "Cron", "description": "Scheduled jobs."},
    {"name": "Public API", "description": "API-key authenticated reads."},
]


def security_for_path(path: str) -> List[Dict[str, List[str]]]:
    """Security requirement for an operation, by path prefix."""
    if path.startswith("/api/admin"):
        return [{"SessionCookie": []}, {"AdminApiKey": []}]
    if path.startswith("/api/cron"):
        return [{"CronSecret": []}]
    if path.startswith("/api/v1"):
        return [{"ApiKeyAuth": []}]
    if path.startswith("/api/company") or path.startswith("/api/corrections"):
        return [{"SessionCookie": []}]
    return []


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add security schemes and tags."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        for name, scheme in SECURITY_SCHEMES.items():
            security_schemes.setdefault(name, scheme)

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = security_for_path(path)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
