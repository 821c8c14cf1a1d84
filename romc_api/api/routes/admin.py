"""Admin endpoints: feature flags, API keys and the audit log.

Every admin route shares the per-IP admin rate limit. Mutations also need
CSRF when the admin is using a browser session, and record an audit entry
once they have succeeded.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from romc_api.core.auth import SessionUser, require_admin, require_admin_mutation
from romc_api.core.errors import ValidationAppError
from romc_api.core.rate_limit import enforce_admin_rate_limit
from romc_api.db.session import get_db
from romc_api.schemas.admin import (
    ApiKeyCreateRequest,
    ApiKeyCreateResponse,
    ApiKeyToggleRequest,
    ApiKeyToggleResponse,
    AuditVerifyResponse,
    FlagsResponse,
    FlagToggleRequest,
    FlagToggleResponse,
)
from romc_api.services.api_key_service import ApiKeyService, require_secret
from romc_api.services.audit_service import (
    EXPORT_DEFAULT_LIMIT,
    AuditLogService,
    export_csv,
    get_audit_log_service,
)
from romc_api.services.flags_service import FlagService, get_flag_service, parse_flag

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(enforce_admin_rate_limit)],
)


@router.get("/flags", response_model=FlagsResponse)
async def list_flags(
    _admin: Annotated[SessionUser, Depends(require_admin)],
    flags: Annotated[FlagService, Depends(get_flag_service)],
) -> FlagsResponse:
    return FlagsResponse(flags=await flags.all())


@router.post("/flags/toggle", response_model=FlagToggleResponse)
async def toggle_flag(
    body: FlagToggleRequest,
    admin: Annotated[SessionUser, Depends(require_admin_mutation)],
    flags: Annotated[FlagService, Depends(get_flag_service)],
    audit: Annotated[AuditLogService, Depends(get_audit_log_service)],
    background_tasks: BackgroundTasks,
) -> FlagToggleResponse:
    """Switch a feature flag on or off.

    Not gated by read-only mode, otherwise read-only mode could never be
    switched back off.
    """
    try:
        flag = parse_flag(body.flag)
    except ValueError:
        raise ValidationAppError(code="unknown_flag", message="Invalid body", details={"field": "flag"}) from None

    value = body.value == "true"
    previous = await flags.get(flag)
    await flags.set(flag, value)

    background_tasks.add_task(
        audit.append,
        admin.user_id,
        "FLAG_TOGGLE",
        "FEATURE_FLAG",
        flag.value,
        {"flag": flag.value, "value": value, "previousValue": previous},
    )
    return FlagToggleResponse(flag=flag.value, value=value)


@router.post("/api-keys/create", response_model=ApiKeyCreateResponse)
async def create_api_key(
    body: ApiKeyCreateRequest,
    admin: Annotated[SessionUser, Depends(require_admin_mutation)],
    db: Annotated[Session, Depends(get_db)],
    audit: Annotated[AuditLogService, Depends(get_audit_log_service)],
    background_tasks: BackgroundTasks,
) -> ApiKeyCreateResponse:
    """Create an API key. The raw key is in this response and nowhere else."""
    service = ApiKeyService(db, require_secret())
    tier = body.rate_limit_kind or "premium"
    api_key, raw = await run_in_threadpool(
        lambda: service.create(
            label=body.label,
            plan=body.plan,
            rate_limit_kind=tier,
            active=True if body.active is None else body.active,
        )
    )

    background_tasks.add_task(
        audit.append,
        admin.user_id,
        "apikey.create",
        "ApiKey",
        api_key.id,
        {"label": body.label, "plan": body.plan, "tier": tier},
    )
    return ApiKeyCreateResponse(id=api_key.id, key=raw, last4=api_key.last4)


@router.post("/api-keys/toggle", response_model=ApiKeyToggleResponse)
async def toggle_api_key(
    body: ApiKeyToggleRequest,
    admin: Annotated[SessionUser, Depends(require_admin_mutation)],
    db: Annotated[Session, Depends(get_db)],
    audit: Annotated[AuditLogService, Depends(get_audit_log_service)],
    background_tasks: BackgroundTasks,
) -> ApiKeyToggleResponse:
    service = ApiKeyService(db, require_secret())
    api_key = await run_in_threadpool(service.set_active, body.id, body.active)

    background_tasks.add_task(
        audit.append,
        admin.user_id,
        "apikey.toggle",
        "ApiKey",
        api_key.id,
        {"active": body.active},
    )
    return ApiKeyToggleResponse(id=api_key.id, active=api_key.active)


@router.get("/audit/export")
async def export_audit_log(
    request: Request,
    _admin: Annotated[SessionUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    audit: Annotated[AuditLogService, Depends(get_audit_log_service)],
    limit: Annotated[int, Query(ge=1)] = EXPORT_DEFAULT_LIMIT,
) -> Response:
    """Download the newest ``limit`` audit entries as CSV (capped server side)."""
    entries = await run_in_threadpool(audit.recent, db, limit)
    filename = f"audit-log-{datetime.now(timezone.utc).date().isoformat()}.csv"
    logger.info("audit.exported", extra={"rows": len(entries)})
    return Response(
        content=export_csv(entries),
        media_type="text/csv; charset=utf-8",
        headers={
            **(getattr(request.state, "rate_limit_headers", None) or {}),
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )


@router.get("/audit/verify", response_model=AuditVerifyResponse)
async def verify_audit_log(
    _admin: Annotated[SessionUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    audit: Annotated[AuditLogService, Depends(get_audit_log_service)],
) -> AuditVerifyResponse:
    result = await run_in_threadpool(audit.verify, db)
    return AuditVerifyResponse(**result)
