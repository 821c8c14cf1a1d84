"""Scheduled jobs, triggered by an external scheduler with the cron secret."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from romc_api.core.auth import require_cron_secret
from romc_api.core.errors import FeatureDisabledAppError
from romc_api.core.rate_limit import enforce_ip_rate_limit
from romc_api.db.session import get_db
from romc_api.schemas.admin import AuditVerifyResponse
from romc_api.services.audit_service import AuditLogService, get_audit_log_service
from romc_api.services.flags_service import FeatureFlag, FlagService, get_flag_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/cron",
    tags=["Cron"],
    dependencies=[Depends(enforce_ip_rate_limit), Depends(require_cron_secret)],
)


@router.post("/audit-verify", response_model=AuditVerifyResponse)
async def cron_verify_audit_chain(
    flags: Annotated[FlagService, Depends(get_flag_service)],
    db: Annotated[Session, Depends(get_db)],
    audit: Annotated[AuditLogService, Depends(get_audit_log_service)],
) -> AuditVerifyResponse:
    """Re-verify the whole audit chain; a broken chain is logged at error level."""
    if not await flags.get(FeatureFlag.CRON_AUDIT_VERIFY):
        raise FeatureDisabledAppError(code="feature_disabled", message="Job disabled")

    result = await run_in_threadpool(audit.verify, db)
    logger.info("cron.audit_verify", extra={"valid": result["valid"], "entries": result["entries"]})
    return AuditVerifyResponse(**result)
