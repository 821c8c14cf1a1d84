"""Claim and correction endpoints for signed-in users.

Both follow the mutation pipeline: rate limit, session, CSRF, read-only
check, kill switch, cooldown, write, then start the cooldown.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from romc_api.core.auth import SessionUser, require_session
from romc_api.core.cooldown import CooldownGuard, CooldownKind, get_cooldown_guard
from romc_api.core.csrf import require_csrf
from romc_api.core.errors import FeatureDisabledAppError, RateLimitedAppError, ValidationAppError
from romc_api.core.rate_limit import enforce_user_rate_limit
from romc_api.core.read_only import ensure_writable
from romc_api.db.session import get_db
from romc_api.schemas.guards import ClaimRequest, CorrectionRequest, SubmissionResponse
from romc_api.services.company_service import create_claim, create_correction, get_company_by_cui
from romc_api.services.flags_service import FeatureFlag, FlagService, get_flag_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Company"])


def _reject_honeypot(value: str | None) -> None:
    if value and value.strip():
        logger.info("submission.honeypot")
        raise ValidationAppError(code="invalid_body", message="Invalid body")


async def _require_flag(flags: FlagService, flag: FeatureFlag) -> None:
    if not await flags.get(flag):
        raise FeatureDisabledAppError(code="feature_disabled", message="Feature disabled")


async def _enforce_cooldown(
    cooldowns: CooldownGuard, kind: CooldownKind, user_id: str, resource_id: str
) -> None:
    result = await cooldowns.check(kind, user_id, resource_id)
    if not result.ok:
        raise RateLimitedAppError(
            code="cooldown_active",
            message="Cooldown active",
            details={
                "remaining_seconds": result.remaining_seconds,
                "headers": {"Retry-After": str(result.remaining_seconds)},
            },
        )


@router.post(
    "/api/company/{cui}/claim",
    response_model=SubmissionResponse,
    dependencies=[Depends(enforce_user_rate_limit)],
)
async def claim_company(
    cui: str,
    body: ClaimRequest,
    user: Annotated[SessionUser, Depends(require_session)],
    _csrf: Annotated[None, Depends(require_csrf)],
    _writable: Annotated[None, Depends(ensure_writable)],
    flags: Annotated[FlagService, Depends(get_flag_service)],
    cooldowns: Annotated[CooldownGuard, Depends(get_cooldown_guard)],
    db: Annotated[Session, Depends(get_db)],
) -> SubmissionResponse:
    """Submit an ownership claim for a company.

    One claim per user and company every 30 days; the cooldown starts only
    once the claim is stored.

    Raises:
        NotFoundAppError: 404 for an unknown CUI.
        RateLimitedAppError: 429 ``cooldown_active`` with ``remaining_seconds``.
    """
    await _require_flag(flags, FeatureFlag.CLAIMS)
    _reject_honeypot(body.hp)

    company = await run_in_threadpool(get_company_by_cui, db, cui)
    await _enforce_cooldown(cooldowns, "claim", user.user_id, company.id)

    claim = await run_in_threadpool(
        lambda: create_claim(
            db,
            company=company,
            user_id=user.user_id,
            role=body.role,
            evidence_url=str(body.evidence_url) if body.evidence_url else None,
            note=body.note,
        )
    )
    await cooldowns.commit("claim", user.user_id, company.id)
    return SubmissionResponse(id=claim.id)


@router.post(
    "/api/corrections/request",
    response_model=SubmissionResponse,
    dependencies=[Depends(enforce_user_rate_limit)],
)
async def request_correction(
    body: CorrectionRequest,
    user: Annotated[SessionUser, Depends(require_session)],
    _csrf: Annotated[None, Depends(require_csrf)],
    _writable: Annotated[None, Depends(ensure_writable)],
    flags: Annotated[FlagService, Depends(get_flag_service)],
    cooldowns: Annotated[CooldownGuard, Depends(get_cooldown_guard)],
    db: Annotated[Session, Depends(get_db)],
) -> SubmissionResponse:
    """Propose a correction to a company's public data (7-day cooldown per company)."""
    await _require_flag(flags, FeatureFlag.CORRECTIONS)
    _reject_honeypot(body.hp)

    company = await run_in_threadpool(get_company_by_cui, db, body.cui)
    await _enforce_cooldown(cooldowns, "submission", user.user_id, company.id)

    submission = await run_in_threadpool(
        lambda: create_correction(
            db,
            company=company,
            user_id=user.user_id,
            field=body.field,
            proposed_value=body.proposed_value,
            note=body.note,
        )
    )
    await cooldowns.commit("submission", user.user_id, company.id)
    return SubmissionResponse(id=submission.id)
