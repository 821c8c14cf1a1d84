"""Public, API-key authenticated read endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from romc_api.adapters.kv.base import AbstractKeyValueStore
from romc_api.adapters.kv.factory import get_kv_store
from romc_api.core.errors import FeatureDisabledAppError
from romc_api.core.rate_limit import enforce_api_key_rate_limit
from romc_api.db.session import get_db
from romc_api.schemas.admin import CompanyPublicResponse
from romc_api.services.api_key_service import ApiKeyContext, record_api_key_usage
from romc_api.services.company_service import get_company_by_cui
from romc_api.services.flags_service import FeatureFlag, FlagService, get_flag_service

router = APIRouter(prefix="/api/v1", tags=["Public API"])


@router.get("/company/{cui}", response_model=CompanyPublicResponse)
async def get_company(
    cui: str,
    api_key: Annotated[ApiKeyContext, Depends(enforce_api_key_rate_limit)],
    flags: Annotated[FlagService, Depends(get_flag_service)],
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
    db: Annotated[Session, Depends(get_db)],
) -> CompanyPublicResponse:
    """Company profile for API consumers.

    Counted against the expensive tier matching the key's rate-limit kind,
    keyed by the API key rather than the caller's IP.
    """
    if not await flags.get(FeatureFlag.API_ACCESS):
        raise FeatureDisabledAppError(code="feature_disabled", message="API access is currently disabled")

    company = await run_in_threadpool(get_company_by_cui, db, cui)
    await record_api_key_usage(store, api_key.id)
    return CompanyPublicResponse(
        cui=company.cui,
        name=company.name,
        slug=company.slug,
        romc_score=company.romc_score,
        is_claimed=company.is_claimed,
    )
