"""Pydantic schemas for admin and machine endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

ApiKeyPlan = Literal["FREE", "PARTNER", "PREMIUM"]
ApiKeyRateLimitKind = Literal["anon", "auth", "premium"]


class FlagToggleRequest(BaseModel):
    flag: str = Field(..., min_length=1, max_length=64)
    value: Literal["true", "false"]


class FlagToggleResponse(BaseModel):
    ok: bool = True
    flag: str
    value: bool


class FlagsResponse(BaseModel):
    ok: bool = True
    flags: dict[str, bool]


class ApiKeyCreateRequest(BaseModel):
    label: str = Field(..., min_length=1, max_length=80)
    plan: ApiKeyPlan
    rate_limit_kind: ApiKeyRateLimitKind | None = None
    active: bool | None = None


class ApiKeyCreateResponse(BaseModel):
    """The raw key is only ever returned here."""

    ok: bool = True
    id: str
    key: str
    last4: str


class ApiKeyToggleRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=36)
    active: bool


class ApiKeyToggleResponse(BaseModel):
    ok: bool = True
    id: str
    active: bool


class AuditVerifyResponse(BaseModel):
    ok: bool = True
    valid: bool
    entries: int
    broken_at_sequence: int | None = None


class CompanyPublicResponse(BaseModel):
    ok: bool = True
    cui: str
    name: str
    slug: str
    romc_score: float | None = None
    is_claimed: bool
