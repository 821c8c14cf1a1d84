"""Pydantic schemas for user-facing mutation endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, HttpUrl

ClaimRole = Literal["founder", "employee", "other"]


class ClaimRequest(BaseModel):
    """Body of ``POST /api/company/{cui}/claim``."""

    role: ClaimRole = Field(..., description="Relationship of the claimant to the company.")
    evidence_url: HttpUrl | None = Field(
        default=None,
        description="Public page proving the relationship (company site, registry entry).",
    )
    note: str | None = Field(default=None, max_length=500)
    # Honeypot: real clients leave it empty
    hp: str | None = Field(default=None, max_length=200)


class CorrectionRequest(BaseModel):
    """Body of ``POST /api/corrections/request``."""

    cui: str = Field(..., min_length=2, max_length=16, pattern=r"^(RO)?\d{2,10}$")
    field: str = Field(..., min_length=1, max_length=64)
    proposed_value: str = Field(..., min_length=1, max_length=1000)
    note: str | None = Field(default=None, max_length=500)
    hp: str | None = Field(default=None, max_length=200)


class SubmissionResponse(BaseModel):
    ok: bool = True
    id: str


class CsrfTokenResponse(BaseModel):
    ok: bool = True
    token: str = Field(..., description="Value to echo back in the x-csrf-token header.")
