"""Company lookups and the user submissions guarded by cooldowns.

Synchronous SQLAlchemy code; async routes call it through the threadpool.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from romc_api.core.errors import NotFoundAppError
from romc_api.models.company import Company, CompanyClaim, CorrectionSubmission

logger = logging.getLogger(__name__)

_CUI_PREFIX = re.compile(r"^RO", re.IGNORECASE)


def normalize_cui(raw: str) -> str:
    """Canonical CUI: digits only, without the optional ``RO`` VAT prefix.

    Examples:
        >>> normalize_cui(" ro 14399840 ")
        '14399840'
    """
    return _CUI_PREFIX.sub("", raw.strip()).replace(" ", "")


def get_company_by_cui(db: Session, cui: str) -> Company:
    """Fetch a company by CUI.

    Raises:
        NotFoundAppError: If no company has this CUI.
    """
    company = db.execute(
        select(Company).where(Company.cui == normalize_cui(cui))
    ).scalar_one_or_none()
    if company is None:
        raise NotFoundAppError(code="company_not_found", message="Not found")
    return company


def create_claim(
    db: Session,
    *,
    company: Company,
    user_id: str,
    role: str,
    evidence_url: str | None,
    note: str | None,
) -> CompanyClaim:
    claim = CompanyClaim(
        company_id=company.id,
        user_id=user_id,
        role=role,
        evidence_url=evidence_url,
        note=note.strip() if note else None,
        status="PENDING",
    )
    db.add(claim)
    db.commit()
    logger.info("claim.created", extra={"claim_id": claim.id, "company_id": company.id})
    return claim


def create_correction(
    db: Session,
    *,
    company: Company,
    user_id: str,
    field: str,
    proposed_value: str,
    note: str | None,
) -> CorrectionSubmission:
    submission = CorrectionSubmission(
        company_id=company.id,
        user_id=user_id,
        field=field.strip(),
        proposed_value=proposed_value.strip(),
        note=note.strip() if note else None,
        status="PENDING",
    )
    db.add(submission)
    db.commit()
    logger.info(
        "correction.created",
        extra={"submission_id": submission.id, "company_id": company.id, "field": submission.field},
    )
    return submission
