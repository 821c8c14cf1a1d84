"""ORM models."""

from romc_api.models.api_key import ApiKey
from romc_api.models.audit_log import AdminAuditLog, AuditChainHead
from romc_api.models.company import Company, CompanyClaim, CorrectionSubmission

__all__ = [
    "AdminAuditLog",
    "ApiKey",
    "AuditChainHead",
    "Company",
    "CompanyClaim",
    "CorrectionSubmission",
]
