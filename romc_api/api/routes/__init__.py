from __future__ import annotations

from romc_api.api.routes.admin import router as admin_router
from romc_api.api.routes.company import router as company_router
from romc_api.api.routes.cron import router as cron_router
from romc_api.api.routes.csrf import router as csrf_router
from romc_api.api.routes.health import router as health_router
from romc_api.api.routes.public_api import router as public_api_router

__all__ = [
    "admin_router",
    "company_router",
    "cron_router",
    "csrf_router",
    "health_router",
    "public_api_router",
]
