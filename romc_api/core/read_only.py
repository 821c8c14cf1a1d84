"""Read-only mode gate for mutating endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends

from romc_api.core.auth import SessionUser, get_optional_session
from romc_api.core.config import settings
from romc_api.core.errors import ReadOnlyModeAppError
from romc_api.services.flags_service import FeatureFlag, FlagService, get_flag_service

logger = logging.getLogger(__name__)


async def should_block_mutation(flags: FlagService, user: SessionUser | None) -> bool:
    if not await flags.get(FeatureFlag.READ_ONLY_MODE):
        return False
    if user is not None and user.is_admin and settings.app.read_only_admin_bypass:
        return False
    return True


async def ensure_writable(
    flags: Annotated[FlagService, Depends(get_flag_service)],
    user: Annotated[SessionUser | None, Depends(get_optional_session)],
) -> None:
    """FastAPI dependency returning 503 while READ_ONLY_MODE is on."""
    if await should_block_mutation(flags, user):
        logger.info("read_only.blocked")
        raise ReadOnlyModeAppError(
            code="read_only_mode",
            message="The site is in read-only mode. Try again later.",
        )
