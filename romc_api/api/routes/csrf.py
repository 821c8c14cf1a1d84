from __future__ import annotations

from fastapi import APIRouter, Response

from romc_api.core.csrf import issue_csrf_token
from romc_api.schemas.guards import CsrfTokenResponse

router = APIRouter(tags=["Security"])


@router.get("/api/csrf", response_model=CsrfTokenResponse)
async def get_csrf_token(response: Response) -> CsrfTokenResponse:
    """Issue a fresh CSRF token.

    The same value is set in the ``csrf-token`` cookie and returned in the
    body; clients echo it in ``x-csrf-token`` on mutating requests.
    """
    token = issue_csrf_token(response)
    response.headers["Cache-Control"] = "no-store"
    return CsrfTokenResponse(token=token)
