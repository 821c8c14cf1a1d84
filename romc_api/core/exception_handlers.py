"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return the ``{ok: false, ...}`` envelope with
proper HTTP status codes and traceability.

Design:
- AppError subclasses → their declared status (400, 401, 403, 404, 409, 429, 500, 503)
- RequestValidationError → 400 invalid_body
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from romc_api.core.errors import AppError
from romc_api.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _rate_limit_headers(request: Request) -> dict[str, str]:
    """Rate-limit headers recorded earlier in this request, if any."""
    return dict(getattr(request.state, "rate_limit_headers", None) or {})


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with the standard envelope.

    Response headers carried in ``details["headers"]`` (rate-limit headers,
    ``Retry-After``) are moved onto the HTTP response instead of the body.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error's status code.
    """
    status_code = exc.status_code

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    details = dict(exc.details or {})
    headers = {**_rate_limit_headers(request), **(details.pop("headers", None) or {})}

    content = {
        "ok": False,
        "error": exc.message,
        "code": exc.code,
        "request_id": get_request_id(),
    }
    if details:
        content["details"] = details

    return JSONResponse(status_code=status_code, content=content, headers=headers or None)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render body/query validation failures as 400 invalid_body."""
    logger.info(
        "request_validation_failed",
        extra={
            "request_path": request.url.path,
            "error_count": len(exc.errors()),
        },
    )
    return JSONResponse(
        status_code=400,
        headers=_rate_limit_headers(request) or None,
        content={
            "ok": False,
            "error": "Invalid body",
            "code": "invalid_body",
            "request_id": get_request_id(),
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message,
    so no stack traces reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        headers=_rate_limit_headers(request) or None,
        content={
            "ok": False,
            "error": "Internal error",
            "code": "internal_server_error",
            "request_id": get_request_id(),
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(Exception)(general_exception_handler)
