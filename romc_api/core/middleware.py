"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a correlation id so guard decisions
(rate limiting, CSRF rejections, audit failures) can be traced back to the
request that triggered them.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from romc_api.core.config import settings
from romc_api.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

# Client supplied ids longer than this are replaced
_MAX_REQUEST_ID_LENGTH = 128


async def request_id_middleware(request: Request, call_next) -> Response:
    """Generate or propagate the request id and time the request.

    If the client provides the configured header (``X-Request-ID`` by
    default) that value is reused, otherwise a UUID4 is generated. The id is
    stored in contextvars for the lifetime of the request and echoed back in
    the response along with ``X-Request-Duration-ms``.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with correlation headers added.
    """

    header_name = settings.log.request_id_header
    incoming = request.headers.get(header_name)
    if incoming and len(incoming) <= _MAX_REQUEST_ID_LENGTH:
        request_id = incoming
    else:
        request_id = str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
