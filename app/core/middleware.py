"""Request correlation and access logging.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

DURATION_HEADER = "X-Request-Duration-ms"


def request_id_header(request: Request) -> str:
    app_settings = getattr(request.app.state, "settings", None) or settings
    return app_settings.log.request_id_header


async def request_id_middleware(request: Request, call_next) -> Response:
    """Tag the request with a correlation id and log one access line.

    A client-supplied id (header from LOG_REQUEST_ID_HEADER) is reused,
    otherwise a UUID4 is generated. The id is visible to every log record
    emitted while the request is handled, including error handler logs,
    and is echoed back together with the handling time.
    """

    header_name = request_id_header(request)
    request_id = request.headers.get(header_name) or str(uuid.uuid4())

    set_request_id(request_id)
    # Read by the 500 handler, which runs after the contextvar is cleared.
    request.state.request_id = request_id
    started = time.perf_counter()
    try:
        response: Response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "route": request.url.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault(DURATION_HEADER, f"{elapsed_ms:.2f}")
    return response
