"""Map domain errors to HTTP responses.

Every error response has the same envelope::

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": ...}}

``details`` is omitted when empty. 5xx responses are logged at error
level and everything else at warning. A 429 also carries ``Retry-After``
in whole seconds.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    AuthUnavailableError,
    NotFoundError,
    RateLimitedError,
    StorageUnavailableError,
    ValidationAppError,
)
from app.core.logging import get_request_id
from app.core.middleware import request_id_header

logger = logging.getLogger(__name__)

# Checked in order; the first matching base class wins.
STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (RateLimitedError, 429),
    (AuthUnavailableError, 503),
    (StorageUnavailableError, 503),
    (AuthenticationAppError, 401),
    (NotFoundError, 404),
    (ValidationAppError, 400),
)


def status_for(exc: AppError) -> int:
    """HTTP status for a domain error; 400 when no entry matches."""
    return next(
        (status for error_type, status in STATUS_BY_ERROR if isinstance(exc, error_type)),
        400,
    )


def retry_after_header(seconds: float) -> str:
    """Whole seconds, rounded up, never below 1."""
    return str(max(1, math.ceil(seconds)))


def current_request_id(request: Request) -> str | None:
    """Request id from context, else from the request state or the incoming header."""
    request_id = get_request_id() or getattr(request.state, "request_id", None)
    if not isinstance(request_id, str):
        request_id = request.headers.get(request_id_header(request))
    return request_id if isinstance(request_id, str) else None


def _envelope(request: Request, code: str, message: str, details: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message, "request_id": current_request_id(request)}
    if details:
        error["details"] = details
    return {"error": error}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    status_code = status_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "retryable": exc.retryable,
            "request_path": request.url.path,
        },
    )

    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": retry_after_header(exc.retry_after)}

    return JSONResponse(
        status_code=status_code,
        content=_envelope(request, exc.code, exc.message, exc.details),
        headers=headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log everything, return nothing internal."""
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={
            "error_type": type(exc).__name__,
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content=_envelope(
            request,
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
        ),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the domain and fallback handlers on ``app``."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
