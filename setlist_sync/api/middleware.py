"""API middleware: CORS, request logging and error handling.

Domain errors raised by route handlers are converted into JSON
``ErrorResponse`` bodies with a status code chosen by error type.

# ─── MIDDLEWARE EXECUTION ORDER ────────────────────────────────────────
#
# Starlette middleware is a stack (last added, first executed):
#
#     app.add_middleware(ErrorHandlingMiddleware)    # inner
#     app.add_middleware(RequestLoggingMiddleware)   # outer
#
#   Client → RequestLogging → ErrorHandling → route handler
#
# RequestLoggingMiddleware therefore logs the final status code, after
# ErrorHandling has turned an exception into a JSON error.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from setlist_sync.api.schemas import ErrorResponse
from setlist_sync.utils.errors import (
    ConfigurationError,
    FatalProviderError,
    ImportInProgressError,
    InvalidStageTransitionError,
    SetlistSyncError,
    TransientProviderError,
)
from setlist_sync.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# First matching class wins, so subclasses come before their parents.
_STATUS_BY_ERROR: tuple[tuple[type[SetlistSyncError], int], ...] = (
    (ImportInProgressError, 409),
    (InvalidStageTransitionError, 409),
    (TransientProviderError, 503),
    (FatalProviderError, 502),
    (ConfigurationError, 500),
)


def status_for(exc: SetlistSyncError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; all origins unless *allowed_origins* is given."""
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``SetlistSyncError`` subclasses and return structured JSON errors.

    Stack traces stay in the server log; the client sees the error class
    name and message only.  Anything that is not a ``SetlistSyncError``
    falls through to FastAPI's default 500 handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except SetlistSyncError as exc:
            status_code = status_for(exc)
            log = _logger.warning if status_code < 500 else _logger.error
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status_code, content=body.model_dump())
