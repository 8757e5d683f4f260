"""API middleware: CORS, request logging, and error handling.

Provides helper functions and middleware classes to configure cross-origin
resource sharing, structured request logging (via structlog), and
automatic conversion of ``AgentKBError`` subclasses into JSON
``ErrorResponse`` bodies with a status code matching the error taxonomy.

# ─── MIDDLEWARE EXECUTION ORDER (Junior Developer Guide) ───────────────
#
# Starlette middleware is a stack (LIFO, last added runs first):
#
#   In main.py:
#     app.add_middleware(ErrorHandlingMiddleware)    # inner
#     app.add_middleware(RequestLoggingMiddleware)   # outer
#
#   Request flow:
#     Client → RequestLogging → ErrorHandling → route handler
#
# So RequestLoggingMiddleware sees the *final* status code, after
# ErrorHandling turned an AgentKBError into a JSON error.
#
# Status mapping:
#   not found (DataSource / Job)                    → 404
#   busy / wrong state (lease held, job terminal)   → 409
#   content (corrupt / unsupported / empty)         → 422
#   anything else                                   → 500
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from agentkb.api.schemas import ErrorResponse
from agentkb.utils.errors import (
    AgentKBError,
    ContentExtractionError,
    DataSourceNotFoundError,
    EmptyContentError,
    InvalidJobStateError,
    JobCancelledError,
    JobNotFoundError,
    SourceBusyError,
)
from agentkb.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AgentKBError], int], ...] = (
    (DataSourceNotFoundError, 404),
    (JobNotFoundError, 404),
    (SourceBusyError, 409),
    (InvalidJobStateError, 409),
    (JobCancelledError, 409),
    (ContentExtractionError, 422),
    (EmptyContentError, 422),
)


def status_for(exc: AgentKBError) -> int:
    """HTTP status code for an application error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Defaults to ``["*"]``; production deployments pass their own origins.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


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


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``AgentKBError`` subclasses and return structured JSON errors.

    Stack traces are logged server-side only; the client sees the error
    class name and its message.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except AgentKBError as exc:
            status_code = status_for(exc)
            log = _logger.error if status_code >= 500 else _logger.warning
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=exc.message,
            )
            return JSONResponse(
                status_code=status_code,
                content=body.model_dump(),
            )
