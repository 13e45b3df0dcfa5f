"""API middleware: CORS, request context/logging, and error mapping.

``main.create_app`` adds ErrorHandling first and RequestLogging second;
the last one added runs first, so a request flows::

    Client -> RequestLogging -> ErrorHandling -> route handler

RequestLogging binds ``request_id`` and the caller's ``X-User-Id`` for
every event logged while the request runs, echoes the request id in the
response, and logs the final status, including the ones ErrorHandling
produced.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from notemind.api.schemas import ErrorResponse
from notemind.utils.errors import (
    EmbeddingFailure,
    LLMError,
    NotemindError,
    RateLimitError,
    StorageError,
    ValidationError,
    VectorIndexError,
)
from notemind.utils.logging import get_logger, log_context

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"

# Health probes from load balancers would drown everything else at INFO.
_QUIET_PATHS = frozenset({"/api/v1/health"})

# Most specific first.
_ERROR_STATUS: tuple[tuple[type[NotemindError], int], ...] = (
    (ValidationError, 400),
    (RateLimitError, 429),
    (LLMError, 502),
    (EmbeddingFailure, 502),
    (StorageError, 503),
    (VectorIndexError, 503),
)


def status_for_error(exc: NotemindError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Allow browser clients from *allowed_origins* (``["*"]`` when unset).

    Credentials are only allowed with an explicit origin list, and the
    request id header is exposed so clients can quote it.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind request identity to the log context and log each request once."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        user_id = request.headers.get("X-User-Id")
        start = time.perf_counter()
        response: Response | None = None

        with log_context(request_id=request_id, user_id=user_id):
            try:
                response = await call_next(request)
                response.headers[REQUEST_ID_HEADER] = request_id
                return response
            finally:
                path = str(request.url.path)
                log = _logger.debug if path in _QUIET_PATHS else _logger.info
                log(
                    "http_request",
                    method=request.method,
                    path=path,
                    status=response.status_code if response else 500,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn ``NotemindError`` escaping a non-callable route into a JSON error.

    Callable endpoints answer ``success=false`` themselves; this covers
    uploads, downloads and the event hook.  The status follows the error
    type (see :func:`status_for_error`).
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except NotemindError as exc:
            status_code = status_for_error(exc)
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
            headers = {"Retry-After": "30"} if status_code == 429 else None
            return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)
