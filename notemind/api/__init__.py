"""notemind API layer: routes, schemas, and middleware."""

from notemind.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from notemind.api.routes import files_router, router
from notemind.api.schemas import (
    CallableResponse,
    DocumentUploadResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "files_router",
    "router",
    "CallableResponse",
    "DocumentUploadResponse",
    "ErrorResponse",
    "HealthResponse",
]
