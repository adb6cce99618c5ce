"""setlist-sync API layer: routes, schemas and middleware."""

from setlist_sync.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from setlist_sync.api.routes import router
from setlist_sync.api.schemas import (
    ActivityRequest,
    ErrorResponse,
    HealthResponse,
    ImportAcceptedResponse,
    ImportRequest,
    TrendingResponse,
)

__all__ = [
    "ActivityRequest",
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "HealthResponse",
    "ImportAcceptedResponse",
    "ImportRequest",
    "RequestLoggingMiddleware",
    "TrendingResponse",
    "configure_cors",
    "router",
]
