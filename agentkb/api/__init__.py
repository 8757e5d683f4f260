"""agentkb API layer: routes, schemas, WebSocket, and middleware."""

from agentkb.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from agentkb.api.routes import router
from agentkb.api.schemas import (
    CreateTextSourceRequest,
    CreateUploadedFileSourceRequest,
    CreateWebsiteSourceRequest,
    DataSourceResponse,
    ErrorResponse,
    HealthResponse,
    JobResponse,
    SourceCreatedResponse,
)
from agentkb.api.websocket import websocket_job_updates, websocket_source_updates

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "websocket_job_updates",
    "websocket_source_updates",
    "CreateTextSourceRequest",
    "CreateUploadedFileSourceRequest",
    "CreateWebsiteSourceRequest",
    "DataSourceResponse",
    "ErrorResponse",
    "HealthResponse",
    "JobResponse",
    "SourceCreatedResponse",
]
