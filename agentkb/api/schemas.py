"""Pydantic request/response schemas for the agentkb API.

# ─── HOW SCHEMAS WORK (Junior Developer Guide) ────────────────────────
#
# These models define the *shape* of every HTTP request and response
# body.  FastAPI uses them to validate incoming JSON (invalid requests
# get a 422), to serialize responses (response_model=...), and to
# generate the OpenAPI docs at /docs.
#
# Convention: request schemas end with "Request", response schemas end
# with "Response".  Domain models (DataSource, Job) are converted with
# ``from_domain`` so internal fields never leak by accident.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, HttpUrl

from agentkb.models.data_source import DataSource, SourceStatus, SourceType, TextSourceConfig
from agentkb.models.job import Job, JobPriority, JobProgress, JobStatus, JobType

_TEXT_PREVIEW_CHARS = 200


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateTextSourceRequest(BaseModel):
    """Inline text to add to an agent's knowledge base."""

    name: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    priority: int = Field(default=int(JobPriority.NORMAL), ge=1, le=100)


class CreateWebsiteSourceRequest(BaseModel):
    """A website to crawl into an agent's knowledge base."""

    url: HttpUrl
    name: str | None = Field(default=None, max_length=255)
    crawl_subpages: bool = False
    max_pages: int = Field(default=10, ge=1, le=100)
    priority: int = Field(default=int(JobPriority.NORMAL), ge=1, le=100)


class CreateUploadedFileSourceRequest(BaseModel):
    """Register a file the client already uploaded through a presigned URL."""

    storage_key: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1, max_length=255)
    content_type: str | None = None
    name: str | None = Field(default=None, max_length=255)
    priority: int = Field(default=int(JobPriority.NORMAL), ge=1, le=100)


class ReprocessRequest(BaseModel):
    priority: int = Field(default=int(JobPriority.NORMAL), ge=1, le=100)


class PresignUploadRequest(BaseModel):
    agent_id: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class DataSourceResponse(BaseModel):
    """Public view of a DataSource.

    Text sources report a short preview of their content rather than the
    full body.
    """

    id: str
    agent_id: str
    type: SourceType
    name: str
    status: SourceStatus
    config: dict[str, Any]
    error_message: str | None = None
    char_count: int | None = None
    chunk_count: int | None = None
    namespace: str
    created_at: datetime
    processed_at: datetime | None = None

    @classmethod
    def from_domain(cls, source: DataSource) -> DataSourceResponse:
        config = source.config.model_dump(mode="json")
        if isinstance(source.config, TextSourceConfig):
            content = source.config.content
            config["content"] = content[:_TEXT_PREVIEW_CHARS]
            config["content_length"] = len(content)
        return cls(
            id=source.id,
            agent_id=source.agent_id,
            type=source.type,
            name=source.name,
            status=source.status,
            config=config,
            error_message=source.error_message,
            char_count=source.char_count,
            chunk_count=source.chunk_count,
            namespace=source.namespace,
            created_at=source.created_at,
            processed_at=source.processed_at,
        )


class JobResponse(BaseModel):
    """Public view of a Job."""

    id: str
    data_source_id: str
    type: JobType
    priority: int
    status: JobStatus
    progress: JobProgress | None = None
    result: dict[str, Any] | None = None
    error_message: str | None = None
    attempts: int
    max_attempts: int
    scheduled_for: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_domain(cls, job: Job) -> JobResponse:
        return cls(**job.model_dump())


class SourceCreatedResponse(BaseModel):
    """A newly created DataSource and the job processing it."""

    source: DataSourceResponse
    job: JobResponse


class SourceListResponse(BaseModel):
    sources: list[DataSourceResponse]
    total: int


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class DeleteSourceResponse(BaseModel):
    source_id: str
    vectors_deleted: int
    blob_deleted: bool


class ChannelInfoResponse(BaseModel):
    """Where to listen for realtime events."""

    channel: str
    event: str
    websocket_path: str


class PresignedUrlResponse(BaseModel):
    url: str
    key: str
    method: str
    expires_at: datetime


class VectorStatsResponse(BaseModel):
    provider: str
    total_vector_count: int
    dimension: int | None = None
    namespaces: dict[str, int] = Field(default_factory=dict)


class QueueHealthResponse(BaseModel):
    """Liveness of the queue plus per-state depth; consumes nothing."""

    healthy: bool
    waiting: int
    delayed: int
    active: int
    dead: int
    worker: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]
    config: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
