"""FastAPI API routes for agentkb.

Thin HTTP layer over :class:`SourceService`: every source-creating route
writes a DataSource (``pending``) and a Job, then enqueues the job for
the worker pool.  Service dependencies are resolved from ``app.state``
via FastAPI's ``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP (Junior Developer Guide) ───────────────────────────
#
# Endpoint                                          Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/agents/{aid}/sources/text                 POST    Add inline text
# /api/v1/agents/{aid}/sources/website              POST    Add a website crawl
# /api/v1/agents/{aid}/sources/file                 POST    Upload a file (multipart)
# /api/v1/agents/{aid}/sources/file/uploaded        POST    Register a presigned upload
# /api/v1/agents/{aid}/sources                      GET     List sources
# /api/v1/agents/{aid}/sources/{sid}                GET     One source
# /api/v1/agents/{aid}/sources/{sid}                DELETE  Source + vectors + blob
# /api/v1/agents/{aid}/sources/{sid}/reprocess      POST    New job for the source
# /api/v1/agents/{aid}/sources/{sid}/jobs           GET     Jobs of one source
# /api/v1/agents/{aid}/jobs                         GET     Jobs of an agent
# /api/v1/jobs/{jid}                                GET     Job status / progress
# /api/v1/jobs/{jid}                                DELETE  Cancel
# /api/v1/jobs/{jid}/retry                          POST    Retry a failed job
# /api/v1/realtime/jobs/{jid}/subscribe             GET     Job channel info
# /api/v1/realtime/agents/{aid}/subscribe           GET     Source channel info
# /api/v1/uploads/presign                           POST    Presigned upload URL
# /api/v1/uploads/presign-download?key=             GET     Presigned download URL
# /api/v1/files/{key}                               GET/PUT Signed local file access
# /api/v1/vectors/stats                             GET     Vector index stats
# /api/v1/queue/health                              GET     Queue liveness + depth
# /api/v1/health                                    GET     Health + providers
#
# Errors raised by the service (AgentKBError) are turned into JSON by
# ErrorHandlingMiddleware: 404 not found, 409 busy, 422 content, 500 other.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, Response, UploadFile

from agentkb.api.schemas import (
    ChannelInfoResponse,
    CreateTextSourceRequest,
    CreateUploadedFileSourceRequest,
    CreateWebsiteSourceRequest,
    DataSourceResponse,
    DeleteSourceResponse,
    ErrorResponse,
    HealthResponse,
    JobListResponse,
    JobResponse,
    PresignedUrlResponse,
    PresignUploadRequest,
    QueueHealthResponse,
    ReprocessRequest,
    SourceCreatedResponse,
    SourceListResponse,
    VectorStatsResponse,
)
from agentkb.config.settings import Settings
from agentkb.interfaces.job_queue import IJobQueue
from agentkb.interfaces.object_store import IObjectStore
from agentkb.models.data_source import DataSource
from agentkb.models.events import (
    JOB_STATUS_EVENT,
    SOURCE_STATUS_EVENT,
    agent_sources_channel,
    job_channel,
)
from agentkb.models.job import Job, JobPriority, JobStatus
from agentkb.models.storage import StoredObject
from agentkb.providers.object_store.local_object_store import LocalObjectStore
from agentkb.services.ingestion.vector_store_adapter import VectorStoreAdapter
from agentkb.services.source_service import SourceService
from agentkb.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_UPLOAD_CHUNK_SIZE = 64 * 1024

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependencies (read from app.state, populated by bootstrap.build_components)
# ---------------------------------------------------------------------------


def _get_source_service(request: Request) -> SourceService:
    return request.app.state.source_service


def _get_vector_store(request: Request) -> VectorStoreAdapter:
    return request.app.state.vector_store


def _get_job_queue(request: Request) -> IJobQueue:
    return request.app.state.job_queue


def _get_object_store(request: Request) -> IObjectStore:
    return request.app.state.object_store


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


SourceServiceDep = Annotated[SourceService, Depends(_get_source_service)]
VectorStoreDep = Annotated[VectorStoreAdapter, Depends(_get_vector_store)]
JobQueueDep = Annotated[IJobQueue, Depends(_get_job_queue)]
ObjectStoreDep = Annotated[IObjectStore, Depends(_get_object_store)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]


def _created(source: DataSource, job: Job) -> SourceCreatedResponse:
    return SourceCreatedResponse(
        source=DataSourceResponse.from_domain(source),
        job=JobResponse.from_domain(job),
    )


# ---------------------------------------------------------------------------
# Source creation
# ---------------------------------------------------------------------------


@router.post(
    "/agents/{agent_id}/sources/text",
    response_model=SourceCreatedResponse,
    status_code=201,
    summary="Add inline text to an agent's knowledge base",
)
async def create_text_source(
    agent_id: str,
    body: CreateTextSourceRequest,
    service: SourceServiceDep,
) -> SourceCreatedResponse:
    source, job = await service.create_text_source(
        agent_id, body.name, body.content, priority=body.priority
    )
    return _created(source, job)


@router.post(
    "/agents/{agent_id}/sources/website",
    response_model=SourceCreatedResponse,
    status_code=201,
    summary="Crawl a website into an agent's knowledge base",
)
async def create_website_source(
    agent_id: str,
    body: CreateWebsiteSourceRequest,
    service: SourceServiceDep,
) -> SourceCreatedResponse:
    source, job = await service.create_website_source(
        agent_id,
        str(body.url),
        name=body.name,
        crawl_subpages=body.crawl_subpages,
        max_pages=body.max_pages,
        priority=body.priority,
    )
    return _created(source, job)


@router.post(
    "/agents/{agent_id}/sources/file",
    response_model=SourceCreatedResponse,
    status_code=201,
    responses={413: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Upload a file into an agent's knowledge base",
)
async def create_file_source(
    agent_id: str,
    file: UploadFile,
    service: SourceServiceDep,
    settings: SettingsDep,
    name: Annotated[str | None, Form()] = None,
    priority: Annotated[int, Form(ge=1, le=100)] = int(JobPriority.NORMAL),
) -> SourceCreatedResponse:
    """Store the upload in the object store, then create and enqueue the source."""
    # Read in chunks so an oversized upload is rejected without buffering it whole.
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > settings.max_upload_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum: {settings.max_upload_bytes} bytes.",
            )
        chunks.append(chunk)
    data = b"".join(chunks)

    source, job = await service.create_file_source(
        agent_id,
        file.filename or "upload",
        data,
        file.content_type,
        name=name,
        priority=priority,
    )
    return _created(source, job)


@router.post(
    "/agents/{agent_id}/sources/file/uploaded",
    response_model=SourceCreatedResponse,
    status_code=201,
    summary="Create a file source from an object uploaded via a presigned URL",
)
async def create_uploaded_file_source(
    agent_id: str,
    body: CreateUploadedFileSourceRequest,
    service: SourceServiceDep,
) -> SourceCreatedResponse:
    source, job = await service.create_file_source_from_key(
        agent_id,
        body.storage_key,
        body.file_name,
        body.content_type,
        name=body.name,
        priority=body.priority,
    )
    return _created(source, job)


# ---------------------------------------------------------------------------
# Source queries / maintenance
# ---------------------------------------------------------------------------


@router.get("/agents/{agent_id}/sources", response_model=SourceListResponse)
async def list_sources(agent_id: str, service: SourceServiceDep) -> SourceListResponse:
    sources = await service.list_sources(agent_id)
    return SourceListResponse(
        sources=[DataSourceResponse.from_domain(s) for s in sources],
        total=len(sources),
    )


@router.get(
    "/agents/{agent_id}/sources/{source_id}",
    response_model=DataSourceResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_source(agent_id: str, source_id: str, service: SourceServiceDep) -> DataSourceResponse:
    return DataSourceResponse.from_domain(await service.get_source(agent_id, source_id))


@router.delete(
    "/agents/{agent_id}/sources/{source_id}",
    response_model=DeleteSourceResponse,
    responses={404: {"model": ErrorResponse}},
)
async def delete_source(
    agent_id: str, source_id: str, service: SourceServiceDep
) -> DeleteSourceResponse:
    outcome = await service.delete_source(agent_id, source_id)
    return DeleteSourceResponse(**outcome)


@router.post(
    "/agents/{agent_id}/sources/{source_id}/reprocess",
    response_model=JobResponse,
    status_code=202,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reprocess_source(
    agent_id: str,
    source_id: str,
    service: SourceServiceDep,
    body: ReprocessRequest | None = None,
) -> JobResponse:
    priority = body.priority if body is not None else int(JobPriority.NORMAL)
    job = await service.reprocess_source(agent_id, source_id, priority=priority)
    return JobResponse.from_domain(job)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


@router.get("/agents/{agent_id}/jobs", response_model=JobListResponse)
async def list_agent_jobs(
    agent_id: str,
    service: SourceServiceDep,
    status: JobStatus | None = None,
    limit: int = Query(default=50, ge=1, le=500),
) -> JobListResponse:
    jobs = await service.list_jobs_for_agent(agent_id, status=status, limit=limit)
    return JobListResponse(jobs=[JobResponse.from_domain(j) for j in jobs], total=len(jobs))


@router.get("/agents/{agent_id}/sources/{source_id}/jobs", response_model=JobListResponse)
async def list_source_jobs(
    agent_id: str, source_id: str, service: SourceServiceDep
) -> JobListResponse:
    jobs = await service.list_jobs_for_source(agent_id, source_id)
    return JobListResponse(jobs=[JobResponse.from_domain(j) for j in jobs], total=len(jobs))


@router.get("/jobs/{job_id}", response_model=JobResponse, responses={404: {"model": ErrorResponse}})
async def get_job(job_id: str, service: SourceServiceDep) -> JobResponse:
    return JobResponse.from_domain(await service.get_job(job_id))


@router.delete(
    "/jobs/{job_id}",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Cancel a pending or processing job",
)
async def cancel_job(job_id: str, service: SourceServiceDep) -> JobResponse:
    return JobResponse.from_domain(await service.cancel_job(job_id))


@router.post(
    "/jobs/{job_id}/retry",
    response_model=JobResponse,
    status_code=202,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Create a new job for the source of a failed job",
)
async def retry_job(job_id: str, service: SourceServiceDep) -> JobResponse:
    return JobResponse.from_domain(await service.retry_job(job_id))


# ---------------------------------------------------------------------------
# Realtime channel info
# ---------------------------------------------------------------------------


@router.get("/realtime/jobs/{job_id}/subscribe", response_model=ChannelInfoResponse)
async def job_channel_info(job_id: str) -> ChannelInfoResponse:
    return ChannelInfoResponse(
        channel=job_channel(job_id),
        event=JOB_STATUS_EVENT,
        websocket_path=f"/ws/jobs/{job_id}",
    )


@router.get("/realtime/agents/{agent_id}/subscribe", response_model=ChannelInfoResponse)
async def agent_channel_info(agent_id: str) -> ChannelInfoResponse:
    return ChannelInfoResponse(
        channel=agent_sources_channel(agent_id),
        event=SOURCE_STATUS_EVENT,
        websocket_path=f"/ws/agents/{agent_id}/sources",
    )


# ---------------------------------------------------------------------------
# Uploads / signed file access
# ---------------------------------------------------------------------------


@router.post("/uploads/presign", response_model=PresignedUrlResponse)
async def presign_upload(body: PresignUploadRequest, service: SourceServiceDep) -> PresignedUrlResponse:
    presigned = await service.presign_upload(body.agent_id, body.file_name, body.content_type)
    return PresignedUrlResponse(**presigned.model_dump())


@router.get(
    "/uploads/presign-download",
    response_model=PresignedUrlResponse,
    responses={404: {"model": ErrorResponse}},
)
async def presign_download(
    service: SourceServiceDep,
    object_store: ObjectStoreDep,
    key: str = Query(..., min_length=1),
) -> PresignedUrlResponse:
    if await object_store.head(key) is None:
        raise HTTPException(status_code=404, detail=f"File not found: {key}")
    presigned = await service.presign_download(key)
    return PresignedUrlResponse(**presigned.model_dump())


def _require_local_store(object_store: IObjectStore) -> LocalObjectStore:
    if not isinstance(object_store, LocalObjectStore):
        raise HTTPException(status_code=404, detail="Signed file access is served by the object store")
    return object_store


@router.get("/files/{key:path}", responses={403: {"model": ErrorResponse}})
async def download_file(
    key: str,
    object_store: ObjectStoreDep,
    expires: int = Query(...),
    signature: str = Query(...),
) -> Response:
    store = _require_local_store(object_store)
    if not store.verify_signature(key, "GET", expires, signature):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")
    info = await store.head(key)
    if info is None:
        raise HTTPException(status_code=404, detail=f"File not found: {key}")
    data = await store.get(key)
    return Response(content=data, media_type=info.content_type or "application/octet-stream")


@router.put("/files/{key:path}", response_model=StoredObject, responses={403: {"model": ErrorResponse}})
async def upload_file(
    key: str,
    request: Request,
    object_store: ObjectStoreDep,
    settings: SettingsDep,
    expires: int = Query(...),
    signature: str = Query(...),
) -> StoredObject:
    store = _require_local_store(object_store)
    if not store.verify_signature(key, "PUT", expires, signature):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")
    data = await request.body()
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum: {settings.max_upload_bytes} bytes.",
        )
    content_type = request.headers.get("content-type", "application/octet-stream")
    return await store.put(key, data, content_type)


# ---------------------------------------------------------------------------
# Introspection
# ---------------------------------------------------------------------------


@router.get("/vectors/stats", response_model=VectorStatsResponse)
async def vector_stats(vector_store: VectorStoreDep) -> VectorStatsResponse:
    stats = await vector_store.describe_stats()
    return VectorStatsResponse(provider=vector_store.provider_name, **stats.model_dump())


@router.get("/queue/health", response_model=QueueHealthResponse)
async def queue_health(request: Request, queue: JobQueueDep) -> QueueHealthResponse:
    healthy = await queue.is_healthy()
    depth = await queue.depth()
    worker_pool = getattr(request.app.state, "worker_pool", None)
    return QueueHealthResponse(
        healthy=healthy,
        waiting=depth.waiting,
        delayed=depth.delayed,
        active=depth.active,
        dead=depth.dead,
        worker=worker_pool.stats() if worker_pool is not None else None,
    )


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, queue: JobQueueDep) -> HealthResponse:
    state = request.app.state
    providers: dict[str, Any] = {
        "embeddings": {
            "name": state.embedding_client.provider_name,
            "mock": state.embedding_client.is_mock,
            "dimension": state.embedding_client.dimension,
        },
        "vector_index": state.vector_store.provider_name,
        "object_store": state.object_store.get_provider_name(),
        "realtime": state.realtime_transport.get_provider_name(),
        "queue": queue.get_provider_name(),
    }
    queue_ok = await queue.is_healthy()
    config = getattr(state, "config", {})
    return HealthResponse(
        status="ok" if queue_ok else "degraded",
        version=str(config.get("app", {}).get("version", "0.1.0")),
        providers=providers,
        config=config,
    )
