"""DataSource and Job operations used by the HTTP layer and the CLI.

This is the producer side of the pipeline.  Every operation that starts
work follows the same three steps:

    1. write the DataSource row (``pending``)
    2. write a Job row (``pending``)
    3. ``add_processing_job`` → job queue message ``{job_id, data_source_id, type}``

Reprocessing a DataSource, or retrying a failed job, creates a NEW job
row.  Terminal jobs are never rewritten.
"""

from __future__ import annotations

import uuid
from collections.abc import Collection
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from agentkb.interfaces.data_source_store import IDataSourceStore
from agentkb.interfaces.job_queue import IJobQueue
from agentkb.interfaces.job_store import IJobStore
from agentkb.interfaces.object_store import IObjectStore
from agentkb.models.data_source import (
    DataSource,
    FileSourceConfig,
    SourceType,
    TextSourceConfig,
    WebsiteSourceConfig,
)
from agentkb.models.job import (
    ACTIVE_JOB_STATUSES,
    Job,
    JobPriority,
    JobStatus,
    JobType,
    QueueMessage,
)
from agentkb.models.storage import PresignedUrl
from agentkb.services.ingestion.extractors import resolve_mime_type
from agentkb.services.ingestion.vector_store_adapter import VectorStoreAdapter
from agentkb.services.progress_publisher import ProgressPublisher
from agentkb.utils.errors import (
    ContentExtractionError,
    DataSourceNotFoundError,
    InvalidJobStateError,
    JobNotFoundError,
    ObjectStoreError,
    SourceBusyError,
)

logger = structlog.get_logger(logger_name=__name__)

CANCELLED_BY_USER = "Cancelled by user"


class SourceService:
    """Creates sources, enqueues their jobs and manages the job lifecycle.

    Parameters
    ----------
    data_source_store, job_store:
        Durable rows.
    queue:
        Work queue consumed by the worker pool.
    object_store:
        Blob storage for uploaded files.
    vector_store:
        Used to remove a source's vectors when it is deleted.
    publisher:
        Realtime event emission point.
    max_attempts:
        Attempts granted to every new job.
    allowed_mime_types:
        Upload whitelist; ``None`` accepts anything.
    presigned_url_expiry_seconds:
        Lifetime of issued upload/download URLs.
    """

    def __init__(
        self,
        data_source_store: IDataSourceStore,
        job_store: IJobStore,
        queue: IJobQueue,
        object_store: IObjectStore,
        vector_store: VectorStoreAdapter,
        publisher: ProgressPublisher,
        max_attempts: int = 3,
        allowed_mime_types: Collection[str] | None = None,
        presigned_url_expiry_seconds: int = 3600,
    ) -> None:
        self._sources = data_source_store
        self._jobs = job_store
        self._queue = queue
        self._object_store = object_store
        self._vectors = vector_store
        self._publisher = publisher
        self._max_attempts = max_attempts
        self._allowed_mime_types = frozenset(allowed_mime_types) if allowed_mime_types else None
        self._url_expiry = presigned_url_expiry_seconds

    # ------------------------------------------------------------------
    # Enqueue API
    # ------------------------------------------------------------------

    async def add_processing_job(
        self,
        job_id: str,
        data_source_id: str,
        job_type: JobType,
        priority: int = JobPriority.NORMAL,
        delay_seconds: float = 0.0,
    ) -> QueueMessage:
        """Put an existing job on the work queue."""
        return await self._queue.enqueue(
            job_id,
            data_source_id,
            job_type,
            priority=priority,
            delay_seconds=delay_seconds,
            max_attempts=self._max_attempts,
        )

    # ------------------------------------------------------------------
    # Source creation
    # ------------------------------------------------------------------

    async def create_text_source(
        self,
        agent_id: str,
        name: str,
        content: str,
        priority: int = JobPriority.NORMAL,
    ) -> tuple[DataSource, Job]:
        if not content.strip():
            raise ContentExtractionError(message="Text content must not be empty")
        source = DataSource(
            id=_new_id(),
            agent_id=agent_id,
            type=SourceType.TEXT,
            name=name,
            config=TextSourceConfig(content=content),
        )
        return await self._create_and_enqueue(source, priority)

    async def create_website_source(
        self,
        agent_id: str,
        url: str,
        name: str | None = None,
        crawl_subpages: bool = False,
        max_pages: int = 10,
        priority: int = JobPriority.NORMAL,
    ) -> tuple[DataSource, Job]:
        source = DataSource(
            id=_new_id(),
            agent_id=agent_id,
            type=SourceType.WEBSITE,
            name=name or url,
            config=WebsiteSourceConfig(url=url, crawl_subpages=crawl_subpages, max_pages=max_pages),
        )
        return await self._create_and_enqueue(source, priority)

    async def create_file_source(
        self,
        agent_id: str,
        file_name: str,
        data: bytes,
        content_type: str | None,
        name: str | None = None,
        priority: int = JobPriority.NORMAL,
    ) -> tuple[DataSource, Job]:
        """Store an uploaded file and create its source.

        Raises
        ------
        agentkb.utils.errors.ContentExtractionError
            If the file type is not accepted or the file is empty.
        """
        mime_type = resolve_mime_type(content_type, file_name)
        if self._allowed_mime_types is not None and mime_type not in self._allowed_mime_types:
            raise ContentExtractionError(message=f"Unsupported file type: {mime_type}")
        if not data:
            raise ContentExtractionError(message="Uploaded file is empty")

        key = self._object_store.generate_key(agent_id, file_name)
        stored = await self._object_store.put(
            key,
            data,
            mime_type,
            metadata={"agent_id": agent_id, "original_name": file_name},
        )
        source = DataSource(
            id=_new_id(),
            agent_id=agent_id,
            type=SourceType.FILE,
            name=name or file_name,
            config=FileSourceConfig(
                url=stored.url,
                storage_key=stored.key,
                mime_type=mime_type,
                original_name=file_name,
                size_bytes=stored.size,
            ),
        )
        return await self._create_and_enqueue(source, priority)

    async def create_file_source_from_key(
        self,
        agent_id: str,
        storage_key: str,
        file_name: str,
        content_type: str | None,
        name: str | None = None,
        priority: int = JobPriority.NORMAL,
    ) -> tuple[DataSource, Job]:
        """Create a file source for a blob the client uploaded via a presigned URL."""
        info = await self._object_store.head(storage_key)
        if info is None:
            raise ObjectStoreError(
                message=f"Object not found: {storage_key}",
                provider_name=self._object_store.get_provider_name(),
            )
        mime_type = resolve_mime_type(content_type or info.content_type, file_name)
        if self._allowed_mime_types is not None and mime_type not in self._allowed_mime_types:
            raise ContentExtractionError(message=f"Unsupported file type: {mime_type}")
        source = DataSource(
            id=_new_id(),
            agent_id=agent_id,
            type=SourceType.FILE,
            name=name or file_name,
            config=FileSourceConfig(
                storage_key=storage_key,
                mime_type=mime_type,
                original_name=file_name,
                size_bytes=info.size,
            ),
        )
        return await self._create_and_enqueue(source, priority)

    # ------------------------------------------------------------------
    # Source queries / maintenance
    # ------------------------------------------------------------------

    async def get_source(self, agent_id: str, source_id: str) -> DataSource:
        source = await self._sources.get(source_id)
        if source is None or source.agent_id != agent_id:
            raise DataSourceNotFoundError(message=f"Data source {source_id} not found")
        return source

    async def list_sources(self, agent_id: str) -> list[DataSource]:
        return await self._sources.list_for_agent(agent_id)

    async def reprocess_source(
        self,
        agent_id: str,
        source_id: str,
        priority: int = JobPriority.NORMAL,
    ) -> Job:
        """Reset a source to ``pending`` and enqueue a fresh job for it.

        Raises
        ------
        agentkb.utils.errors.SourceBusyError
            If a job for the source is still pending or processing.
        """
        source = await self.get_source(agent_id, source_id)
        if await self._jobs.has_active_job(source.id):
            raise SourceBusyError(message=f"Data source {source_id} already has an active job")

        source = await self._sources.reset_for_reprocess(source.id)
        job = await self._enqueue_for(source, priority)
        logger.info("data_source_reprocess_requested", data_source_id=source.id, job_id=job.id)
        return job

    async def delete_source(self, agent_id: str, source_id: str) -> dict[str, Any]:
        """Delete a source with its vectors and (for files) its blob.

        Active jobs are cancelled first so no worker writes to the row
        after it is gone.
        """
        source = await self.get_source(agent_id, source_id)

        for job in await self._jobs.list_jobs_for_source(source.id):
            if job.status in ACTIVE_JOB_STATUSES:
                await self.cancel_job(job.id)

        blob_deleted = False
        if source.storage_key:
            try:
                blob_deleted = await self._object_store.delete(source.storage_key)
            except ObjectStoreError as exc:
                logger.warning(
                    "data_source_blob_delete_failed",
                    data_source_id=source.id,
                    key=source.storage_key,
                    error=str(exc),
                )

        vectors_deleted = await self._vectors.delete_by_filter(
            {"agent_id": source.agent_id, "source_id": source.id},
            namespace=source.namespace,
        )
        await self._sources.delete(source.id)

        logger.info(
            "data_source_removed",
            data_source_id=source.id,
            agent_id=agent_id,
            vectors_deleted=vectors_deleted,
            blob_deleted=blob_deleted,
        )
        return {
            "source_id": source.id,
            "vectors_deleted": vectors_deleted,
            "blob_deleted": blob_deleted,
        }

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def get_job(self, job_id: str) -> Job:
        job = await self._jobs.get_job(job_id)
        if job is None:
            raise JobNotFoundError(message=f"Job {job_id} not found")
        return job

    async def list_jobs_for_agent(
        self,
        agent_id: str,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[Job]:
        sources = await self._sources.list_for_agent(agent_id)
        if not sources:
            return []
        return await self._jobs.list_jobs_for_sources(
            [s.id for s in sources], status=status, limit=limit
        )

    async def list_jobs_for_source(self, agent_id: str, source_id: str) -> list[Job]:
        source = await self.get_source(agent_id, source_id)
        return await self._jobs.list_jobs_for_source(source.id)

    async def cancel_job(self, job_id: str) -> Job:
        """Cancel a pending or processing job.

        A processing worker notices at its next progress write and stops
        without overwriting the cancelled status.

        Raises
        ------
        agentkb.utils.errors.JobNotFoundError
            If the job does not exist.
        agentkb.utils.errors.InvalidJobStateError
            If the job already reached a terminal status.
        """
        job = await self._jobs.transition(
            job_id,
            ACTIVE_JOB_STATUSES,
            status=JobStatus.CANCELLED,
            completed_at=datetime.now(timezone.utc),
            error_message=CANCELLED_BY_USER,
        )
        if job is None:
            existing = await self.get_job(job_id)
            raise InvalidJobStateError(
                message=f"Job {job_id} is already {existing.status.value}"
            )

        await self._queue.remove(job_id)
        source = await self._sources.mark_cancelled(job.data_source_id, job_id)

        logger.info("job_cancelled", job_id=job_id, data_source_id=job.data_source_id)
        await self._publisher.publish_job_snapshot(job)
        if source is not None:
            await self._publisher.publish_source(source)
        return job

    async def retry_job(self, job_id: str, priority: int | None = None) -> Job:
        """Create a new job for the DataSource of a failed job.

        Raises
        ------
        agentkb.utils.errors.InvalidJobStateError
            If the job is not ``failed``.
        """
        job = await self.get_job(job_id)
        if job.status != JobStatus.FAILED:
            raise InvalidJobStateError(
                message=f"Only failed jobs can be retried; job {job_id} is {job.status.value}"
            )
        source = await self._sources.get(job.data_source_id)
        if source is None:
            raise DataSourceNotFoundError(message=f"Data source {job.data_source_id} not found")

        new_job = await self.reprocess_source(
            source.agent_id,
            source.id,
            priority=job.priority if priority is None else priority,
        )
        logger.info("job_retry_requested", job_id=job_id, new_job_id=new_job.id)
        return new_job

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def presign_upload(self, agent_id: str, file_name: str, content_type: str) -> PresignedUrl:
        key = self._object_store.generate_key(agent_id, file_name)
        return await self._object_store.presigned_upload_url(key, content_type, self._url_expiry)

    async def presign_download(self, key: str) -> PresignedUrl:
        return await self._object_store.presigned_download_url(key, self._url_expiry)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _create_and_enqueue(self, source: DataSource, priority: int) -> tuple[DataSource, Job]:
        stored = await self._sources.create(source)
        job = await self._enqueue_for(stored, priority)
        return stored, job

    async def _enqueue_for(
        self,
        source: DataSource,
        priority: int,
        delay_seconds: float = 0.0,
    ) -> Job:
        scheduled_for = None
        if delay_seconds > 0:
            scheduled_for = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)

        job = await self._jobs.create_job(
            source.id,
            JobType.for_source(source.type),
            priority=priority,
            max_attempts=self._max_attempts,
            scheduled_for=scheduled_for,
        )
        await self.add_processing_job(
            job.id, source.id, job.type, priority=priority, delay_seconds=delay_seconds
        )
        await self._publisher.publish_source(source)
        await self._publisher.publish_job_snapshot(job)
        return job


def _new_id() -> str:
    return str(uuid.uuid4())
