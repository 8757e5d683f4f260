"""Orchestrator for one ingestion job: source → text → chunks → vectors.

Pipeline stages: **claim -> acquire text -> chunk -> embed -> store -> finalize**.

The :class:`SourceProcessor` coordinates its collaborators (stores,
object store, crawler, chunker, embedding client, vector adapter,
progress publisher) without any of them knowing about each other.  All
of them are injected, so tests swap any of them for doubles.

# ─── HOW A JOB RUNS (Junior Developer Guide) ──────────────────────────
#
#   1. Job pending/processing ──► processing  (conditional write)
#        not found  → JobNotFoundError   (worker dead-letters)
#        terminal   → JobCancelledError  (worker acks, nothing to do)
#   2. DataSource lease: claim_for_job(source, job)
#        missing → DataSourceNotFoundError (counts as an attempt)
#        busy    → SourceBusyError         (retried later)
#   3. match source.config:
#        TextSourceConfig    → inline content
#        FileSourceConfig    → object store bytes → extractor by MIME type
#        WebsiteSourceConfig → WebCrawler
#   4. TextChunker → chunks;  5. EmbeddingClient → vectors
#   6. drop the source's old vectors, then
#      VectorStoreAdapter.batch_upsert → ids {source_id}_chunk_{i}
#   7. Job processing ──► completed, then DataSource completed (lease holder)
#
# Failure: any exception from 2-6 is caught ONCE, here at the top level:
#   job_store.handle_job_failure(attempt += 1, pending or failed)
#   data_source_store.mark_failed(...)         (user-visible status)
#   publish both, then re-raise for the worker to nack.
#
# Cancellation: every progress write is conditional on the job still
# being ``processing``.  A failed write means someone cancelled the job;
# the processor stops, records the cancellation on the DataSource and
# never writes completed/failed over the cancelled status.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

import structlog

from agentkb.interfaces.data_source_store import IDataSourceStore
from agentkb.interfaces.job_store import IJobStore
from agentkb.interfaces.object_store import IObjectStore
from agentkb.models.data_source import (
    DataSource,
    FileSourceConfig,
    SourceType,
    TextSourceConfig,
    WebsiteSourceConfig,
)
from agentkb.models.job import IngestionResult, Job, JobProgress, JobStatus, JobType
from agentkb.models.vector import VectorRecord, vector_id
from agentkb.services.ingestion.chunker import TextChunker
from agentkb.services.ingestion.embedding_client import EmbeddingClient
from agentkb.services.ingestion.extractors import extract_text, resolve_mime_type
from agentkb.services.ingestion.metadata import extract_metadata
from agentkb.services.ingestion.vector_store_adapter import VectorStoreAdapter
from agentkb.services.ingestion.web_crawler import WebCrawler
from agentkb.services.progress_publisher import ProgressPublisher
from agentkb.utils.errors import (
    CrawlError,
    EmptyContentError,
    JobCancelledError,
    JobNotFoundError,
    is_retryable,
)

logger = structlog.get_logger(logger_name=__name__)

PREVIEW_CHARS = 1000

# Percent at which embedding starts, per source type; embedding progress
# climbs from there towards the storing step.
_EMBED_START: dict[SourceType, int] = {
    SourceType.TEXT: 50,
    SourceType.FILE: 70,
    SourceType.WEBSITE: 80,
}
_STORE_PERCENT = 85
_FINALIZE_PERCENT = 90
_CRAWL_START, _CRAWL_END = 20, 50


class SourceProcessor:
    """Drives a single DataSource through the ingestion pipeline.

    Parameters
    ----------
    job_store, data_source_store:
        Durable Job and DataSource rows.
    object_store:
        Blob storage for uploaded files.
    crawler:
        Website crawler.
    chunker:
        Text chunker.
    embedding_client:
        Embedding client wrapping the configured provider.
    vector_store:
        Batching vector index adapter.
    publisher:
        Realtime event emission point.
    """

    def __init__(
        self,
        job_store: IJobStore,
        data_source_store: IDataSourceStore,
        object_store: IObjectStore,
        crawler: WebCrawler,
        chunker: TextChunker,
        embedding_client: EmbeddingClient,
        vector_store: VectorStoreAdapter,
        publisher: ProgressPublisher,
    ) -> None:
        self._jobs = job_store
        self._sources = data_source_store
        self._object_store = object_store
        self._crawler = crawler
        self._chunker = chunker
        self._embeddings = embedding_client
        self._vectors = vector_store
        self._publisher = publisher

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_source(
        self,
        job_id: str,
        data_source_id: str,
        job_type: JobType,
    ) -> IngestionResult:
        """Run the job to completion and return its result summary.

        Raises
        ------
        agentkb.utils.errors.JobNotFoundError
            If the job row does not exist.
        agentkb.utils.errors.JobCancelledError
            If the job is (or becomes) cancelled or otherwise terminal.
        Exception
            Any pipeline failure, after it has been recorded on both the
            Job and the DataSource.
        """
        start = time.monotonic()
        await self._start_job(job_id)

        try:
            await self._emit(job_id, "starting", 0)
            source = await self._sources.claim_for_job(data_source_id, job_id)
            await self._publisher.publish_source(source)

            expected = JobType.for_source(source.type)
            if expected != job_type:
                logger.warning(
                    "job_type_mismatch",
                    job_id=job_id,
                    job_type=job_type.value,
                    source_type=source.type.value,
                )

            result = await self._run(job_id, source, start)
            await self._finish(job_id, source, result)
        except JobCancelledError:
            await self._record_cancellation(job_id, data_source_id)
            raise
        except Exception as exc:
            await self._record_failure(job_id, data_source_id, exc)
            raise

        logger.info(
            "source_processing_complete",
            job_id=job_id,
            data_source_id=data_source_id,
            chunks=result.total_chunks,
            vectors=result.vectors_stored,
            time_s=round(time.monotonic() - start, 2),
        )
        return result

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run(self, job_id: str, source: DataSource, start: float) -> IngestionResult:
        extras: dict[str, Any] = {}

        match source.config:
            case TextSourceConfig(content=content):
                await self._emit(job_id, "processing_text", 20)
                raw_text = content
            case FileSourceConfig() as file_config:
                raw_text = await self._acquire_file(job_id, file_config)
                extras = {
                    "file_name": file_config.original_name or None,
                    "mime_type": resolve_mime_type(file_config.mime_type, file_config.original_name),
                }
                await self._emit(job_id, "chunking_content", 50)
            case WebsiteSourceConfig() as site_config:
                raw_text, extras = await self._acquire_website(job_id, site_config)
                await self._emit(job_id, "chunking_content", 60)
            case _:
                raise TypeError(f"Unsupported source config: {type(source.config).__name__}")

        text = self._chunker.clean(raw_text)
        if not text:
            raise EmptyContentError(message=f"No text content found in {source.type.value} source")

        chunks = self._chunker.chunk(text)
        if isinstance(source.config, FileSourceConfig):
            extras["extracted_preview"] = _preview(text)

        embed_start = _EMBED_START[source.type]
        await self._emit(
            job_id,
            "generating_embeddings",
            embed_start,
            {"total_chunks": len(chunks)},
        )

        async def _on_embedded(done: int, total: int) -> None:
            span = _STORE_PERCENT - embed_start - 1
            percent = embed_start + int(span * done / total)
            await self._emit(
                job_id,
                "generating_embeddings",
                percent,
                {"embedded": done, "total_chunks": total},
            )

        vectors = await self._embeddings.embed_chunks(chunks, on_progress=_on_embedded)
        records = self._build_records(source, chunks, vectors)

        await self._emit(job_id, "storing_vectors", _STORE_PERCENT, {"vectors": len(records)})
        # A previous run may have produced more chunks than this one.
        replaced = await self._vectors.delete_by_filter(
            {"agent_id": source.agent_id, "source_id": source.id},
            namespace=source.namespace,
        )
        if replaced:
            logger.info("previous_vectors_replaced", source_id=source.id, count=replaced)
        stored = await self._vectors.batch_upsert(records, namespace=source.namespace)

        await self._emit(job_id, "finalizing", _FINALIZE_PERCENT)
        metadata = extract_metadata(text, source.type, source.name)
        metadata["processing_time_seconds"] = round(time.monotonic() - start, 2)

        return IngestionResult(
            source_type=source.type,
            total_characters=len(text),
            total_chunks=len(chunks),
            vectors_stored=stored,
            mock_embeddings=self._embeddings.is_mock,
            metadata=metadata,
            **extras,
        )

    async def _acquire_file(self, job_id: str, config: FileSourceConfig) -> str:
        await self._emit(job_id, "downloading_file", 10, {"file_name": config.original_name})
        key = config.storage_key or self._object_store.key_from_url(config.url or "")
        data = await self._object_store.get(key)

        await self._emit(
            job_id,
            "extracting_content",
            30,
            {"mime_type": config.mime_type, "bytes": len(data)},
        )
        # Parsers are CPU-bound; keep the event loop free for other slots.
        return await asyncio.to_thread(extract_text, data, config.mime_type, config.original_name)

    async def _acquire_website(
        self, job_id: str, config: WebsiteSourceConfig
    ) -> tuple[str, dict[str, Any]]:
        await self._emit(job_id, "crawling_website", _CRAWL_START, {"url": config.url})

        async def _on_page(fetched: int, max_pages: int, url: str) -> None:
            percent = _CRAWL_START + int((_CRAWL_END - _CRAWL_START) * fetched / max_pages)
            await self._emit(
                job_id,
                "crawling_website",
                min(percent, _CRAWL_END),
                {"pages_fetched": fetched, "max_pages": max_pages, "url": url},
            )

        crawl = await self._crawler.crawl(
            config.url,
            follow_subpages=config.crawl_subpages,
            max_pages=config.max_pages,
            on_page=_on_page,
        )
        if crawl.pages_crawled == 0 and crawl.failed_urls:
            raise CrawlError(
                message=f"Could not fetch any page from {config.url}",
                provider_name="crawler",
            )
        if not crawl.text:
            raise EmptyContentError(message=f"No content could be extracted from {config.url}")

        extras = {"pages_crawled": crawl.pages_crawled, "crawled_urls": crawl.crawled_urls}
        return crawl.text, extras

    @staticmethod
    def _build_records(
        source: DataSource,
        chunks: list[str],
        vectors: list[list[float]],
    ) -> list[VectorRecord]:
        created_at = datetime.now(timezone.utc).isoformat()
        return [
            VectorRecord(
                id=vector_id(source.id, index),
                values=vector,
                metadata={
                    "source_id": source.id,
                    "agent_id": source.agent_id,
                    "source_type": source.type.value,
                    "source_name": source.name,
                    "chunk_index": index,
                    "text": chunk,
                    "char_count": len(chunk),
                    "word_count": len(chunk.split()),
                    "namespace": source.namespace,
                    "created_at": created_at,
                },
            )
            for index, (chunk, vector) in enumerate(zip(chunks, vectors, strict=True))
        ]

    # ------------------------------------------------------------------
    # Status writes
    # ------------------------------------------------------------------

    async def _start_job(self, job_id: str) -> Job:
        # PROCESSING is allowed so a redelivered message (stalled worker)
        # can pick the job up again.
        job = await self._jobs.transition(
            job_id,
            {JobStatus.PENDING, JobStatus.PROCESSING},
            status=JobStatus.PROCESSING,
            started_at=datetime.now(timezone.utc),
            error_message=None,
        )
        if job is not None:
            return job

        existing = await self._jobs.get_job(job_id)
        if existing is None:
            raise JobNotFoundError(message=f"Job {job_id} not found")
        raise JobCancelledError(message=f"Job {job_id} is already {existing.status.value}")

    async def _emit(
        self,
        job_id: str,
        step: str,
        percent: int,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Persist progress, then publish it.  Stops the job if it was cancelled."""
        progress = JobProgress(step=step, percent=percent, detail=detail or {})
        if not await self._jobs.update_progress(job_id, progress):
            raise JobCancelledError(message=f"Job {job_id} is no longer processing")
        await self._publisher.publish_job(job_id, JobStatus.PROCESSING, progress=progress)

    async def _finish(self, job_id: str, source: DataSource, result: IngestionResult) -> None:
        progress = JobProgress(step="completed", percent=100)
        job = await self._jobs.transition(
            job_id,
            {JobStatus.PROCESSING},
            status=JobStatus.COMPLETED,
            progress=progress,
            result=result.model_dump(mode="json"),
            completed_at=datetime.now(timezone.utc),
            error_message=None,
        )
        if job is None:
            raise JobCancelledError(message=f"Job {job_id} was cancelled before completion")
        await self._publisher.publish_job_snapshot(job)

        completed = await self._sources.mark_completed(
            source.id,
            job_id,
            char_count=result.total_characters,
            chunk_count=result.total_chunks,
        )
        if completed is None:
            logger.warning("data_source_lease_lost", job_id=job_id, data_source_id=source.id)
        else:
            await self._publisher.publish_source(completed)

    async def _record_failure(self, job_id: str, data_source_id: str, exc: Exception) -> None:
        message = str(exc) or exc.__class__.__name__
        retryable = is_retryable(exc)
        logger.error(
            "source_processing_failed",
            job_id=job_id,
            data_source_id=data_source_id,
            error=message,
            error_type=exc.__class__.__name__,
            retryable=retryable,
        )

        job = await self._jobs.handle_job_failure(job_id, message, should_retry=retryable)
        if job is not None:
            await self._publisher.publish_job_snapshot(job)

        source = await self._sources.mark_failed(data_source_id, job_id, message)
        if source is not None:
            await self._publisher.publish_source(source)

    async def _record_cancellation(self, job_id: str, data_source_id: str) -> None:
        logger.info("source_processing_cancelled", job_id=job_id, data_source_id=data_source_id)
        source = await self._sources.mark_cancelled(data_source_id, job_id)
        if source is not None:
            await self._publisher.publish_source(source)


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_CHARS:
        return text
    return text[:PREVIEW_CHARS] + "..."
