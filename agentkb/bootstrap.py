"""Component wiring shared by the API process and the standalone worker.

``build_components`` constructs every provider and service from a
:class:`Settings` instance and returns them as a flat dict.  main.py puts
the dict on ``app.state``; ``agentkb.cli.worker`` uses it directly.

# ─── DEPENDENCY GRAPH (Junior Developer Guide) ────────────────────────
#
#   SQLite file ─┬─ SQLiteDataSourceStore ─┐
#                ├─ SQLiteJobStore ────────┼─ SourceService (API side)
#                └─ SQLiteJobQueue ────────┤
#   ObjectStore (local | s3) ──────────────┤
#   BroadcastTransport → ProgressPublisher ┤
#   ChromaDB → VectorStoreAdapter ─────────┤
#   OpenAI | mock → EmbeddingClient ───────┼─ SourceProcessor
#   WebCrawler, TextChunker ───────────────┘        │
#                                           WorkerPool (queue consumer)
#
# Nothing below this module reads Settings; every constructor receives
# plain values.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

import structlog

from agentkb.config.settings import Settings
from agentkb.interfaces.embedding_provider import IEmbeddingProvider
from agentkb.interfaces.object_store import IObjectStore
from agentkb.providers.embedding.deterministic_embedding_provider import (
    DeterministicEmbeddingProvider,
)
from agentkb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from agentkb.providers.object_store.local_object_store import LocalObjectStore
from agentkb.providers.object_store.s3_object_store import S3ObjectStore
from agentkb.providers.queue.sqlite_job_queue import SQLiteJobQueue
from agentkb.providers.realtime.broadcast_transport import BroadcastTransport
from agentkb.providers.store.sqlite_data_source_store import SQLiteDataSourceStore
from agentkb.providers.store.sqlite_job_store import SQLiteJobStore
from agentkb.providers.vector_index.chromadb_index import ChromaDBVectorIndex
from agentkb.services.ingestion.chunker import TextChunker
from agentkb.services.ingestion.embedding_client import EmbeddingClient
from agentkb.services.ingestion.extractors import supported_mime_types
from agentkb.services.ingestion.source_processor import SourceProcessor
from agentkb.services.ingestion.vector_store_adapter import VectorStoreAdapter
from agentkb.services.ingestion.web_crawler import WebCrawler
from agentkb.services.progress_publisher import ProgressPublisher
from agentkb.services.source_service import SourceService
from agentkb.utils.logging import get_logger
from agentkb.workers.worker_pool import WorkerPool

_logger: structlog.BoundLogger = get_logger(__name__)

FILES_ROUTE = "/api/v1/files"


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """OpenAI when a key is configured, otherwise the deterministic mock."""
    if app_settings.uses_mock_embeddings():
        _logger.warning(
            "embedding_provider_not_configured",
            fallback="deterministic",
            hint="Set OPENAI_API_KEY for real embeddings",
        )
        return DeterministicEmbeddingProvider(dimension=app_settings.embedding_dimension)
    return OpenAIEmbeddingProvider(
        api_key=app_settings.openai_api_key,
        model=app_settings.openai_embedding_model,
        base_url=app_settings.openai_base_url,
        dimension=app_settings.embedding_dimension,
    )


def build_object_store(app_settings: Settings) -> IObjectStore:
    backend = app_settings.object_store_backend.lower()
    if backend == "s3":
        return S3ObjectStore(
            bucket=app_settings.s3_bucket,
            endpoint_url=app_settings.s3_endpoint_url,
            region=app_settings.s3_region,
            access_key_id=app_settings.s3_access_key_id,
            secret_access_key=app_settings.s3_secret_access_key,
        )
    if backend != "local":
        raise ValueError(f"Unknown object store backend: {app_settings.object_store_backend}")
    return LocalObjectStore(
        root_dir=app_settings.object_store_root,
        signing_key=app_settings.object_store_signing_key,
        public_base_url=app_settings.public_base_url.rstrip("/") + FILES_ROUTE,
    )


def _allowed_mime_types(app_config: dict[str, Any]) -> list[str]:
    configured = app_config.get("ingestion", {}).get("supported_mime_types")
    return list(configured) if configured else supported_mime_types()


# ---------------------------------------------------------------------------
# Component graph
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings, app_config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components; ``initialize_components``
    must be awaited before the stores are used.
    """
    app_config = app_config or {}
    db_path = app_settings.database_path

    # -- Durable state --
    data_source_store = SQLiteDataSourceStore(db_path)
    job_store = SQLiteJobStore(db_path)
    job_queue = SQLiteJobQueue(
        db_path,
        max_attempts=app_settings.job_max_attempts,
        backoff_base_seconds=app_settings.job_backoff_base_seconds,
        lease_seconds=app_settings.queue_lease_seconds,
        poll_interval=app_settings.queue_poll_interval_seconds,
    )
    object_store = build_object_store(app_settings)

    # -- Realtime --
    realtime_transport = BroadcastTransport()
    publisher = ProgressPublisher(
        realtime_transport,
        timeout_seconds=app_settings.realtime_publish_timeout_seconds,
    )

    # -- Ingestion pipeline --
    crawler = WebCrawler(
        timeout_seconds=app_settings.crawler_timeout_seconds,
        user_agent=app_settings.crawler_user_agent,
        max_links_per_page=app_settings.crawler_max_links_per_page,
    )
    chunker = TextChunker(chunk_size=app_settings.chunk_size, overlap=app_settings.chunk_overlap)
    embedding_client = EmbeddingClient(
        build_embedding_provider(app_settings),
        concurrency=app_settings.embedding_concurrency,
    )
    vector_store = VectorStoreAdapter(
        ChromaDBVectorIndex(
            persist_directory=app_settings.chromadb_persist_dir,
            collection_name=app_settings.chromadb_collection,
        ),
        batch_size=app_settings.vector_batch_size,
        pause_seconds=app_settings.vector_batch_pause_seconds,
    )
    processor = SourceProcessor(
        job_store=job_store,
        data_source_store=data_source_store,
        object_store=object_store,
        crawler=crawler,
        chunker=chunker,
        embedding_client=embedding_client,
        vector_store=vector_store,
        publisher=publisher,
    )

    # -- Public surfaces --
    source_service = SourceService(
        data_source_store=data_source_store,
        job_store=job_store,
        queue=job_queue,
        object_store=object_store,
        vector_store=vector_store,
        publisher=publisher,
        max_attempts=app_settings.job_max_attempts,
        allowed_mime_types=_allowed_mime_types(app_config),
        presigned_url_expiry_seconds=app_settings.presigned_url_expiry_seconds,
    )
    worker_pool = WorkerPool(
        queue=job_queue,
        processor=processor,
        job_store=job_store,
        transport=realtime_transport,
        concurrency=app_settings.job_concurrency,
        dequeue_timeout=app_settings.queue_poll_interval_seconds,
        lease_seconds=app_settings.queue_lease_seconds,
        shutdown_grace_seconds=app_settings.worker_shutdown_grace_seconds,
        cleanup_interval_seconds=app_settings.job_cleanup_interval_seconds,
        retention_days=app_settings.job_cleanup_days,
    )

    return {
        "settings": app_settings,
        "config": app_config,
        "data_source_store": data_source_store,
        "job_store": job_store,
        "job_queue": job_queue,
        "object_store": object_store,
        "realtime_transport": realtime_transport,
        "publisher": publisher,
        "crawler": crawler,
        "chunker": chunker,
        "embedding_client": embedding_client,
        "vector_store": vector_store,
        "processor": processor,
        "source_service": source_service,
        "worker_pool": worker_pool,
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create tables and indices for every SQLite-backed component."""
    await components["data_source_store"].initialize()
    await components["job_store"].initialize()
    await components["job_queue"].initialize()


async def close_components(components: dict[str, Any]) -> None:
    await components["job_queue"].close()
    await components["job_store"].close()
    await components["data_source_store"].close()
