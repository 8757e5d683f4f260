"""Shared pytest fixtures for the agentkb test suite."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from agentkb.interfaces.vector_index import IVectorIndex
from agentkb.models.vector import MetadataValue, VectorIndexStats, VectorRecord
from agentkb.providers.embedding.deterministic_embedding_provider import (
    DeterministicEmbeddingProvider,
)
from agentkb.providers.object_store.local_object_store import LocalObjectStore
from agentkb.providers.queue.sqlite_job_queue import SQLiteJobQueue
from agentkb.providers.realtime.broadcast_transport import BroadcastTransport
from agentkb.providers.store.sqlite_data_source_store import SQLiteDataSourceStore
from agentkb.providers.store.sqlite_job_store import SQLiteJobStore
from agentkb.services.ingestion.chunker import TextChunker
from agentkb.services.ingestion.embedding_client import EmbeddingClient
from agentkb.services.ingestion.source_processor import SourceProcessor
from agentkb.services.ingestion.vector_store_adapter import VectorStoreAdapter
from agentkb.services.ingestion.web_crawler import WebCrawler
from agentkb.services.progress_publisher import ProgressPublisher
from agentkb.services.source_service import SourceService
from agentkb.workers.worker_pool import WorkerPool

EMBEDDING_DIMENSION = 8

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class InMemoryVectorIndex(IVectorIndex):
    """Dict-backed vector index; records keep their namespace."""

    def __init__(self) -> None:
        self.records: dict[str, tuple[str | None, VectorRecord]] = {}
        self.upsert_calls: list[int] = []

    async def upsert(self, records: list[VectorRecord], namespace: str | None = None) -> int:
        self.upsert_calls.append(len(records))
        for record in records:
            self.records[record.id] = (namespace, record)
        return len(records)

    async def delete_by_filter(
        self,
        filters: dict[str, MetadataValue],
        namespace: str | None = None,
    ) -> int:
        doomed = [
            record_id
            for record_id, (ns, record) in self.records.items()
            if (namespace is None or ns == namespace)
            and all(record.metadata.get(k) == v for k, v in filters.items())
        ]
        for record_id in doomed:
            del self.records[record_id]
        return len(doomed)

    async def describe_stats(self) -> VectorIndexStats:
        namespaces: dict[str, int] = {}
        for ns, _ in self.records.values():
            namespaces[ns or ""] = namespaces.get(ns or "", 0) + 1
        return VectorIndexStats(
            total_vector_count=len(self.records),
            dimension=EMBEDDING_DIMENSION if self.records else None,
            namespaces=namespaces,
        )

    def get_provider_name(self) -> str:
        return "memory"

    def for_source(self, source_id: str) -> list[VectorRecord]:
        return sorted(
            (r for _, r in self.records.values() if r.metadata.get("source_id") == source_id),
            key=lambda r: int(r.metadata["chunk_index"]),
        )


def make_site(pages: dict[str, str | tuple[int, str, str]]) -> httpx.MockTransport:
    """MockTransport serving *pages*; values are HTML or ``(status, content_type, body)``."""

    def _handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        entry = pages.get(url)
        if entry is None:
            return httpx.Response(404, text="not found")
        if isinstance(entry, str):
            return httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"}, text=entry)
        status, content_type, body = entry
        return httpx.Response(status, headers={"content-type": content_type}, text=body)

    return httpx.MockTransport(_handler)


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "agentkb.db"


@pytest.fixture
async def data_source_store(db_path: Path) -> SQLiteDataSourceStore:
    store = SQLiteDataSourceStore(db_path)
    await store.initialize()
    return store


@pytest.fixture
async def job_store(db_path: Path) -> SQLiteJobStore:
    store = SQLiteJobStore(db_path)
    await store.initialize()
    return store


@pytest.fixture
async def job_queue(db_path: Path) -> SQLiteJobQueue:
    queue = SQLiteJobQueue(db_path, max_attempts=3, backoff_base_seconds=0.01, poll_interval=0.05)
    await queue.initialize()
    yield queue
    await queue.close()


@pytest.fixture
def object_store(tmp_path: Path) -> LocalObjectStore:
    return LocalObjectStore(
        root_dir=str(tmp_path / "blobs"),
        signing_key="test-signing-key",
        public_base_url="http://testserver/api/v1/files",
    )


@pytest.fixture
def vector_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def vector_store(vector_index: InMemoryVectorIndex) -> VectorStoreAdapter:
    return VectorStoreAdapter(vector_index, batch_size=100, pause_seconds=0.0)


# ---------------------------------------------------------------------------
# Pipeline fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def transport() -> BroadcastTransport:
    return BroadcastTransport()


@pytest.fixture
def publisher(transport: BroadcastTransport) -> ProgressPublisher:
    return ProgressPublisher(transport, timeout_seconds=1.0)


@pytest.fixture
def embedding_client() -> EmbeddingClient:
    return EmbeddingClient(DeterministicEmbeddingProvider(dimension=EMBEDDING_DIMENSION))


@pytest.fixture
def site_pages() -> dict[str, Any]:
    """Pages served to the crawler; tests mutate this before processing."""
    return {}


@pytest.fixture
def crawler(site_pages: dict[str, Any]) -> WebCrawler:
    return WebCrawler(timeout_seconds=5.0, transport=make_site(site_pages))


@pytest.fixture
def processor(
    job_store: SQLiteJobStore,
    data_source_store: SQLiteDataSourceStore,
    object_store: LocalObjectStore,
    crawler: WebCrawler,
    embedding_client: EmbeddingClient,
    vector_store: VectorStoreAdapter,
    publisher: ProgressPublisher,
) -> SourceProcessor:
    return SourceProcessor(
        job_store=job_store,
        data_source_store=data_source_store,
        object_store=object_store,
        crawler=crawler,
        chunker=TextChunker(),
        embedding_client=embedding_client,
        vector_store=vector_store,
        publisher=publisher,
    )


@pytest.fixture
def source_service(
    data_source_store: SQLiteDataSourceStore,
    job_store: SQLiteJobStore,
    job_queue: SQLiteJobQueue,
    object_store: LocalObjectStore,
    vector_store: VectorStoreAdapter,
    publisher: ProgressPublisher,
) -> SourceService:
    return SourceService(
        data_source_store=data_source_store,
        job_store=job_store,
        queue=job_queue,
        object_store=object_store,
        vector_store=vector_store,
        publisher=publisher,
        max_attempts=3,
        allowed_mime_types=[
            "application/pdf",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "text/csv",
            "application/json",
            "text/plain",
            "text/markdown",
            "text/html",
        ],
    )


@pytest.fixture
def worker_pool(
    job_queue: SQLiteJobQueue,
    processor: SourceProcessor,
    job_store: SQLiteJobStore,
    transport: BroadcastTransport,
) -> WorkerPool:
    return WorkerPool(
        queue=job_queue,
        processor=processor,
        job_store=job_store,
        transport=transport,
        concurrency=2,
        dequeue_timeout=0.1,
        lease_seconds=30.0,
        shutdown_grace_seconds=2.0,
    )


@pytest.fixture
def run_next_job(job_queue: SQLiteJobQueue, worker_pool: WorkerPool) -> Callable[[], Any]:
    """Dequeue one message and run it through the worker pool's handler."""

    async def _run() -> bool:
        message = await job_queue.dequeue(timeout=1.0)
        if message is None:
            return False
        await worker_pool.handle_message(message)
        return True

    return _run
