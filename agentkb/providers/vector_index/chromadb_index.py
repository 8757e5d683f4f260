"""ChromaDB vector index adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorIndex`.
All agents share one collection; the per-agent namespace is stored as a
``namespace`` metadata field and applied as an extra filter clause.

ChromaDB's client is synchronous, so every call runs in a worker thread
via ``asyncio.to_thread`` to keep the event loop (and the other worker
slots) responsive during large upserts.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from agentkb.interfaces.vector_index import IVectorIndex
from agentkb.models.vector import MetadataValue, VectorIndexStats, VectorRecord
from agentkb.utils.errors import VectorStoreError

logger = structlog.get_logger(logger_name=__name__)

_PAGE_SIZE = 5000


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    agentkb always passes pre-computed embeddings, so ChromaDB's built-in
    embedding is never invoked.  Without this, ChromaDB downloads its
    default ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("agentkb uses pre-computed embeddings")

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBVectorIndex(IVectorIndex):
    """Vector index backed by a local persistent ChromaDB collection."""

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "agentkb_vectors",
        client: Any | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # Newer ChromaDB versions reject a mismatched embedding function on
        # a collection created without one; reopen without it in that case.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # IVectorIndex implementation
    # ------------------------------------------------------------------

    async def upsert(self, records: list[VectorRecord], namespace: str | None = None) -> int:
        if not records:
            return 0

        ids = [r.id for r in records]
        embeddings = [r.values for r in records]
        documents = [str(r.metadata.get("text", "")) for r in records]
        metadatas = [self._with_namespace(r.metadata, namespace) for r in records]

        try:
            await asyncio.to_thread(
                self._collection.upsert,
                ids=ids,
                embeddings=embeddings,
                documents=documents,
                metadatas=metadatas,
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("chromadb_upsert", count=len(records), namespace=namespace)
        return len(records)

    async def delete_by_filter(
        self,
        filters: dict[str, MetadataValue],
        namespace: str | None = None,
    ) -> int:
        where = self._build_where(filters, namespace)
        if where is None:
            raise ValueError("delete_by_filter requires at least one filter clause")

        try:
            existing = await asyncio.to_thread(self._collection.get, where=where, include=[])
            count = len(existing["ids"]) if existing["ids"] else 0
            if count > 0:
                await asyncio.to_thread(self._collection.delete, where=where)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_delete_by_filter", filters=filters, deleted_count=count)
        return count

    async def describe_stats(self) -> VectorIndexStats:
        try:
            return await asyncio.to_thread(self._collect_stats)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB stats failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "chromadb"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _collect_stats(self) -> VectorIndexStats:
        total = self._collection.count()
        namespaces: dict[str, int] = {}
        dimension: int | None = None

        # Page through metadata to stay under SQLite's bind-variable limit.
        for offset in range(0, total, _PAGE_SIZE):
            page = self._collection.get(include=["metadatas"], limit=_PAGE_SIZE, offset=offset)
            for meta in page["metadatas"] or []:
                ns = str((meta or {}).get("namespace", ""))
                namespaces[ns] = namespaces.get(ns, 0) + 1

        if total > 0:
            sample = self._collection.peek(limit=1)
            embeddings = sample.get("embeddings") if sample else None
            if embeddings is not None and len(embeddings) > 0:
                dimension = len(embeddings[0])

        return VectorIndexStats(
            total_vector_count=total,
            dimension=dimension,
            namespaces=namespaces,
        )

    @staticmethod
    def _with_namespace(
        metadata: dict[str, MetadataValue], namespace: str | None
    ) -> dict[str, MetadataValue]:
        if namespace is None:
            return dict(metadata)
        return {**metadata, "namespace": namespace}

    @staticmethod
    def _build_where(
        filters: dict[str, MetadataValue], namespace: str | None
    ) -> dict[str, Any] | None:
        """Translate a flat equality filter into a ChromaDB ``where`` clause."""
        clauses: list[dict[str, Any]] = [{key: {"$eq": value}} for key, value in filters.items()]
        if namespace is not None:
            clauses.append({"namespace": {"$eq": namespace}})

        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}
