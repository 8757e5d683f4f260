"""Batching layer in front of the vector index.

Vector ids are deterministic (``{data_source_id}_chunk_{index}``), so
running ingestion again for the same source overwrites the same ids
instead of adding new ones.
"""

from __future__ import annotations

import asyncio

import structlog

from agentkb.interfaces.vector_index import IVectorIndex
from agentkb.models.vector import MetadataValue, VectorIndexStats, VectorRecord

logger = structlog.get_logger(logger_name=__name__)


class VectorStoreAdapter:
    """Slices upserts into fixed-size batches with a pause between them.

    Parameters
    ----------
    index:
        The vector index backend.
    batch_size:
        Records per upsert call (default 100).
    pause_seconds:
        Sleep between consecutive batches, for provider rate limits.
    """

    def __init__(
        self,
        index: IVectorIndex,
        batch_size: int = 100,
        pause_seconds: float = 0.1,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._index = index
        self._batch_size = batch_size
        self._pause = max(0.0, pause_seconds)

    @property
    def provider_name(self) -> str:
        return self._index.get_provider_name()

    async def batch_upsert(
        self,
        records: list[VectorRecord],
        namespace: str | None = None,
    ) -> int:
        """Upsert *records* sequentially in batches; return the number written."""
        if not records:
            return 0

        written = 0
        batches = range(0, len(records), self._batch_size)
        for batch_number, start in enumerate(batches):
            if batch_number and self._pause:
                await asyncio.sleep(self._pause)
            batch = records[start : start + self._batch_size]
            written += await self._index.upsert(batch, namespace=namespace)

        logger.info(
            "vectors_upserted",
            count=written,
            batches=len(batches),
            namespace=namespace,
            provider=self.provider_name,
        )
        return written

    async def delete_by_filter(
        self,
        filters: dict[str, MetadataValue],
        namespace: str | None = None,
    ) -> int:
        """Delete every vector matching all of *filters*."""
        deleted = await self._index.delete_by_filter(filters, namespace=namespace)
        logger.info("vectors_deleted", count=deleted, filters=filters, namespace=namespace)
        return deleted

    async def describe_stats(self) -> VectorIndexStats:
        return await self._index.describe_stats()
