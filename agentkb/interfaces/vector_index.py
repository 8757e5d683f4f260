"""Abstract base class for vector-index providers.

Defines the narrow contract the ingestion core needs from a vector
database: upsert by id, delete by metadata filter, and stats.  Queries
belong to the chat path and are not part of this contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from agentkb.models.vector import MetadataValue, VectorIndexStats, VectorRecord


# Concrete implementation: ChromaDBVectorIndex (agentkb/providers/vector_index/).
class IVectorIndex(ABC):
    """Contract for vector-index backends.

    **Filter syntax** accepted by :meth:`delete_by_filter`: a flat mapping of
    metadata field to required value, combined with AND, e.g.
    ``{"agent_id": "a1", "source_id": "s1"}``.
    """

    @abstractmethod
    async def upsert(self, records: list[VectorRecord], namespace: str | None = None) -> int:
        """Insert or overwrite *records* by id.

        Returns
        -------
        int
            The number of records written.

        Raises
        ------
        agentkb.utils.errors.VectorStoreError
            If the write fails.
        """

    @abstractmethod
    async def delete_by_filter(
        self,
        filters: dict[str, MetadataValue],
        namespace: str | None = None,
    ) -> int:
        """Delete every vector whose metadata matches all of *filters*.

        Returns
        -------
        int
            The number of vectors deleted.
        """

    @abstractmethod
    async def describe_stats(self) -> VectorIndexStats:
        """Return total count, dimension and per-namespace counts."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier (e.g. ``"chromadb"``)."""
