"""Vector-index records and statistics."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Metadata values must be scalars; both ChromaDB and hosted indexes reject
# nested structures in filterable metadata.
MetadataValue = str | int | float | bool


def vector_id(data_source_id: str, chunk_index: int) -> str:
    """Deterministic id so re-ingesting a source overwrites its vectors."""
    return f"{data_source_id}_chunk_{chunk_index}"


class VectorRecord(BaseModel):
    """One (id, embedding, metadata) triple bound for the vector index."""

    model_config = ConfigDict(frozen=True)

    id: str
    values: list[float]
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)


class VectorIndexStats(BaseModel):
    """Aggregate statistics reported by the vector index."""

    model_config = ConfigDict(frozen=True)

    total_vector_count: int = 0
    dimension: int | None = None
    namespaces: dict[str, int] = Field(default_factory=dict)
