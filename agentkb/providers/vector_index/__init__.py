"""Vector index implementations."""

from agentkb.providers.vector_index.chromadb_index import ChromaDBVectorIndex

__all__ = ["ChromaDBVectorIndex"]
