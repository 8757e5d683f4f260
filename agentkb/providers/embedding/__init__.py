"""Embedding provider implementations.

Two implementations of IEmbeddingProvider:
    1. OpenAIEmbeddingProvider        - text-embedding-ada-002 (1536 dims),
       or any OpenAI-compatible endpoint.  Requires OPENAI_API_KEY.
    2. DeterministicEmbeddingProvider - hash-seeded stand-in vectors for
       development.  Wired by main.py when no API key is configured.
"""

from agentkb.providers.embedding.deterministic_embedding_provider import (
    DeterministicEmbeddingProvider,
)
from agentkb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["DeterministicEmbeddingProvider", "OpenAIEmbeddingProvider"]
