"""Offline stand-in embedding provider.

Produces a pseudo-random unit vector seeded from the SHA-256 of the input
text, so the same text always maps to the same vector.  The vectors carry
no semantic meaning: similarity search over them is noise.  The provider
reports ``is_mock() == True`` and the embedding client logs
``mock_embeddings_in_use`` so this mode is never mistaken for production.
"""

from __future__ import annotations

import hashlib
import math
import random

from agentkb.interfaces.embedding_provider import IEmbeddingProvider


class DeterministicEmbeddingProvider(IEmbeddingProvider):
    """Hash-seeded embeddings for development and tests."""

    def __init__(self, dimension: int = 1536) -> None:
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [self._vector_for(text) for text in texts]

    async def embed_single(self, text: str) -> list[float]:
        return self._vector_for(text)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "deterministic"

    def is_mock(self) -> bool:
        return True

    def _vector_for(self, text: str) -> list[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = random.Random(seed)
        raw = [rng.uniform(-1.0, 1.0) for _ in range(self._dimension)]
        norm = math.sqrt(sum(v * v for v in raw)) or 1.0
        return [v / norm for v in raw]
