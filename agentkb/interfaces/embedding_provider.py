"""Abstract base class for text-embedding service providers.

Defines the contract for converting text into dense vector representations
used by the vector index.  Implementations may call hosted APIs (OpenAI,
compatible endpoints) or generate deterministic stand-in vectors for
offline development.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class IEmbeddingProvider(ABC):
    """Contract for text-embedding services.

    All embedding calls are async so network-bound providers do not block
    the event loop.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            One vector per input text, each of length :meth:`get_dimension`.

        Raises
        ------
        agentkb.utils.errors.EmbeddingError
            If the provider call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding for a single text string."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the vectors produced by this provider."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier (e.g. ``"openai"``, ``"deterministic"``)."""

    def is_mock(self) -> bool:
        """Return True when vectors carry no semantic meaning.

        Providers producing stand-in vectors override this so callers can
        flag the result distinctly from production embeddings.
        """
        return False
