"""Embedding client: chunk texts → fixed-length vectors via an injected provider.

The provider is a strategy object (:class:`IEmbeddingProvider`): the
OpenAI adapter in production, the deterministic adapter when no API key
is configured.  The client never branches on configuration itself; it
asks the provider whether its vectors are meaningful (``is_mock``) and
flags stand-in vectors with a distinct warning so they are never
mistaken for production embeddings.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog

from agentkb.interfaces.embedding_provider import IEmbeddingProvider
from agentkb.utils.concurrency import throttled_gather
from agentkb.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# (embedded_so_far, total) → awaitable
EmbedProgressCallback = Callable[[int, int], Awaitable[None]]


class EmbeddingClient:
    """Per-chunk embedding with bounded concurrency and progress reporting.

    Parameters
    ----------
    provider:
        The embedding backend.
    concurrency:
        Maximum embedding calls in flight for one job (``1`` = sequential).
    progress_every:
        Report progress after every *n*-th chunk (and after the last one).
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        concurrency: int = 1,
        progress_every: int = 5,
    ) -> None:
        self._provider = provider
        self._concurrency = max(1, concurrency)
        self._progress_every = max(1, progress_every)
        self._mock_warned = False

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    @property
    def dimension(self) -> int:
        return self._provider.get_dimension()

    @property
    def is_mock(self) -> bool:
        return self._provider.is_mock()

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        self._warn_if_mock()
        vector = await self._provider.embed_single(text)
        self._check_dimension(vector)
        return vector

    async def embed_chunks(
        self,
        texts: list[str],
        on_progress: EmbedProgressCallback | None = None,
    ) -> list[list[float]]:
        """Embed every text, preserving input order.

        Raises
        ------
        agentkb.utils.errors.EmbeddingError
            If any call fails or returns a vector of the wrong dimension.
        """
        if not texts:
            return []
        self._warn_if_mock()

        total = len(texts)
        done = 0

        async def _one(text: str) -> list[float]:
            nonlocal done
            vector = await self._provider.embed_single(text)
            self._check_dimension(vector)
            done += 1
            if on_progress is not None and (done % self._progress_every == 0 or done == total):
                await on_progress(done, total)
            return vector

        vectors = await throttled_gather(
            [_one(t) for t in texts], limit=self._concurrency
        )

        logger.debug(
            "chunks_embedded",
            provider=self.provider_name,
            count=total,
            concurrency=self._concurrency,
        )
        return vectors

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_dimension(self, vector: list[float]) -> None:
        expected = self._provider.get_dimension()
        if len(vector) != expected:
            raise EmbeddingError(
                message=f"Expected {expected}-dimensional vector, got {len(vector)}",
                provider_name=self.provider_name,
            )

    def _warn_if_mock(self) -> None:
        if self._mock_warned or not self._provider.is_mock():
            return
        self._mock_warned = True
        logger.warning(
            "mock_embeddings_in_use",
            provider=self.provider_name,
            dimension=self.dimension,
            note="vectors are deterministic stand-ins; similarity search is meaningless",
        )
