"""Embeddings from the OpenAI API or any server speaking its protocol.

``base_url`` points the ``openai`` async client at a compatible server
(vLLM, LM Studio, Azure-style gateways); the provider then reports itself
as ``openai-compatible`` so job results show which backend produced the
vectors.
"""

from __future__ import annotations

from typing import Any

import openai
import structlog

from agentkb.interfaces.embedding_provider import IEmbeddingProvider
from agentkb.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# Max inputs per embeddings.create call.
_MAX_INPUTS_PER_REQUEST = 2048

_NATIVE_DIMENSIONS: dict[str, int] = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Hosted embeddings, ``text-embedding-ada-002`` (1536 dims) by default.

    For the ``text-embedding-3`` family an explicit ``dimension`` smaller
    than the native size is requested from the API via ``dimensions``;
    older models always return their native size.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-ada-002",
        base_url: str = "",
        dimension: int | None = None,
        timeout: float = 60.0,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        if client is None:
            client = openai.AsyncOpenAI(
                api_key=api_key,
                timeout=timeout,
                **({"base_url": base_url} if base_url else {}),
            )
        self._client = client
        self._model = model
        native = _NATIVE_DIMENSIONS.get(model)
        self._dimension = dimension or native or 1536
        self._shortened = (
            model.startswith("text-embedding-3") and native is not None and self._dimension < native
        )
        self._label = "openai-compatible" if base_url else "openai"

    async def embed(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for offset in range(0, len(texts), _MAX_INPUTS_PER_REQUEST):
            batch = texts[offset : offset + _MAX_INPUTS_PER_REQUEST]
            vectors.extend(await self._request(batch))
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        vectors = await self._request([text])
        return vectors[0]

    async def _request(self, batch: list[str]) -> list[list[float]]:
        kwargs: dict[str, Any] = {"input": batch, "model": self._model}
        if self._shortened:
            kwargs["dimensions"] = self._dimension
        try:
            response = await self._client.embeddings.create(**kwargs)
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"Embedding API error: {exc}",
                provider_name=self._label,
            ) from exc

        if len(response.data) != len(batch):
            raise EmbeddingError(
                message=f"Embedding API returned {len(response.data)} vectors for {len(batch)} inputs",
                provider_name=self._label,
            )
        logger.debug(
            "embedding_request_complete",
            model=self._model,
            inputs=len(batch),
            tokens=getattr(response.usage, "total_tokens", None),
        )
        return [list(item.embedding) for item in response.data]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._label
