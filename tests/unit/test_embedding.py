"""Unit tests for the embedding providers and the EmbeddingClient."""

from __future__ import annotations

import asyncio
import math
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from agentkb.interfaces.embedding_provider import IEmbeddingProvider
from agentkb.providers.embedding.deterministic_embedding_provider import (
    DeterministicEmbeddingProvider,
)
from agentkb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from agentkb.services.ingestion.embedding_client import EmbeddingClient
from agentkb.utils.concurrency import throttled_gather
from agentkb.utils.errors import EmbeddingError, JobCancelledError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _openai_client(vectors: list[list[float]]) -> MagicMock:
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(
            data=[SimpleNamespace(embedding=v) for v in vectors],
            usage=SimpleNamespace(total_tokens=7),
        )
    )
    return client


def _provider(dimension: int = 4, vectors: list[list[float]] | None = None) -> MagicMock:
    provider = MagicMock(spec=IEmbeddingProvider)
    provider.get_dimension.return_value = dimension
    provider.get_provider_name.return_value = "fake"
    provider.is_mock.return_value = False
    provider.embed_single = AsyncMock(side_effect=vectors or (lambda text: [0.5] * dimension))
    return provider


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class TestDeterministicProvider:
    @pytest.mark.asyncio
    async def test_same_text_same_unit_vector(self) -> None:
        provider = DeterministicEmbeddingProvider(dimension=16)
        first = await provider.embed_single("hello")
        second = await provider.embed_single("hello")
        other = await provider.embed_single("goodbye")

        assert first == second
        assert first != other
        assert len(first) == 16
        assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0, rel_tol=1e-9)

    def test_reports_mock(self) -> None:
        provider = DeterministicEmbeddingProvider(dimension=4)
        assert provider.is_mock() is True
        assert provider.get_provider_name() == "deterministic"

    def test_rejects_non_positive_dimension(self) -> None:
        with pytest.raises(ValueError):
            DeterministicEmbeddingProvider(dimension=0)


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_embed_returns_vectors_in_order(self) -> None:
        client = _openai_client([[0.1, 0.2], [0.3, 0.4]])
        provider = OpenAIEmbeddingProvider(api_key="sk-test", dimension=2, client=client)

        vectors = await provider.embed(["a", "b"])

        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        client.embeddings.create.assert_awaited_once_with(
            input=["a", "b"], model="text-embedding-ada-002"
        )

    @pytest.mark.asyncio
    async def test_api_error_becomes_embedding_error(self) -> None:
        client = MagicMock()
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        client.embeddings.create = AsyncMock(side_effect=openai.APIConnectionError(request=request))
        provider = OpenAIEmbeddingProvider(api_key="sk-test", client=client)

        with pytest.raises(EmbeddingError):
            await provider.embed_single("a")

    def test_custom_base_url_is_labelled(self) -> None:
        provider = OpenAIEmbeddingProvider(
            api_key="sk-test", base_url="http://localhost:1234/v1", client=MagicMock()
        )
        assert provider.get_provider_name() == "openai-compatible"
        assert provider.is_mock() is False

    @pytest.mark.asyncio
    async def test_shortened_dimensions_are_requested(self) -> None:
        client = _openai_client([[0.1] * 512])
        provider = OpenAIEmbeddingProvider(
            api_key="sk-test", model="text-embedding-3-small", dimension=512, client=client
        )

        await provider.embed_single("a")

        assert client.embeddings.create.await_args.kwargs["dimensions"] == 512
        assert provider.get_dimension() == 512

    @pytest.mark.asyncio
    async def test_short_response_is_an_error(self) -> None:
        client = _openai_client([[0.1, 0.2]])
        provider = OpenAIEmbeddingProvider(api_key="sk-test", dimension=2, client=client)

        with pytest.raises(EmbeddingError, match="1 vectors for 2 inputs"):
            await provider.embed(["a", "b"])


# ---------------------------------------------------------------------------
# EmbeddingClient
# ---------------------------------------------------------------------------


class TestEmbeddingClient:
    @pytest.mark.asyncio
    async def test_embed_chunks_preserves_order(self) -> None:
        client = EmbeddingClient(DeterministicEmbeddingProvider(dimension=4), concurrency=3)
        texts = [f"chunk {i}" for i in range(7)]

        vectors = await client.embed_chunks(texts)
        expected = [await DeterministicEmbeddingProvider(dimension=4).embed_single(t) for t in texts]

        assert vectors == expected

    @pytest.mark.asyncio
    async def test_progress_every_nth_chunk_and_last(self) -> None:
        client = EmbeddingClient(_provider(), progress_every=5)
        calls: list[tuple[int, int]] = []

        async def _on_progress(done: int, total: int) -> None:
            calls.append((done, total))

        await client.embed_chunks([f"t{i}" for i in range(12)], on_progress=_on_progress)
        assert calls == [(5, 12), (10, 12), (12, 12)]

    @pytest.mark.asyncio
    async def test_wrong_dimension_raises(self) -> None:
        client = EmbeddingClient(_provider(dimension=4, vectors=[[1.0, 2.0]]))
        with pytest.raises(EmbeddingError, match="Expected 4-dimensional"):
            await client.embed_chunks(["only"])

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_calls(self) -> None:
        provider = _provider()
        assert await EmbeddingClient(provider).embed_chunks([]) == []
        provider.embed_single.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_embed(self) -> None:
        client = EmbeddingClient(_provider(dimension=3))
        assert await client.embed("x") == [0.5, 0.5, 0.5]

    def test_exposes_provider_properties(self) -> None:
        client = EmbeddingClient(DeterministicEmbeddingProvider(dimension=4))
        assert client.is_mock is True
        assert client.dimension == 4
        assert client.provider_name == "deterministic"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency", [1, 4])
    async def test_failure_stops_remaining_chunks(self, concurrency: int) -> None:
        calls: list[str] = []

        async def _embed(text: str) -> list[float]:
            calls.append(text)
            await asyncio.sleep(0.001)
            if text == "c1":
                raise EmbeddingError(message="boom", provider_name="fake")
            return [0.5] * 4

        provider = _provider()
        provider.embed_single = AsyncMock(side_effect=_embed)
        client = EmbeddingClient(provider, concurrency=concurrency)

        with pytest.raises(EmbeddingError, match="boom"):
            await client.embed_chunks([f"c{i}" for i in range(20)])
        calls_at_raise = len(calls)
        await asyncio.sleep(0.05)

        assert len(calls) == calls_at_raise
        assert calls_at_raise < 20

    @pytest.mark.asyncio
    async def test_cancel_from_progress_stops_embedding(self) -> None:
        calls: list[str] = []
        progress: list[int] = []

        async def _embed(text: str) -> list[float]:
            calls.append(text)
            await asyncio.sleep(0.001)
            return [0.5] * 4

        async def _on_progress(done: int, total: int) -> None:
            progress.append(done)
            if done == 5:
                raise JobCancelledError()

        provider = _provider()
        provider.embed_single = AsyncMock(side_effect=_embed)
        client = EmbeddingClient(provider, progress_every=1)

        with pytest.raises(JobCancelledError):
            await client.embed_chunks([f"c{i}" for i in range(30)], on_progress=_on_progress)
        await asyncio.sleep(0.05)

        assert len(calls) == 5
        assert progress == [1, 2, 3, 4, 5]


class TestThrottledGather:
    @pytest.mark.asyncio
    async def test_results_keep_input_order(self) -> None:
        async def _value(i: int) -> int:
            await asyncio.sleep(0.001 * (5 - i))
            return i

        assert await throttled_gather([_value(i) for i in range(5)], limit=5) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_return_exceptions_collects_failures(self) -> None:
        async def _value(i: int) -> int:
            if i == 1:
                raise ValueError("bad")
            return i

        results = await throttled_gather([_value(i) for i in range(3)], return_exceptions=True)
        assert results[0] == 0 and results[2] == 2
        assert isinstance(results[1], ValueError)

    @pytest.mark.asyncio
    async def test_empty_input(self) -> None:
        assert await throttled_gather([]) == []
