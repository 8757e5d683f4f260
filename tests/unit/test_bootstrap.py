"""Unit tests for component wiring in agentkb/bootstrap.py.

Covers provider selection (embeddings, object store), the MIME allow
list and the assembled component graph, all without network access.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from agentkb.bootstrap import (
    _allowed_mime_types,
    build_components,
    build_embedding_provider,
    build_object_store,
    close_components,
    initialize_components,
)
from agentkb.config.settings import Settings
from agentkb.providers.embedding.deterministic_embedding_provider import (
    DeterministicEmbeddingProvider,
)
from agentkb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from agentkb.providers.object_store.local_object_store import LocalObjectStore
from agentkb.providers.object_store.s3_object_store import S3ObjectStore
from agentkb.services.ingestion.extractors import supported_mime_types

# ======================================================================
# Shared helpers
# ======================================================================


def _settings(tmp_path: Path, **overrides) -> Settings:
    defaults = {
        "database_path": str(tmp_path / "agentkb.db"),
        "chromadb_persist_dir": str(tmp_path / "chroma"),
        "object_store_root": str(tmp_path / "blobs"),
        "openai_api_key": "",
        "embedding_dimension": 8,
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


# ======================================================================
# Provider selection
# ======================================================================


class TestBuildEmbeddingProvider:
    def test_mock_without_key(self, tmp_path: Path) -> None:
        provider = build_embedding_provider(_settings(tmp_path))
        assert isinstance(provider, DeterministicEmbeddingProvider)
        assert provider.get_dimension() == 8

    def test_openai_with_key(self, tmp_path: Path) -> None:
        provider = build_embedding_provider(
            _settings(tmp_path, openai_api_key="sk-test", embedding_dimension=1536)
        )
        assert isinstance(provider, OpenAIEmbeddingProvider)
        assert provider.get_provider_name() == "openai"

    def test_compatible_endpoint_label(self, tmp_path: Path) -> None:
        provider = build_embedding_provider(
            _settings(tmp_path, openai_api_key="sk-test", openai_base_url="http://localhost:9000/v1")
        )
        assert provider.get_provider_name() == "openai-compatible"


class TestBuildObjectStore:
    def test_local_backend_serves_files_route(self, tmp_path: Path) -> None:
        store = build_object_store(
            _settings(tmp_path, public_base_url="https://kb.example.com/")
        )
        assert isinstance(store, LocalObjectStore)
        url = "https://kb.example.com/api/v1/files/uploads/a/1-x.txt"
        assert store.key_from_url(url) == "uploads/a/1-x.txt"

    def test_s3_backend(self, tmp_path: Path) -> None:
        with patch("agentkb.providers.object_store.s3_object_store.boto3.client") as client:
            store = build_object_store(
                _settings(
                    tmp_path,
                    object_store_backend="S3",
                    s3_bucket="kb-uploads",
                    s3_endpoint_url="https://r2.example.com",
                )
            )
        assert isinstance(store, S3ObjectStore)
        assert client.call_args.kwargs["endpoint_url"] == "https://r2.example.com"

    def test_unknown_backend(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Unknown object store backend"):
            build_object_store(_settings(tmp_path, object_store_backend="ftp"))


class TestAllowedMimeTypes:
    def test_config_list_wins(self) -> None:
        config = {"ingestion": {"supported_mime_types": ["text/plain"]}}
        assert _allowed_mime_types(config) == ["text/plain"]

    def test_falls_back_to_extractors(self) -> None:
        assert _allowed_mime_types({}) == supported_mime_types()


# ======================================================================
# Component graph
# ======================================================================


class TestBuildComponents:
    @pytest.mark.asyncio
    async def test_graph_shares_one_database(self, tmp_path: Path) -> None:
        components = build_components(_settings(tmp_path, job_concurrency=3))

        assert components["embedding_client"].is_mock is True
        assert components["worker_pool"].stats()["concurrency"] == 3
        assert components["vector_store"].provider_name == "chromadb"

        await initialize_components(components)
        try:
            assert await components["job_queue"].is_healthy() is True
            assert await components["job_store"].list_jobs_for_source("none") == []
        finally:
            await close_components(components)
        assert (tmp_path / "agentkb.db").exists()
