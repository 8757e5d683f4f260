"""Unit tests for the Pydantic domain models and content metadata helpers."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from agentkb.models.data_source import (
    DataSource,
    FileSourceConfig,
    SourceType,
    TextSourceConfig,
    WebsiteSourceConfig,
)
from agentkb.models.events import agent_sources_channel, job_channel
from agentkb.models.job import (
    IngestionResult,
    Job,
    JobPriority,
    JobProgress,
    JobStatus,
    JobType,
)
from agentkb.services.ingestion.metadata import detect_language, extract_metadata

# ======================================================================
# DataSource
# ======================================================================


class TestDataSource:
    def test_namespace_defaults_from_agent(self) -> None:
        source = DataSource(
            id="ds1",
            agent_id="a1",
            type=SourceType.TEXT,
            name="FAQ",
            config=TextSourceConfig(content="Hi"),
        )
        assert source.namespace == "agent_a1"
        assert source.storage_key is None

    def test_explicit_namespace_is_kept(self) -> None:
        source = DataSource(
            id="ds1",
            agent_id="a1",
            type=SourceType.TEXT,
            name="FAQ",
            config=TextSourceConfig(content="Hi"),
            namespace="shared",
        )
        assert source.namespace == "shared"

    def test_config_must_match_type(self) -> None:
        with pytest.raises(ValidationError, match="does not match source type"):
            DataSource(
                id="ds1",
                agent_id="a1",
                type=SourceType.FILE,
                name="FAQ",
                config=TextSourceConfig(content="Hi"),
            )

    def test_config_is_parsed_from_kind(self) -> None:
        source = DataSource.model_validate(
            {
                "id": "ds1",
                "agent_id": "a1",
                "type": "website",
                "name": "Docs",
                "config": {"kind": "website", "url": "https://example.com", "max_pages": 3},
            }
        )
        assert isinstance(source.config, WebsiteSourceConfig)
        assert source.config.crawl_subpages is False

    def test_file_config_needs_location(self) -> None:
        with pytest.raises(ValidationError, match="storage_key or a url"):
            FileSourceConfig(mime_type="text/plain")

    def test_file_storage_key(self) -> None:
        source = DataSource(
            id="ds1",
            agent_id="a1",
            type=SourceType.FILE,
            name="menu.csv",
            config=FileSourceConfig(storage_key="uploads/a1/1-menu.csv", mime_type="text/csv"),
        )
        assert source.storage_key == "uploads/a1/1-menu.csv"

    def test_models_are_frozen(self) -> None:
        config = TextSourceConfig(content="Hi")
        with pytest.raises(ValidationError):
            config.content = "changed"


# ======================================================================
# Job
# ======================================================================


class TestJob:
    @pytest.mark.parametrize(
        ("source_type", "job_type"),
        [
            (SourceType.TEXT, JobType.PROCESS_TEXT),
            (SourceType.FILE, JobType.PROCESS_FILE),
            (SourceType.WEBSITE, JobType.CRAWL_WEBSITE),
        ],
    )
    def test_job_type_for_source(self, source_type: SourceType, job_type: JobType) -> None:
        assert JobType.for_source(source_type) is job_type

    @pytest.mark.parametrize(
        ("status", "terminal"),
        [
            (JobStatus.PENDING, False),
            (JobStatus.PROCESSING, False),
            (JobStatus.COMPLETED, True),
            (JobStatus.FAILED, True),
            (JobStatus.CANCELLED, True),
        ],
    )
    def test_terminal_statuses(self, status: JobStatus, terminal: bool) -> None:
        job = Job(id="j1", data_source_id="ds1", type=JobType.PROCESS_TEXT, status=status)
        assert job.is_terminal is terminal

    def test_defaults(self) -> None:
        job = Job(id="j1", data_source_id="ds1", type=JobType.PROCESS_TEXT)
        assert job.priority == JobPriority.NORMAL == 5
        assert (job.attempts, job.max_attempts) == (0, 3)
        assert job.created_at.tzinfo is not None

    def test_progress_percent_bounds(self) -> None:
        with pytest.raises(ValidationError):
            JobProgress(step="storing_vectors", percent=101)

    def test_result_counts_are_non_negative(self) -> None:
        with pytest.raises(ValidationError):
            IngestionResult(
                source_type=SourceType.TEXT,
                total_characters=-1,
                total_chunks=0,
                vectors_stored=0,
            )


class TestChannels:
    def test_channel_names(self) -> None:
        assert job_channel("j1") == "job_j1"
        assert agent_sources_channel("a1") == "agent_a1_sources"


# ======================================================================
# Content metadata
# ======================================================================


class TestMetadata:
    @pytest.mark.parametrize(
        ("text", "language"),
        [
            ("The menu and the wine list are on the table for you.", "en"),
            ("La carta de vinos está en la mesa para los clientes que la piden.", "es"),
            ("Le menu et la carte des vins sont sur la table pour tout le monde.", "fr"),
            ("", "en"),
        ],
    )
    def test_detect_language(self, text: str, language: str) -> None:
        assert detect_language(text) == language

    def test_counts_and_read_time(self) -> None:
        metadata = extract_metadata("word " * 450, SourceType.TEXT, "notes")
        assert metadata["word_count"] == 450
        assert metadata["estimated_read_time"] == 3
        assert metadata["source_type"] == "text"
        assert "has_links" not in metadata

    def test_website_flags(self) -> None:
        text = "See https://example.com/docs and call function(x) to start."
        metadata = extract_metadata(text, SourceType.WEBSITE, "https://example.com")
        assert metadata["has_links"] is True
        assert metadata["has_code"] is True
