"""Unit tests for the SQLite job store and data source store."""

from __future__ import annotations

import uuid

import pytest

from agentkb.models.data_source import (
    DataSource,
    SourceStatus,
    SourceType,
    TextSourceConfig,
)
from agentkb.models.job import JobPriority, JobProgress, JobStatus, JobType
from agentkb.providers.store.sqlite_data_source_store import SQLiteDataSourceStore
from agentkb.providers.store.sqlite_job_store import SQLiteJobStore
from agentkb.utils.errors import DataSourceNotFoundError, JobNotFoundError, SourceBusyError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _text_source(agent_id: str = "agent-1", name: str = "FAQ") -> DataSource:
    return DataSource(
        id=str(uuid.uuid4()),
        agent_id=agent_id,
        type=SourceType.TEXT,
        name=name,
        config=TextSourceConfig(content="Hello world."),
    )


# ---------------------------------------------------------------------------
# SQLiteJobStore
# ---------------------------------------------------------------------------


class TestJobStore:
    @pytest.mark.asyncio
    async def test_create_and_get_round_trip(self, job_store: SQLiteJobStore) -> None:
        job = await job_store.create_job("ds-1", JobType.PROCESS_TEXT, priority=JobPriority.HIGH)
        fetched = await job_store.get_job(job.id)

        assert fetched is not None
        assert fetched.status == JobStatus.PENDING
        assert fetched.priority == 10
        assert fetched.attempts == 0
        assert fetched.type == JobType.PROCESS_TEXT

    @pytest.mark.asyncio
    async def test_get_missing_job_returns_none(self, job_store: SQLiteJobStore) -> None:
        assert await job_store.get_job("nope") is None

    @pytest.mark.asyncio
    async def test_terminal_job_is_never_rewritten(self, job_store: SQLiteJobStore) -> None:
        job = await job_store.create_job("ds-1", JobType.PROCESS_TEXT)
        await job_store.update_job(job.id, status=JobStatus.PROCESSING)
        await job_store.update_job(job.id, status=JobStatus.COMPLETED, result={"total_chunks": 1})

        after = await job_store.update_job(job.id, status=JobStatus.FAILED, error_message="late")

        assert after.status == JobStatus.COMPLETED
        assert after.error_message is None
        assert after.result == {"total_chunks": 1}

    @pytest.mark.asyncio
    async def test_update_missing_job_raises(self, job_store: SQLiteJobStore) -> None:
        with pytest.raises(JobNotFoundError):
            await job_store.update_job("missing", status=JobStatus.PROCESSING)

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, job_store: SQLiteJobStore) -> None:
        job = await job_store.create_job("ds-1", JobType.PROCESS_TEXT)
        with pytest.raises(ValueError):
            await job_store.update_job(job.id, data_source_id="other")

    @pytest.mark.asyncio
    async def test_transition_respects_allowed_from(self, job_store: SQLiteJobStore) -> None:
        job = await job_store.create_job("ds-1", JobType.PROCESS_TEXT)

        assert await job_store.transition(job.id, {JobStatus.PROCESSING}, status=JobStatus.CANCELLED) is None
        moved = await job_store.transition(job.id, {JobStatus.PENDING}, status=JobStatus.CANCELLED)
        assert moved is not None and moved.status == JobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_progress_only_written_while_processing(self, job_store: SQLiteJobStore) -> None:
        job = await job_store.create_job("ds-1", JobType.PROCESS_TEXT)
        progress = JobProgress(step="chunking", percent=40, detail={"chunks": 3})

        assert await job_store.update_progress(job.id, progress) is False
        await job_store.update_job(job.id, status=JobStatus.PROCESSING)
        assert await job_store.update_progress(job.id, progress) is True

        fetched = await job_store.get_job(job.id)
        assert fetched.progress == progress

    @pytest.mark.asyncio
    async def test_failure_retries_until_attempts_exhausted(self, job_store: SQLiteJobStore) -> None:
        job = await job_store.create_job("ds-1", JobType.PROCESS_TEXT, max_attempts=2)

        first = await job_store.handle_job_failure(job.id, "timeout")
        assert first.status == JobStatus.PENDING
        assert first.attempts == 1

        second = await job_store.handle_job_failure(job.id, "timeout again")
        assert second.status == JobStatus.FAILED
        assert second.attempts == 2
        assert second.error_message == "timeout again"
        assert second.completed_at is not None

    @pytest.mark.asyncio
    async def test_non_retryable_failure_is_final(self, job_store: SQLiteJobStore) -> None:
        job = await job_store.create_job("ds-1", JobType.PROCESS_FILE, max_attempts=3)
        failed = await job_store.handle_job_failure(job.id, "corrupt", should_retry=False)

        assert failed.status == JobStatus.FAILED
        assert failed.attempts == 1
        assert await job_store.handle_job_failure(job.id, "again") is None

    @pytest.mark.asyncio
    async def test_list_pending_orders_by_priority(self, job_store: SQLiteJobStore) -> None:
        low = await job_store.create_job("ds-1", JobType.PROCESS_TEXT, priority=JobPriority.LOW)
        urgent = await job_store.create_job("ds-2", JobType.PROCESS_TEXT, priority=JobPriority.URGENT)
        normal = await job_store.create_job("ds-3", JobType.PROCESS_TEXT)

        pending = await job_store.list_pending()
        assert [j.id for j in pending] == [urgent.id, normal.id, low.id]

    @pytest.mark.asyncio
    async def test_list_jobs_for_sources_filters_status(self, job_store: SQLiteJobStore) -> None:
        a = await job_store.create_job("ds-a", JobType.PROCESS_TEXT)
        await job_store.create_job("ds-b", JobType.PROCESS_TEXT)
        await job_store.create_job("ds-c", JobType.PROCESS_TEXT)
        await job_store.update_job(a.id, status=JobStatus.PROCESSING)

        all_jobs = await job_store.list_jobs_for_sources(["ds-a", "ds-b"])
        processing = await job_store.list_jobs_for_sources(
            ["ds-a", "ds-b"], status=JobStatus.PROCESSING
        )

        assert len(all_jobs) == 2
        assert [j.id for j in processing] == [a.id]
        assert await job_store.list_jobs_for_sources([]) == []

    @pytest.mark.asyncio
    async def test_has_active_job(self, job_store: SQLiteJobStore) -> None:
        job = await job_store.create_job("ds-1", JobType.PROCESS_TEXT)

        assert await job_store.has_active_job("ds-1") is True
        assert await job_store.has_active_job("ds-1", exclude_job_id=job.id) is False
        assert await job_store.has_active_job("ds-2") is False

    @pytest.mark.asyncio
    async def test_delete_terminal_keeps_recent_and_active(self, job_store: SQLiteJobStore) -> None:
        done = await job_store.create_job("ds-1", JobType.PROCESS_TEXT)
        await job_store.transition(done.id, {JobStatus.PENDING}, status=JobStatus.CANCELLED)
        await job_store.create_job("ds-2", JobType.PROCESS_TEXT)

        assert await job_store.delete_terminal_older_than(days=30) == 0
        assert await job_store.delete_terminal_older_than(days=-1) == 1
        assert len(await job_store.list_pending()) == 1


# ---------------------------------------------------------------------------
# SQLiteDataSourceStore
# ---------------------------------------------------------------------------


class TestDataSourceStore:
    @pytest.mark.asyncio
    async def test_create_round_trips_typed_config(
        self, data_source_store: SQLiteDataSourceStore
    ) -> None:
        source = await data_source_store.create(_text_source())
        fetched = await data_source_store.get(source.id)

        assert isinstance(fetched.config, TextSourceConfig)
        assert fetched.config.content == "Hello world."
        assert fetched.namespace == "agent_agent-1"
        assert fetched.status == SourceStatus.PENDING

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_agent(self, data_source_store: SQLiteDataSourceStore) -> None:
        await data_source_store.create(_text_source("agent-1", "one"))
        await data_source_store.create(_text_source("agent-2", "two"))

        names = [s.name for s in await data_source_store.list_for_agent("agent-1")]
        assert names == ["one"]

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, data_source_store: SQLiteDataSourceStore) -> None:
        source = await data_source_store.create(_text_source())

        claimed = await data_source_store.claim_for_job(source.id, "job-1")
        assert claimed.status == SourceStatus.PROCESSING
        assert claimed.active_job_id == "job-1"

        # Redelivery of the same job is allowed.
        again = await data_source_store.claim_for_job(source.id, "job-1")
        assert again.active_job_id == "job-1"

        with pytest.raises(SourceBusyError):
            await data_source_store.claim_for_job(source.id, "job-2")

    @pytest.mark.asyncio
    async def test_claim_missing_source_raises(
        self, data_source_store: SQLiteDataSourceStore
    ) -> None:
        with pytest.raises(DataSourceNotFoundError):
            await data_source_store.claim_for_job("missing", "job-1")

    @pytest.mark.asyncio
    async def test_completion_requires_lease(self, data_source_store: SQLiteDataSourceStore) -> None:
        source = await data_source_store.create(_text_source())
        await data_source_store.claim_for_job(source.id, "job-1")

        assert await data_source_store.mark_completed(source.id, "job-2", 12, 1) is None
        done = await data_source_store.mark_completed(source.id, "job-1", 12, 1)

        assert done.status == SourceStatus.COMPLETED
        assert done.char_count == 12
        assert done.chunk_count == 1
        assert done.active_job_id is None
        assert done.processed_at is not None

    @pytest.mark.asyncio
    async def test_completed_source_cannot_be_claimed(
        self, data_source_store: SQLiteDataSourceStore
    ) -> None:
        source = await data_source_store.create(_text_source())
        await data_source_store.claim_for_job(source.id, "job-1")
        await data_source_store.mark_completed(source.id, "job-1", 5, 1)

        with pytest.raises(SourceBusyError):
            await data_source_store.claim_for_job(source.id, "job-2")

    @pytest.mark.asyncio
    async def test_failure_releases_lease_and_allows_reclaim(
        self, data_source_store: SQLiteDataSourceStore
    ) -> None:
        source = await data_source_store.create(_text_source())
        await data_source_store.claim_for_job(source.id, "job-1")

        failed = await data_source_store.mark_failed(source.id, "job-1", "boom")
        assert failed.status == SourceStatus.FAILED
        assert failed.error_message == "boom"

        retried = await data_source_store.claim_for_job(source.id, "job-2")
        assert retried.error_message is None

    @pytest.mark.asyncio
    async def test_cancel_pending_source(self, data_source_store: SQLiteDataSourceStore) -> None:
        source = await data_source_store.create(_text_source())
        cancelled = await data_source_store.mark_cancelled(source.id, "job-1")

        assert cancelled.status == SourceStatus.FAILED
        assert cancelled.error_message == "Processing cancelled"

    @pytest.mark.asyncio
    async def test_reset_refused_while_leased(self, data_source_store: SQLiteDataSourceStore) -> None:
        source = await data_source_store.create(_text_source())
        await data_source_store.claim_for_job(source.id, "job-1")

        with pytest.raises(SourceBusyError):
            await data_source_store.reset_for_reprocess(source.id)

        await data_source_store.mark_completed(source.id, "job-1", 12, 1)
        reset = await data_source_store.reset_for_reprocess(source.id)
        assert reset.status == SourceStatus.PENDING
        assert reset.char_count is None

    @pytest.mark.asyncio
    async def test_delete(self, data_source_store: SQLiteDataSourceStore) -> None:
        source = await data_source_store.create(_text_source())

        assert await data_source_store.delete(source.id) is True
        assert await data_source_store.delete(source.id) is False
        assert await data_source_store.get(source.id) is None
