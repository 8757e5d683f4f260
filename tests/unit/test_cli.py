"""Unit tests for the enqueue and worker command-line tools."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import pytest

from agentkb.cli import enqueue, worker
from agentkb.config.settings import Settings
from agentkb.providers.queue.sqlite_job_queue import SQLiteJobQueue

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        database_path=str(tmp_path / "agentkb.db"),
        chromadb_persist_dir=str(tmp_path / "chroma"),
        object_store_root=str(tmp_path / "blobs"),
        openai_api_key="",
        embedding_dimension=8,
        job_concurrency=1,
        queue_poll_interval_seconds=0.05,
        worker_shutdown_grace_seconds=1.0,
    )


def _parse(argv: list[str]) -> argparse.Namespace:
    return enqueue._build_parser().parse_args(argv)


# ---------------------------------------------------------------------------
# enqueue
# ---------------------------------------------------------------------------


class TestEnqueueParser:
    def test_text_requires_content_or_file(self) -> None:
        with pytest.raises(SystemExit):
            _parse(["text", "--agent", "a1", "--name", "FAQ"])

    def test_content_and_file_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            _parse(["text", "--agent", "a1", "--name", "FAQ", "--content", "x", "--from-file", "y"])

    def test_website_defaults(self) -> None:
        args = _parse(["website", "--agent", "a1", "--url", "https://example.com"])
        assert args.subpages is False
        assert args.max_pages == 10
        assert args.priority == 5

    def test_no_command_exits_with_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as excinfo:
            enqueue.main([])
        assert excinfo.value.code == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_max_pages_out_of_range(self) -> None:
        with pytest.raises(SystemExit) as excinfo:
            enqueue.main(["website", "--agent", "a1", "--url", "https://x.io", "--max-pages", "500"])
        assert excinfo.value.code == 2


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_text_then_status(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args = _parse(["text", "--agent", "a1", "--name", "FAQ", "--content", "Hello world."])
        assert await enqueue.run_command(args, cli_settings) == 0

        out = capsys.readouterr().out
        assert "Source created:" in out
        assert "Namespace: agent_a1" in out
        job_id = next(line.split()[1] for line in out.splitlines() if "Job:" in line)

        assert await enqueue.run_command(_parse(["status", job_id]), cli_settings) == 0
        status_out = capsys.readouterr().out
        assert f"Job {job_id}" in status_out
        assert "Status:    pending" in status_out

    @pytest.mark.asyncio
    async def test_text_from_file(
        self, cli_settings: Settings, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        notes = tmp_path / "notes.txt"
        notes.write_text("Notes from disk.", encoding="utf-8")

        args = _parse(["text", "--agent", "a1", "--name", "Notes", "--from-file", str(notes)])
        assert await enqueue.run_command(args, cli_settings) == 0
        assert "(text, Notes)" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_file_upload_guesses_type(
        self, cli_settings: Settings, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        data = tmp_path / "menu.csv"
        data.write_text("dish,price\nsoup,4\n", encoding="utf-8")

        args = _parse(["file", "--agent", "a1", "--path", str(data)])
        assert await enqueue.run_command(args, cli_settings) == 0
        assert "(file, menu.csv)" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_missing_file(
        self, cli_settings: Settings, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args = _parse(["file", "--agent", "a1", "--path", str(tmp_path / "nope.pdf")])
        assert await enqueue.run_command(args, cli_settings) == 1
        assert "file not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_application_error_is_reported(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert await enqueue.run_command(_parse(["status", "missing-job"]), cli_settings) == 1
        assert "Error: Job missing-job not found" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# worker
# ---------------------------------------------------------------------------


class TestWorker:
    def test_overrides_are_applied(self, cli_settings: Settings) -> None:
        args = worker._build_parser().parse_args(
            ["--concurrency", "0", "--grace-seconds", "5", "--log-level", "DEBUG"]
        )
        updated = worker._apply_overrides(cli_settings, args)

        assert updated.job_concurrency == 1
        assert updated.worker_shutdown_grace_seconds == 5.0
        assert updated.log_level == "DEBUG"
        assert cli_settings.job_concurrency == 1

    @pytest.mark.asyncio
    async def test_housekeeping_only(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert await worker.run_worker(cli_settings, housekeeping_only=True) == 0
        assert "Housekeeping complete" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_unhealthy_queue_exits_1(
        self, cli_settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def _unhealthy(self: SQLiteJobQueue) -> bool:
            return False

        monkeypatch.setattr(SQLiteJobQueue, "is_healthy", _unhealthy)
        assert await worker.run_worker(cli_settings) == 1

    @pytest.mark.asyncio
    async def test_runs_until_stop_event(
        self, cli_settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(worker, "_install_signal_handlers", lambda stop_event: None)
        stop_event = asyncio.Event()

        task = asyncio.create_task(worker.run_worker(cli_settings, stop_event=stop_event))
        await asyncio.sleep(0.2)
        assert not task.done()

        stop_event.set()
        assert await asyncio.wait_for(task, timeout=5.0) == 0
