"""SQLite-backed job store.

Persists Job rows to the shared agentkb database using ``aiosqlite``.
Every status-changing write is a single conditional ``UPDATE`` whose
``WHERE`` clause names the statuses it may move the row out of, so a
terminal row (completed / failed / cancelled) is never rewritten, no
matter which worker or API call loses the race.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Collection
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from agentkb.interfaces.job_store import IJobStore
from agentkb.models.job import (
    ACTIVE_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    Job,
    JobPriority,
    JobProgress,
    JobStatus,
    JobType,
)
from agentkb.providers.store.sqlite_common import (
    connect,
    enable_wal,
    from_db_ts,
    to_db_ts,
    utcnow,
)
from agentkb.utils.errors import JobNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/agentkb.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS jobs (
    id             TEXT    PRIMARY KEY,
    data_source_id TEXT    NOT NULL,
    type           TEXT    NOT NULL,
    priority       INTEGER NOT NULL DEFAULT 5,
    status         TEXT    NOT NULL DEFAULT 'pending',
    progress       TEXT,
    result         TEXT,
    error_message  TEXT,
    attempts       INTEGER NOT NULL DEFAULT 0,
    max_attempts   INTEGER NOT NULL DEFAULT 3,
    scheduled_for  TEXT,
    started_at     TEXT,
    completed_at   TEXT,
    created_at     TEXT    NOT NULL,
    updated_at     TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_jobs_source ON jobs(data_source_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_pending ON jobs(status, priority DESC, created_at);",
]

_SELECT_COLUMNS = (
    "id, data_source_id, type, priority, status, progress, result, error_message, "
    "attempts, max_attempts, scheduled_for, started_at, completed_at, created_at"
)

# Columns callers may write through update_job / transition.
_WRITABLE_FIELDS = frozenset(
    {
        "status",
        "progress",
        "result",
        "error_message",
        "attempts",
        "started_at",
        "completed_at",
        "scheduled_for",
        "priority",
    }
)

_FAILURE_SQL = """\
UPDATE jobs
SET attempts      = MIN(attempts + 1, max_attempts),
    error_message = ?,
    status        = CASE WHEN ? AND attempts + 1 < max_attempts THEN 'pending' ELSE 'failed' END,
    completed_at  = CASE WHEN ? AND attempts + 1 < max_attempts THEN NULL ELSE ? END,
    updated_at    = ?
WHERE id = ? AND status IN ('pending', 'processing');
"""


class SQLiteJobStore(IJobStore):
    """Job persistence in the ``jobs`` table."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the jobs table and indices if they don't exist."""
        await enable_wal(self._db_path)
        async with connect(self._db_path) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("job_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    async def create_job(
        self,
        data_source_id: str,
        job_type: JobType,
        priority: int = JobPriority.NORMAL,
        max_attempts: int = 3,
        scheduled_for: datetime | None = None,
    ) -> Job:
        job = Job(
            id=str(uuid.uuid4()),
            data_source_id=data_source_id,
            type=job_type,
            priority=int(priority),
            max_attempts=max_attempts,
            scheduled_for=scheduled_for,
        )
        now = to_db_ts(job.created_at)
        async with connect(self._db_path) as db:
            await db.execute(
                "INSERT INTO jobs (id, data_source_id, type, priority, status, attempts, "
                "max_attempts, scheduled_for, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?)",
                (
                    job.id,
                    job.data_source_id,
                    job.type.value,
                    job.priority,
                    job.status.value,
                    job.max_attempts,
                    to_db_ts(scheduled_for),
                    now,
                    now,
                ),
            )
            await db.commit()

        logger.info(
            "job_created",
            job_id=job.id,
            data_source_id=data_source_id,
            job_type=job.type.value,
            priority=job.priority,
        )
        return job

    async def get_job(self, job_id: str) -> Job | None:
        async with connect(self._db_path) as db:
            return await self._fetch(db, job_id)

    # ------------------------------------------------------------------
    # Conditional writes
    # ------------------------------------------------------------------

    async def update_job(self, job_id: str, **fields: Any) -> Job:
        updated = await self.transition(job_id, ACTIVE_JOB_STATUSES, **fields)
        if updated is not None:
            return updated
        existing = await self.get_job(job_id)
        if existing is None:
            raise JobNotFoundError(message=f"Job {job_id} not found")
        logger.debug("job_update_skipped_terminal", job_id=job_id, status=existing.status.value)
        return existing

    async def transition(
        self,
        job_id: str,
        allowed_from: Collection[JobStatus],
        **fields: Any,
    ) -> Job | None:
        if not allowed_from:
            return None
        assignments, values = self._encode_fields(fields)
        allowed = [JobStatus(s).value for s in allowed_from]
        placeholders = ", ".join("?" for _ in allowed)

        sql = (
            f"UPDATE jobs SET {', '.join(assignments)}, updated_at = ? "
            f"WHERE id = ? AND status IN ({placeholders})"
        )
        params = [*values, to_db_ts(utcnow()), job_id, *allowed]

        async with connect(self._db_path) as db:
            cursor = await db.execute(sql, params)
            await db.commit()
            if cursor.rowcount != 1:
                return None
            job = await self._fetch(db, job_id)

        if "status" in fields:
            logger.info(
                "job_status_changed",
                job_id=job_id,
                status=JobStatus(fields["status"]).value,
            )
        return job

    async def update_progress(self, job_id: str, progress: JobProgress) -> bool:
        updated = await self.transition(job_id, {JobStatus.PROCESSING}, progress=progress)
        return updated is not None

    async def handle_job_failure(
        self,
        job_id: str,
        error_message: str,
        should_retry: bool = True,
    ) -> Job | None:
        now = to_db_ts(utcnow())
        retry_flag = 1 if should_retry else 0
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                _FAILURE_SQL,
                (error_message, retry_flag, retry_flag, now, now, job_id),
            )
            await db.commit()
            if cursor.rowcount != 1:
                return None
            job = await self._fetch(db, job_id)

        if job is not None:
            logger.info(
                "job_attempt_failed",
                job_id=job_id,
                attempts=job.attempts,
                max_attempts=job.max_attempts,
                status=job.status.value,
                will_retry=job.status == JobStatus.PENDING,
            )
        return job

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_jobs_for_source(self, data_source_id: str) -> list[Job]:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM jobs WHERE data_source_id = ? "
                "ORDER BY created_at DESC",
                (data_source_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_job(r) for r in rows]

    async def list_jobs_for_sources(
        self,
        data_source_ids: Collection[str],
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[Job]:
        ids = list(data_source_ids)
        if not ids:
            return []

        clauses = [f"data_source_id IN ({', '.join('?' for _ in ids)})"]
        params: list[Any] = list(ids)
        if status is not None:
            clauses.append("status = ?")
            params.append(JobStatus(status).value)
        params.append(limit)

        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM jobs WHERE {' AND '.join(clauses)} "
                "ORDER BY created_at DESC LIMIT ?",
                params,
            )
            rows = await cursor.fetchall()
        return [self._row_to_job(r) for r in rows]

    async def list_pending(self, limit: int = 50) -> list[Job]:
        now = to_db_ts(utcnow())
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM jobs "
                "WHERE status = 'pending' AND (scheduled_for IS NULL OR scheduled_for <= ?) "
                "ORDER BY priority DESC, created_at ASC LIMIT ?",
                (now, limit),
            )
            rows = await cursor.fetchall()
        return [self._row_to_job(r) for r in rows]

    async def has_active_job(self, data_source_id: str, exclude_job_id: str | None = None) -> bool:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT 1 FROM jobs WHERE data_source_id = ? "
                "AND status IN ('pending', 'processing') AND id != ? LIMIT 1",
                (data_source_id, exclude_job_id or ""),
            )
            row = await cursor.fetchone()
        return row is not None

    async def delete_terminal_older_than(self, days: int) -> int:
        cutoff = to_db_ts(utcnow() - timedelta(days=days))
        terminal = [s.value for s in TERMINAL_JOB_STATUSES]
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"DELETE FROM jobs WHERE status IN ({', '.join('?' for _ in terminal)}) "
                "AND created_at < ?",
                (*terminal, cutoff),
            )
            await db.commit()
            deleted = cursor.rowcount

        logger.info("old_jobs_deleted", deleted=deleted, retention_days=days)
        return deleted

    async def close(self) -> None:
        """Connections are per-call; nothing is held open."""

    def get_provider_name(self) -> str:
        return "sqlite_jobs"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fetch(self, db: aiosqlite.Connection, job_id: str) -> Job | None:
        cursor = await db.execute(f"SELECT {_SELECT_COLUMNS} FROM jobs WHERE id = ?", (job_id,))
        row = await cursor.fetchone()
        return self._row_to_job(row) if row is not None else None

    @staticmethod
    def _encode_fields(fields: dict[str, Any]) -> tuple[list[str], list[Any]]:
        unknown = set(fields) - _WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown job fields: {sorted(unknown)}")
        if not fields:
            raise ValueError("No job fields to update")

        assignments: list[str] = []
        values: list[Any] = []
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = to_db_ts(value)
            elif isinstance(value, JobProgress):
                value = value.model_dump_json()
            elif isinstance(value, dict):
                value = json.dumps(value, default=str)
            values.append(value)
        return assignments, values

    @staticmethod
    def _row_to_job(row: aiosqlite.Row) -> Job:
        r = dict(row)
        return Job(
            id=r["id"],
            data_source_id=r["data_source_id"],
            type=JobType(r["type"]),
            priority=r["priority"],
            status=JobStatus(r["status"]),
            progress=JobProgress.model_validate_json(r["progress"]) if r["progress"] else None,
            result=json.loads(r["result"]) if r["result"] else None,
            error_message=r["error_message"],
            attempts=r["attempts"],
            max_attempts=r["max_attempts"],
            scheduled_for=from_db_ts(r["scheduled_for"]),
            started_at=from_db_ts(r["started_at"]),
            completed_at=from_db_ts(r["completed_at"]),
            created_at=from_db_ts(r["created_at"]),
        )
