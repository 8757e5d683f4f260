"""SQLite-backed durable job queue.

Messages live in the ``queue_messages`` table of the shared agentkb
database, so they survive restarts and can be consumed by several worker
processes at once.

# ─── HOW THE QUEUE WORKS (Junior Developer Guide) ─────────────────────
#
#   enqueue()  ──► state=waiting, available_at=now+delay
#   dequeue()  ──► picks the best due waiting row (priority DESC, id ASC),
#                  flips it to state=active with a lease deadline
#   heartbeat()──► pushes the lease deadline forward while a job runs
#   ack()      ──► deletes the row (done)
#   nack()     ──► attempts+1; waiting again after base * 2**(attempts-1)
#                  seconds, or state=dead once attempts reach max_attempts
#
# A worker that dies mid-job stops heartbeating; once its lease expires
# requeue_expired() puts the row back to waiting WITHOUT counting an
# attempt, so a crash never burns a retry.
#
# dequeue() claims inside ``BEGIN IMMEDIATE`` so two consumers can never
# lease the same row.  Producers in the same process wake blocked
# consumers through an asyncio.Event; consumers in other processes fall
# back to polling every ``poll_interval`` seconds.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from agentkb.interfaces.job_queue import IJobQueue
from agentkb.models.job import JobPriority, JobType, QueueDepth, QueueMessage, QueueState
from agentkb.providers.store.sqlite_common import connect, enable_wal

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/agentkb.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS queue_messages (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id           TEXT    NOT NULL,
    data_source_id   TEXT    NOT NULL,
    type             TEXT    NOT NULL,
    priority         INTEGER NOT NULL,
    state            TEXT    NOT NULL DEFAULT 'waiting',
    attempts         INTEGER NOT NULL DEFAULT 0,
    max_attempts     INTEGER NOT NULL,
    available_at     REAL    NOT NULL,
    lease_expires_at REAL,
    last_error       TEXT,
    enqueued_at      REAL    NOT NULL,
    updated_at       REAL    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_queue_ready "
    "ON queue_messages(state, priority DESC, id);",
    "CREATE INDEX IF NOT EXISTS idx_queue_job ON queue_messages(job_id);",
]

_SELECT_COLUMNS = (
    "id, job_id, data_source_id, type, priority, attempts, max_attempts, "
    "enqueued_at, lease_expires_at"
)

_SELECT_NEXT_SQL = """\
SELECT id FROM queue_messages
WHERE state = 'waiting' AND available_at <= ?
ORDER BY priority DESC, id ASC
LIMIT 1;
"""


class SQLiteJobQueue(IJobQueue):
    """Priority-ordered, at-least-once queue on SQLite."""

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        max_attempts: int = 3,
        backoff_base_seconds: float = 5.0,
        lease_seconds: float = 600.0,
        poll_interval: float = 1.0,
    ) -> None:
        self._db_path = Path(db_path)
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_seconds
        self._lease_seconds = lease_seconds
        self._poll_interval = poll_interval
        self._wakeup = asyncio.Event()
        self._closed = False

    async def initialize(self) -> None:
        """Create the queue table and indices if they don't exist."""
        await enable_wal(self._db_path)
        async with connect(self._db_path) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("job_queue_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        job_id: str,
        data_source_id: str,
        job_type: JobType,
        priority: int = JobPriority.NORMAL,
        delay_seconds: float = 0.0,
        max_attempts: int | None = None,
    ) -> QueueMessage:
        now = time.time()
        attempts_cap = max_attempts or self._max_attempts
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "INSERT INTO queue_messages (job_id, data_source_id, type, priority, state, "
                "attempts, max_attempts, available_at, enqueued_at, updated_at) "
                "VALUES (?, ?, ?, ?, 'waiting', 0, ?, ?, ?, ?)",
                (
                    job_id,
                    data_source_id,
                    JobType(job_type).value,
                    int(priority),
                    attempts_cap,
                    now + max(0.0, delay_seconds),
                    now,
                    now,
                ),
            )
            await db.commit()
            message_id = cursor.lastrowid

        self._wakeup.set()
        logger.info(
            "job_enqueued",
            job_id=job_id,
            data_source_id=data_source_id,
            job_type=JobType(job_type).value,
            priority=int(priority),
            delay_seconds=delay_seconds,
        )
        return QueueMessage(
            message_id=message_id,
            job_id=job_id,
            data_source_id=data_source_id,
            type=JobType(job_type),
            priority=int(priority),
            attempts=0,
            max_attempts=attempts_cap,
            enqueued_at=_from_epoch(now),
        )

    async def remove(self, job_id: str) -> int:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "DELETE FROM queue_messages WHERE job_id = ? AND state = 'waiting'",
                (job_id,),
            )
            await db.commit()
            removed = cursor.rowcount
        if removed:
            logger.info("queue_messages_removed", job_id=job_id, removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def dequeue(self, timeout: float | None = None) -> QueueMessage | None:
        deadline = None if timeout is None else time.monotonic() + timeout

        while not self._closed:
            self._wakeup.clear()
            await self.requeue_expired()
            message = await self._claim_next()
            if message is not None:
                return message

            wait_for = self._poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                wait_for = min(wait_for, remaining)
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=wait_for)
            except asyncio.TimeoutError:
                pass
        return None

    async def heartbeat(self, message: QueueMessage) -> bool:
        now = time.time()
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "UPDATE queue_messages SET lease_expires_at = ?, updated_at = ? "
                "WHERE id = ? AND state = 'active'",
                (now + self._lease_seconds, now, message.message_id),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def ack(self, message: QueueMessage) -> None:
        async with connect(self._db_path) as db:
            await db.execute("DELETE FROM queue_messages WHERE id = ?", (message.message_id,))
            await db.commit()
        logger.debug("job_acked", job_id=message.job_id, message_id=message.message_id)

    async def nack(
        self,
        message: QueueMessage,
        error: str,
        retryable: bool = True,
    ) -> datetime | None:
        attempts = message.attempts + 1
        now = time.time()

        if retryable and attempts < message.max_attempts:
            delay = self._backoff_base * (2 ** (attempts - 1))
            available_at = now + delay
            async with connect(self._db_path) as db:
                await db.execute(
                    "UPDATE queue_messages SET state = 'waiting', attempts = ?, "
                    "available_at = ?, lease_expires_at = NULL, last_error = ?, updated_at = ? "
                    "WHERE id = ?",
                    (attempts, available_at, error, now, message.message_id),
                )
                await db.commit()
            logger.info(
                "job_retry_scheduled",
                job_id=message.job_id,
                attempts=attempts,
                max_attempts=message.max_attempts,
                delay_seconds=delay,
            )
            return _from_epoch(available_at)

        async with connect(self._db_path) as db:
            await db.execute(
                "UPDATE queue_messages SET state = 'dead', attempts = ?, "
                "lease_expires_at = NULL, last_error = ?, updated_at = ? WHERE id = ?",
                (min(attempts, message.max_attempts), error, now, message.message_id),
            )
            await db.commit()
        logger.warning(
            "job_dead_lettered",
            job_id=message.job_id,
            attempts=attempts,
            retryable=retryable,
            error=error,
        )
        return None

    async def requeue_expired(self) -> int:
        now = time.time()
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "UPDATE queue_messages SET state = 'waiting', lease_expires_at = NULL, "
                "updated_at = ? WHERE state = 'active' AND lease_expires_at < ?",
                (now, now),
            )
            await db.commit()
            requeued = cursor.rowcount
        if requeued:
            logger.warning("stalled_jobs_requeued", count=requeued)
        return requeued

    # ------------------------------------------------------------------
    # Introspection / housekeeping
    # ------------------------------------------------------------------

    async def depth(self) -> QueueDepth:
        now = time.time()
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT state, COUNT(*) AS n, "
                "SUM(CASE WHEN available_at > ? THEN 1 ELSE 0 END) AS delayed "
                "FROM queue_messages GROUP BY state",
                (now,),
            )
            rows = await cursor.fetchall()

        counts = {QueueState.WAITING: 0, QueueState.ACTIVE: 0, QueueState.DEAD: 0}
        delayed = 0
        for row in rows:
            state = QueueState(row["state"])
            counts[state] = row["n"]
            if state == QueueState.WAITING:
                delayed = row["delayed"] or 0
        return QueueDepth(
            waiting=counts[QueueState.WAITING],
            delayed=delayed,
            active=counts[QueueState.ACTIVE],
            dead=counts[QueueState.DEAD],
        )

    async def is_healthy(self) -> bool:
        try:
            async with connect(self._db_path) as db:
                cursor = await db.execute("SELECT 1")
                row = await cursor.fetchone()
            return row is not None
        except (aiosqlite.Error, OSError) as exc:
            logger.error("queue_health_check_failed", error=str(exc))
            return False

    async def purge_dead(self, older_than_days: int) -> int:
        cutoff = time.time() - older_than_days * 86400
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "DELETE FROM queue_messages WHERE state = 'dead' AND updated_at < ?",
                (cutoff,),
            )
            await db.commit()
            purged = cursor.rowcount
        if purged:
            logger.info("dead_messages_purged", purged=purged)
        return purged

    async def close(self) -> None:
        self._closed = True
        self._wakeup.set()

    def get_provider_name(self) -> str:
        return "sqlite_queue"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _claim_next(self) -> QueueMessage | None:
        now = time.time()
        async with connect(self._db_path, autocommit=True) as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                cursor = await db.execute(_SELECT_NEXT_SQL, (now,))
                row = await cursor.fetchone()
                if row is None:
                    await db.execute("COMMIT")
                    return None
                message_id = row["id"]
                await db.execute(
                    "UPDATE queue_messages SET state = 'active', lease_expires_at = ?, "
                    "updated_at = ? WHERE id = ?",
                    (now + self._lease_seconds, now, message_id),
                )
                cursor = await db.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM queue_messages WHERE id = ?",
                    (message_id,),
                )
                claimed = await cursor.fetchone()
                await db.execute("COMMIT")
            except BaseException:
                await db.execute("ROLLBACK")
                raise

        message = self._row_to_message(claimed)
        logger.debug("job_dequeued", job_id=message.job_id, attempts=message.attempts)
        return message

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> QueueMessage:
        r = dict(row)
        return QueueMessage(
            message_id=r["id"],
            job_id=r["job_id"],
            data_source_id=r["data_source_id"],
            type=JobType(r["type"]),
            priority=r["priority"],
            attempts=r["attempts"],
            max_attempts=r["max_attempts"],
            enqueued_at=_from_epoch(r["enqueued_at"]),
            lease_expires_at=_from_epoch(r["lease_expires_at"]) if r["lease_expires_at"] else None,
        )


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)
