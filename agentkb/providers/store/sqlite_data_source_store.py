"""SQLite-backed DataSource store.

Persists DataSource rows (with their typed config as JSON) to the shared
agentkb database using ``aiosqlite``.

# ─── THE PER-SOURCE LEASE (Junior Developer Guide) ────────────────────
#
# Two jobs must never process the same DataSource at once: both would
# write the source's status and both would upsert the same vector ids.
# The ``active_job_id`` column is a compare-and-set lease:
#
#   claim_for_job(src, job)   pending/failed + unleased  → processing, lease=job
#                             already leased to job       → no-op (redelivery)
#                             leased to another job       → SourceBusyError
#   mark_completed/failed     only when lease == job      → terminal, lease cleared
#
# Each transition is one UPDATE with the precondition in its WHERE clause,
# so SQLite's write lock makes it atomic across worker processes.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog
from pydantic import TypeAdapter

from agentkb.interfaces.data_source_store import IDataSourceStore
from agentkb.models.data_source import DataSource, SourceConfig, SourceStatus, SourceType
from agentkb.providers.store.sqlite_common import (
    connect,
    enable_wal,
    from_db_ts,
    to_db_ts,
    utcnow,
)
from agentkb.utils.errors import DataSourceNotFoundError, SourceBusyError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/agentkb.db")

_CANCELLED_MESSAGE = "Processing cancelled"

_CONFIG_ADAPTER: TypeAdapter[SourceConfig] = TypeAdapter(SourceConfig)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS data_sources (
    id             TEXT    PRIMARY KEY,
    agent_id       TEXT    NOT NULL,
    type           TEXT    NOT NULL,
    name           TEXT    NOT NULL,
    config         TEXT    NOT NULL,
    status         TEXT    NOT NULL DEFAULT 'pending',
    error_message  TEXT,
    char_count     INTEGER,
    chunk_count    INTEGER,
    active_job_id  TEXT,
    namespace      TEXT    NOT NULL,
    created_at     TEXT    NOT NULL,
    processed_at   TEXT
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_data_sources_agent ON data_sources(agent_id, created_at);",
]

_SELECT_COLUMNS = (
    "id, agent_id, type, name, config, status, error_message, char_count, "
    "chunk_count, active_job_id, namespace, created_at, processed_at"
)

_CLAIM_SQL = """\
UPDATE data_sources
SET status = 'processing', active_job_id = ?, error_message = NULL
WHERE id = ?
  AND ((active_job_id IS NULL AND status IN ('pending', 'failed')) OR active_job_id = ?);
"""

_COMPLETE_SQL = """\
UPDATE data_sources
SET status = 'completed', char_count = ?, chunk_count = ?, error_message = NULL,
    processed_at = ?, active_job_id = NULL
WHERE id = ? AND active_job_id = ?;
"""

_FAIL_SQL = """\
UPDATE data_sources
SET status = 'failed', error_message = ?, processed_at = ?, active_job_id = NULL
WHERE id = ? AND active_job_id = ?;
"""

_CANCEL_SQL = """\
UPDATE data_sources
SET status = 'failed', error_message = ?, processed_at = ?, active_job_id = NULL
WHERE id = ?
  AND (active_job_id = ? OR (active_job_id IS NULL AND status = 'pending'));
"""

_RESET_SQL = """\
UPDATE data_sources
SET status = 'pending', error_message = NULL, char_count = NULL, chunk_count = NULL,
    processed_at = NULL
WHERE id = ? AND active_job_id IS NULL;
"""


class SQLiteDataSourceStore(IDataSourceStore):
    """DataSource persistence in the ``data_sources`` table."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the data_sources table and indices if they don't exist."""
        await enable_wal(self._db_path)
        async with connect(self._db_path) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("data_source_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create(self, source: DataSource) -> DataSource:
        async with connect(self._db_path) as db:
            await db.execute(
                f"INSERT INTO data_sources ({_SELECT_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    source.id,
                    source.agent_id,
                    source.type.value,
                    source.name,
                    source.config.model_dump_json(),
                    source.status.value,
                    source.error_message,
                    source.char_count,
                    source.chunk_count,
                    source.active_job_id,
                    source.namespace,
                    to_db_ts(source.created_at),
                    to_db_ts(source.processed_at),
                ),
            )
            await db.commit()

        logger.info(
            "data_source_created",
            data_source_id=source.id,
            agent_id=source.agent_id,
            source_type=source.type.value,
        )
        return source

    async def get(self, source_id: str) -> DataSource | None:
        async with connect(self._db_path) as db:
            return await self._fetch(db, source_id)

    async def list_for_agent(self, agent_id: str) -> list[DataSource]:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM data_sources WHERE agent_id = ? "
                "ORDER BY created_at DESC",
                (agent_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_source(r) for r in rows]

    async def delete(self, source_id: str) -> bool:
        async with connect(self._db_path) as db:
            cursor = await db.execute("DELETE FROM data_sources WHERE id = ?", (source_id,))
            await db.commit()
            deleted = cursor.rowcount == 1
        if deleted:
            logger.info("data_source_deleted", data_source_id=source_id)
        return deleted

    # ------------------------------------------------------------------
    # Lease transitions
    # ------------------------------------------------------------------

    async def claim_for_job(self, source_id: str, job_id: str) -> DataSource:
        async with connect(self._db_path) as db:
            cursor = await db.execute(_CLAIM_SQL, (job_id, source_id, job_id))
            await db.commit()
            claimed = cursor.rowcount == 1
            source = await self._fetch(db, source_id)

        if source is None:
            raise DataSourceNotFoundError(message=f"Data source {source_id} not found")
        if not claimed:
            holder = source.active_job_id
            if holder:
                detail = f"leased to job {holder}"
            else:
                detail = f"in status '{source.status.value}'"
            raise SourceBusyError(message=f"Data source {source_id} is {detail}")

        logger.debug("data_source_claimed", data_source_id=source_id, job_id=job_id)
        return source

    async def mark_completed(
        self,
        source_id: str,
        job_id: str,
        char_count: int,
        chunk_count: int,
    ) -> DataSource | None:
        return await self._conditional(
            _COMPLETE_SQL,
            (char_count, chunk_count, to_db_ts(utcnow()), source_id, job_id),
            source_id,
            "data_source_completed",
        )

    async def mark_failed(self, source_id: str, job_id: str, error_message: str) -> DataSource | None:
        return await self._conditional(
            _FAIL_SQL,
            (error_message, to_db_ts(utcnow()), source_id, job_id),
            source_id,
            "data_source_failed",
        )

    async def mark_cancelled(self, source_id: str, job_id: str) -> DataSource | None:
        return await self._conditional(
            _CANCEL_SQL,
            (_CANCELLED_MESSAGE, to_db_ts(utcnow()), source_id, job_id),
            source_id,
            "data_source_cancelled",
        )

    async def reset_for_reprocess(self, source_id: str) -> DataSource:
        async with connect(self._db_path) as db:
            cursor = await db.execute(_RESET_SQL, (source_id,))
            await db.commit()
            reset = cursor.rowcount == 1
            source = await self._fetch(db, source_id)

        if source is None:
            raise DataSourceNotFoundError(message=f"Data source {source_id} not found")
        if not reset:
            raise SourceBusyError(
                message=f"Data source {source_id} is being processed by job {source.active_job_id}"
            )
        logger.info("data_source_reset", data_source_id=source_id)
        return source

    async def close(self) -> None:
        """Connections are per-call; nothing is held open."""

    def get_provider_name(self) -> str:
        return "sqlite_data_sources"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _conditional(
        self,
        sql: str,
        params: tuple,
        source_id: str,
        event: str,
    ) -> DataSource | None:
        async with connect(self._db_path) as db:
            cursor = await db.execute(sql, params)
            await db.commit()
            if cursor.rowcount != 1:
                logger.debug("data_source_write_skipped", data_source_id=source_id, op=event)
                return None
            source = await self._fetch(db, source_id)
        logger.info(event, data_source_id=source_id)
        return source

    async def _fetch(self, db: aiosqlite.Connection, source_id: str) -> DataSource | None:
        cursor = await db.execute(
            f"SELECT {_SELECT_COLUMNS} FROM data_sources WHERE id = ?", (source_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_source(row) if row is not None else None

    @staticmethod
    def _row_to_source(row: aiosqlite.Row) -> DataSource:
        r = dict(row)
        return DataSource(
            id=r["id"],
            agent_id=r["agent_id"],
            type=SourceType(r["type"]),
            name=r["name"],
            config=_CONFIG_ADAPTER.validate_json(r["config"]),
            status=SourceStatus(r["status"]),
            error_message=r["error_message"],
            char_count=r["char_count"],
            chunk_count=r["chunk_count"],
            active_job_id=r["active_job_id"],
            namespace=r["namespace"],
            created_at=from_db_ts(r["created_at"]),
            processed_at=from_db_ts(r["processed_at"]),
        )
