"""Shared helpers for the aiosqlite-backed stores.

Timestamps are stored as fixed-width UTC strings
(``YYYY-MM-DDTHH:MM:SS.ffffffZ``) so that SQL string comparison orders
them correctly.  ``datetime.isoformat()`` is not used because it drops
the fractional part when microseconds are zero.
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Seconds a connection waits on a locked database before erroring.
BUSY_TIMEOUT_SECONDS = 30.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def from_db_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


@contextlib.asynccontextmanager
async def connect(db_path: Path, autocommit: bool = False) -> AsyncIterator[aiosqlite.Connection]:
    """Open a connection with ``Row`` factory and a busy timeout.

    With ``autocommit=True`` the connection runs without implicit
    transactions so the caller can issue ``BEGIN IMMEDIATE`` itself.
    """
    kwargs: dict = {"timeout": BUSY_TIMEOUT_SECONDS}
    if autocommit:
        kwargs["isolation_level"] = None
    async with aiosqlite.connect(str(db_path), **kwargs) as db:
        db.row_factory = aiosqlite.Row
        yield db


async def enable_wal(db_path: Path) -> None:
    """Switch the database to WAL so readers don't block the writer."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(str(db_path)) as db:
        await db.execute("PRAGMA journal_mode=WAL;")
        await db.commit()
