"""Durable stores for DataSource and Job rows (aiosqlite)."""

from agentkb.providers.store.sqlite_data_source_store import SQLiteDataSourceStore
from agentkb.providers.store.sqlite_job_store import SQLiteJobStore

__all__ = ["SQLiteDataSourceStore", "SQLiteJobStore"]
