"""Abstract base class for DataSource persistence.

Besides plain CRUD, the store implements the per-DataSource lease: the
``active_job_id`` column names the one job allowed to drive the source
through ``processing`` to a terminal status.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from agentkb.models.data_source import DataSource


# Concrete implementation: SQLiteDataSourceStore (agentkb/providers/store/).
class IDataSourceStore(ABC):
    """Contract for DataSource CRUD and lease management."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indexes if they do not exist."""

    @abstractmethod
    async def create(self, source: DataSource) -> DataSource:
        """Insert *source* and return it."""

    @abstractmethod
    async def get(self, source_id: str) -> DataSource | None:
        """Return the DataSource, or None when it does not exist."""

    @abstractmethod
    async def list_for_agent(self, agent_id: str) -> list[DataSource]:
        """Return an agent's sources, newest first."""

    @abstractmethod
    async def claim_for_job(self, source_id: str, job_id: str) -> DataSource:
        """Move the source to ``processing`` under *job_id*'s lease.

        Succeeds when the source is ``pending`` or ``failed`` and unleased,
        or is already leased to *job_id* (redelivery of the same job).

        Raises
        ------
        agentkb.utils.errors.DataSourceNotFoundError
            If the source does not exist.
        agentkb.utils.errors.SourceBusyError
            If another job holds the lease.
        """

    @abstractmethod
    async def mark_completed(
        self,
        source_id: str,
        job_id: str,
        char_count: int,
        chunk_count: int,
    ) -> DataSource | None:
        """Complete the source and release the lease.

        Only writes when *job_id* holds the lease; returns None otherwise.
        """

    @abstractmethod
    async def mark_failed(self, source_id: str, job_id: str, error_message: str) -> DataSource | None:
        """Fail the source and release the lease (only for the lease holder)."""

    @abstractmethod
    async def mark_cancelled(self, source_id: str, job_id: str) -> DataSource | None:
        """Record that *job_id* was cancelled.

        Applies when *job_id* holds the lease, or when the source is still
        ``pending`` and unleased (the job was cancelled before a worker
        claimed it).  The source ends ``failed`` with a cancellation
        message so the user can reprocess it.
        """

    @abstractmethod
    async def reset_for_reprocess(self, source_id: str) -> DataSource:
        """Set the source back to ``pending`` and clear error and counts.

        Raises
        ------
        agentkb.utils.errors.DataSourceNotFoundError
            If the source does not exist.
        agentkb.utils.errors.SourceBusyError
            If a job currently holds the lease.
        """

    @abstractmethod
    async def delete(self, source_id: str) -> bool:
        """Delete the row; return False when it did not exist."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""
