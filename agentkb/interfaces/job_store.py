"""Abstract base class for durable Job persistence.

The job store is the single point of mutation for Job rows.  Every status
write is conditional: a row that has reached a terminal status
(completed / failed / cancelled) is never rewritten, which is what lets
an external cancel win against a worker that finishes late.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection
from datetime import datetime
from typing import Any

from agentkb.models.job import Job, JobPriority, JobProgress, JobStatus, JobType


# Concrete implementation: SQLiteJobStore (agentkb/providers/store/).
class IJobStore(ABC):
    """Contract for Job CRUD, conditional transitions and housekeeping."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indexes if they do not exist."""

    @abstractmethod
    async def create_job(
        self,
        data_source_id: str,
        job_type: JobType,
        priority: int = JobPriority.NORMAL,
        max_attempts: int = 3,
        scheduled_for: datetime | None = None,
    ) -> Job:
        """Insert a new ``pending`` job and return it."""

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None:
        """Return the job, or None when it does not exist."""

    @abstractmethod
    async def update_job(self, job_id: str, **fields: Any) -> Job:
        """Write *fields* to a non-terminal job and return the stored row.

        A terminal job is returned unchanged.

        Raises
        ------
        agentkb.utils.errors.JobNotFoundError
            If no job has this id.
        """

    @abstractmethod
    async def transition(
        self,
        job_id: str,
        allowed_from: Collection[JobStatus],
        **fields: Any,
    ) -> Job | None:
        """Write *fields* only if the job's current status is in *allowed_from*.

        Returns
        -------
        Job | None
            The updated job, or None when the row was missing or in a
            status outside *allowed_from* (nothing written).
        """

    @abstractmethod
    async def update_progress(self, job_id: str, progress: JobProgress) -> bool:
        """Record progress on a ``processing`` job; False if not processing."""

    @abstractmethod
    async def handle_job_failure(
        self,
        job_id: str,
        error_message: str,
        should_retry: bool = True,
    ) -> Job | None:
        """Count a failed attempt.

        Increments ``attempts`` (never past ``max_attempts``) and sets the
        status to ``pending`` while attempts remain and *should_retry* is
        True, otherwise to ``failed`` with ``completed_at``.  Returns None
        when the job is missing or already terminal.
        """

    @abstractmethod
    async def list_jobs_for_source(self, data_source_id: str) -> list[Job]:
        """Return all jobs of a DataSource, newest first."""

    @abstractmethod
    async def list_jobs_for_sources(
        self,
        data_source_ids: Collection[str],
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[Job]:
        """Return jobs across several DataSources, newest first."""

    @abstractmethod
    async def list_pending(self, limit: int = 50) -> list[Job]:
        """Return due ``pending`` jobs by priority desc, then created_at asc."""

    @abstractmethod
    async def has_active_job(self, data_source_id: str, exclude_job_id: str | None = None) -> bool:
        """Return True if a pending/processing job exists for the DataSource."""

    @abstractmethod
    async def delete_terminal_older_than(self, days: int) -> int:
        """Delete terminal jobs created more than *days* ago; return the count."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""
