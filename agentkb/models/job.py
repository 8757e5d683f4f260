"""Job and queue-message models.

A **Job** is the durable, user-visible record of one unit of ingestion
work.  A **QueueMessage** is the transport envelope the worker pool pulls
from the job queue; it only carries identifiers, the Job row is the
source of truth for status, progress and result.

Job status state machine::

    PENDING ──► PROCESSING ──► COMPLETED
       ▲            │
       └── retry ───┤
                    ├──► FAILED     (attempts exhausted / not retryable)
    PENDING/PROCESSING ──► CANCELLED (external cancel)

COMPLETED, FAILED and CANCELLED are terminal: the job store refuses to
rewrite a row once it reaches one of them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agentkb.models.data_source import SourceType


class JobStatus(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


TERMINAL_JOB_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)
ACTIVE_JOB_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})


class JobType(str, Enum):  # noqa: UP042
    """Queue job names, one per source type."""

    PROCESS_TEXT = "process_text"
    PROCESS_FILE = "process_file"
    CRAWL_WEBSITE = "crawl_website"

    @classmethod
    def for_source(cls, source_type: SourceType) -> JobType:
        match source_type:
            case SourceType.TEXT:
                return cls.PROCESS_TEXT
            case SourceType.FILE:
                return cls.PROCESS_FILE
            case SourceType.WEBSITE:
                return cls.CRAWL_WEBSITE
        raise ValueError(f"Unknown source type: {source_type}")


class JobPriority(IntEnum):
    """Queue priorities; higher dequeues sooner."""

    LOW = 1
    NORMAL = 5
    HIGH = 10
    URGENT = 20


class JobProgress(BaseModel):
    """Structured progress: a named step, a percentage and free-form detail."""

    model_config = ConfigDict(frozen=True)

    step: str
    percent: int = Field(default=0, ge=0, le=100)
    detail: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# IngestionResult - summary written to Job.result on completion.
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Output summary of one successful ingestion run.

    The common fields are always set; the optional ones depend on the
    source type (file preview for files, crawl provenance for websites).
    """

    model_config = ConfigDict(frozen=True)

    source_type: SourceType
    total_characters: int = Field(ge=0)
    total_chunks: int = Field(ge=0)
    vectors_stored: int = Field(ge=0)
    mock_embeddings: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    # file
    file_name: str | None = None
    mime_type: str | None = None
    extracted_preview: str | None = None
    # website
    pages_crawled: int | None = None
    crawled_urls: list[str] | None = None


class Job(BaseModel):
    """One trackable unit of ingestion work against a DataSource."""

    model_config = ConfigDict(frozen=True)

    id: str
    data_source_id: str
    type: JobType
    priority: int = int(JobPriority.NORMAL)
    status: JobStatus = JobStatus.PENDING
    progress: JobProgress | None = None
    result: dict[str, Any] | None = None
    error_message: str | None = None
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    scheduled_for: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


# ---------------------------------------------------------------------------
# Queue envelope
# ---------------------------------------------------------------------------
class QueueState(str, Enum):  # noqa: UP042
    WAITING = "waiting"
    ACTIVE = "active"
    DEAD = "dead"


class QueueMessage(BaseModel):
    """A leased message handed to a worker slot by the job queue."""

    model_config = ConfigDict(frozen=True)

    message_id: int
    job_id: str
    data_source_id: str
    type: JobType
    priority: int
    attempts: int = 0
    max_attempts: int = 3
    enqueued_at: datetime
    lease_expires_at: datetime | None = None


class QueueDepth(BaseModel):
    """Per-state message counts; ``delayed`` is the waiting subset not yet due."""

    model_config = ConfigDict(frozen=True)

    waiting: int = 0
    delayed: int = 0
    active: int = 0
    dead: int = 0

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.dead
