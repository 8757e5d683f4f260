"""Realtime event payloads and channel naming.

Subscribers find a job's events on ``job_{job_id}`` and an agent's
source-list events on ``agent_{agent_id}_sources``.  Both names are
derived here so the publisher, the WebSocket endpoints and the
subscribe-info routes agree.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agentkb.models.data_source import SourceStatus
from agentkb.models.job import JobProgress, JobStatus

JOB_STATUS_EVENT = "job_status_update"
SOURCE_STATUS_EVENT = "source_status_update"


def job_channel(job_id: str) -> str:
    return f"job_{job_id}"


def agent_sources_channel(agent_id: str) -> str:
    return f"agent_{agent_id}_sources"


class JobUpdateEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    progress: JobProgress | None = None
    error_message: str | None = None
    result: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SourceUpdateEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: str
    agent_id: str
    status: SourceStatus
    char_count: int | None = None
    chunk_count: int | None = None
    error_message: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
