"""agentkb domain models - re-exports all public model classes.

The models are organized by domain concern:
    - data_source.py - DataSource + its typed source configs
    - job.py         - Job lifecycle, priorities, queue envelope, result summary
    - vector.py      - Vector index records and stats
    - events.py      - Realtime event payloads and channel names
    - storage.py     - Object-store results (stored objects, presigned URLs)

If you add a new model class, remember to add it to ``__all__`` too.
"""

from __future__ import annotations

from agentkb.models.data_source import (
    DataSource,
    FileSourceConfig,
    SourceConfig,
    SourceStatus,
    SourceType,
    TextSourceConfig,
    WebsiteSourceConfig,
    default_namespace,
)
from agentkb.models.events import (
    JOB_STATUS_EVENT,
    SOURCE_STATUS_EVENT,
    JobUpdateEvent,
    SourceUpdateEvent,
    agent_sources_channel,
    job_channel,
)
from agentkb.models.job import (
    ACTIVE_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    IngestionResult,
    Job,
    JobPriority,
    JobProgress,
    JobStatus,
    JobType,
    QueueDepth,
    QueueMessage,
    QueueState,
)
from agentkb.models.storage import ObjectInfo, PresignedUrl, StoredObject
from agentkb.models.vector import VectorIndexStats, VectorRecord, vector_id

__all__ = [
    "ACTIVE_JOB_STATUSES",
    "DataSource",
    "FileSourceConfig",
    "IngestionResult",
    "JOB_STATUS_EVENT",
    "Job",
    "JobPriority",
    "JobProgress",
    "JobStatus",
    "JobType",
    "JobUpdateEvent",
    "ObjectInfo",
    "PresignedUrl",
    "QueueDepth",
    "QueueMessage",
    "QueueState",
    "SOURCE_STATUS_EVENT",
    "SourceConfig",
    "SourceStatus",
    "SourceType",
    "SourceUpdateEvent",
    "StoredObject",
    "TERMINAL_JOB_STATUSES",
    "TextSourceConfig",
    "VectorIndexStats",
    "VectorRecord",
    "WebsiteSourceConfig",
    "agent_sources_channel",
    "default_namespace",
    "job_channel",
    "vector_id",
]
