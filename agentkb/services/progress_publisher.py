"""Single emission point for job and source status events.

# ─── HOW EVENTS FLOW (Junior Developer Guide) ──────────────────────────
#
#   SourceProcessor / SourceService
#        │ publish_job(...) / publish_source(...)
#        ▼
#   ProgressPublisher ──wait_for(timeout)──► IRealtimeTransport.publish()
#                                                 │
#                                                 ▼
#                                   WebSocket handlers (listeners)
#
#   Channels:  job_{job_id}              event "job_status_update"
#              agent_{agent_id}_sources  event "source_status_update"
#
# Publishing is fire-and-forget: a slow or broken transport is cut off
# after ``timeout_seconds`` and logged.  No publish failure ever reaches
# the pipeline; the job store remains the durable record.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from agentkb.interfaces.realtime_transport import IRealtimeTransport
from agentkb.models.data_source import DataSource
from agentkb.models.events import (
    JOB_STATUS_EVENT,
    SOURCE_STATUS_EVENT,
    JobUpdateEvent,
    SourceUpdateEvent,
    agent_sources_channel,
    job_channel,
)
from agentkb.models.job import Job, JobProgress, JobStatus
from agentkb.utils.logging import get_logger


class ProgressPublisher:
    """Publishes job/source events with a bounded wait; never raises.

    Parameters
    ----------
    transport:
        Realtime broadcast backend.  ``None`` disables publishing.
    timeout_seconds:
        Upper bound on a single publish call.
    """

    def __init__(
        self,
        transport: IRealtimeTransport | None,
        timeout_seconds: float = 2.0,
    ) -> None:
        self._transport = transport
        self._timeout = timeout_seconds
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def publish_job(
        self,
        job_id: str,
        status: JobStatus,
        progress: JobProgress | None = None,
        error_message: str | None = None,
        result: dict[str, Any] | None = None,
    ) -> bool:
        """Publish a :class:`JobUpdateEvent` on ``job_{job_id}``."""
        event = JobUpdateEvent(
            job_id=job_id,
            status=status,
            progress=progress,
            error_message=error_message,
            result=result,
        )
        return await self._publish(job_channel(job_id), JOB_STATUS_EVENT, event.model_dump(mode="json"))

    async def publish_job_snapshot(self, job: Job) -> bool:
        """Publish the current state of *job* as stored."""
        return await self.publish_job(
            job.id,
            job.status,
            progress=job.progress,
            error_message=job.error_message,
            result=job.result,
        )

    async def publish_source(self, source: DataSource) -> bool:
        """Publish a :class:`SourceUpdateEvent` on ``agent_{agent_id}_sources``."""
        event = SourceUpdateEvent(
            source_id=source.id,
            agent_id=source.agent_id,
            status=source.status,
            char_count=source.char_count,
            chunk_count=source.chunk_count,
            error_message=source.error_message,
        )
        return await self._publish(
            agent_sources_channel(source.agent_id),
            SOURCE_STATUS_EVENT,
            event.model_dump(mode="json"),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _publish(self, channel: str, event: str, payload: dict[str, Any]) -> bool:
        if self._transport is None:
            return False
        try:
            await asyncio.wait_for(
                self._transport.publish(channel, event, payload),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._logger.warning(
                "realtime_publish_timeout",
                channel=channel,
                event_name=event,
                timeout_seconds=self._timeout,
            )
            return False
        except Exception as exc:
            self._logger.warning(
                "realtime_publish_failed",
                channel=channel,
                event_name=event,
                error=str(exc),
            )
            return False
        return True
