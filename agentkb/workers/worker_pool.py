"""Fixed-size pool of worker slots consuming the job queue.

# ─── DESIGN ────────────────────────────────────────────────────────────
#
# WorkerPool runs ``concurrency`` slot tasks plus one housekeeping task:
#
#   slot loop:  dequeue(timeout) ──► SourceProcessor.process_source()
#                                     ├─ success            → queue.ack
#                                     ├─ JobCancelledError  → queue.ack
#                                     └─ other exception    → queue.nack(
#                                            retryable=is_retryable(exc))
#
#   While a job runs, a heartbeat task extends the message lease every
#   lease/3 seconds so a long crawl is not mistaken for a dead worker.
#
#   housekeeping (hourly): delete terminal jobs older than the retention
#   window, purge dead queue messages, drop empty realtime channels.
#
# Shutdown: stop() sets a flag so slots take no new messages, waits up to
# ``shutdown_grace_seconds`` for in-flight jobs, then cancels the rest.
# An abandoned job keeps its queue lease; when the lease expires the
# message is redelivered (at-least-once).
#
# Job-scoped log context (job_id, data_source_id, job_type, attempt) is
# bound with utils.logging.job_log_context inside each slot task.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from agentkb.interfaces.job_queue import IJobQueue
from agentkb.interfaces.job_store import IJobStore
from agentkb.interfaces.realtime_transport import IRealtimeTransport
from agentkb.models.job import QueueMessage
from agentkb.services.ingestion.source_processor import SourceProcessor
from agentkb.utils.concurrency import wait_with_grace
from agentkb.utils.errors import JobCancelledError, is_retryable
from agentkb.utils.logging import job_log_context

logger = structlog.get_logger(logger_name=__name__)


class WorkerPool:
    """Runs N concurrent consumers of the job queue.

    Parameters
    ----------
    queue:
        The job queue to consume.
    processor:
        Executes one job.
    job_store:
        Used by housekeeping to purge old terminal jobs.
    transport:
        Realtime transport whose empty channels housekeeping drops.
    concurrency:
        Number of slots (default 3).
    dequeue_timeout:
        Seconds a slot blocks on an empty queue before re-checking the
        shutdown flag.
    lease_seconds:
        Queue lease length; heartbeats fire every third of it.
    shutdown_grace_seconds:
        How long :meth:`stop` waits for in-flight jobs.
    cleanup_interval_seconds, retention_days:
        Housekeeping cadence and job retention window.
    """

    def __init__(
        self,
        queue: IJobQueue,
        processor: SourceProcessor,
        job_store: IJobStore,
        transport: IRealtimeTransport | None = None,
        concurrency: int = 3,
        dequeue_timeout: float = 1.0,
        lease_seconds: float = 600.0,
        shutdown_grace_seconds: float = 30.0,
        cleanup_interval_seconds: float = 3600.0,
        retention_days: int = 7,
    ) -> None:
        self._queue = queue
        self._processor = processor
        self._job_store = job_store
        self._transport = transport
        self._concurrency = max(1, concurrency)
        self._dequeue_timeout = dequeue_timeout
        self._heartbeat_interval = max(lease_seconds / 3, 0.1)
        self._grace = shutdown_grace_seconds
        self._cleanup_interval = cleanup_interval_seconds
        self._retention_days = retention_days

        self._stopping = asyncio.Event()
        self._slots: list[asyncio.Task[None]] = []
        self._housekeeping: asyncio.Task[None] | None = None
        self._in_flight: dict[int, str] = {}
        self._processed = 0
        self._failed = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return bool(self._slots) and not self._stopping.is_set()

    def stats(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "concurrency": self._concurrency,
            "in_flight": sorted(self._in_flight.values()),
            "processed": self._processed,
            "failed": self._failed,
        }

    async def start(self) -> None:
        """Spawn the slot tasks and the housekeeping task."""
        if self._slots:
            return
        self._stopping.clear()
        self._slots = [
            asyncio.create_task(self._slot_loop(slot), name=f"agentkb-worker-{slot}")
            for slot in range(self._concurrency)
        ]
        self._housekeeping = asyncio.create_task(
            self._housekeeping_loop(), name="agentkb-housekeeping"
        )
        logger.info("worker_pool_started", concurrency=self._concurrency)

    async def stop(self, grace_seconds: float | None = None) -> tuple[int, int]:
        """Stop taking work, wait for in-flight jobs, cancel stragglers.

        Returns
        -------
        tuple[int, int]
            ``(finished, abandoned)`` slot counts.
        """
        if not self._slots:
            return 0, 0
        self._stopping.set()
        grace = self._grace if grace_seconds is None else grace_seconds
        logger.info("worker_pool_stopping", in_flight=len(self._in_flight), grace_seconds=grace)

        if self._housekeeping is not None:
            self._housekeeping.cancel()
            await asyncio.gather(self._housekeeping, return_exceptions=True)
            self._housekeeping = None

        finished, abandoned = await wait_with_grace(self._slots, grace)
        self._slots = []
        logger.info("worker_pool_stopped", finished=finished, abandoned=abandoned)
        return finished, abandoned

    async def wait_stopped(self) -> None:
        """Block until :meth:`stop` has been requested."""
        await self._stopping.wait()

    # ------------------------------------------------------------------
    # Slot loop
    # ------------------------------------------------------------------

    async def _slot_loop(self, slot: int) -> None:
        while not self._stopping.is_set():
            try:
                message = await self._queue.dequeue(timeout=self._dequeue_timeout)
                if message is None:
                    continue
                self._in_flight[slot] = message.job_id
                try:
                    await self.handle_message(message)
                finally:
                    self._in_flight.pop(slot, None)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # Queue bookkeeping failed (e.g. database locked); the
                # message lease expires and the job is redelivered.
                logger.error("worker_slot_error", slot=slot, error=str(exc), exc_info=True)
                await asyncio.sleep(self._dequeue_timeout)

    async def handle_message(self, message: QueueMessage) -> None:
        """Process one message and settle it with the queue."""
        with job_log_context(
            message.job_id,
            message.data_source_id,
            message.type.value,
            message.attempts + 1,
        ):
            await self._settle(message)

    async def _settle(self, message: QueueMessage) -> None:
        heartbeat = asyncio.create_task(self._heartbeat(message))
        try:
            await self._processor.process_source(
                message.job_id, message.data_source_id, message.type
            )
        except JobCancelledError as exc:
            await self._queue.ack(message)
            logger.info("job_skipped", reason=str(exc))
        except Exception as exc:
            self._failed += 1
            retryable = is_retryable(exc)
            retry_at = await self._queue.nack(message, str(exc), retryable=retryable)
            logger.warning(
                "job_failed",
                error=str(exc),
                retryable=retryable,
                retry_at=retry_at.isoformat() if retry_at else None,
            )
        else:
            self._processed += 1
            await self._queue.ack(message)
            logger.info("job_succeeded")
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)

    async def _heartbeat(self, message: QueueMessage) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                alive = await self._queue.heartbeat(message)
            except Exception as exc:
                logger.warning("job_heartbeat_failed", error=str(exc))
                continue
            if not alive:
                logger.warning("job_lease_lost", job_id=message.job_id)
                return

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def _housekeeping_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._cleanup_interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.run_housekeeping()
            except Exception as exc:
                logger.error("housekeeping_failed", error=str(exc), exc_info=True)

    async def run_housekeeping(self) -> dict[str, int]:
        """Purge old terminal jobs and dead messages; drop empty channels."""
        jobs_deleted = await self._job_store.delete_terminal_older_than(self._retention_days)
        dead_purged = await self._queue.purge_dead(self._retention_days)
        channels_dropped = self._transport.cleanup_channels() if self._transport else 0
        summary = {
            "jobs_deleted": jobs_deleted,
            "dead_messages_purged": dead_purged,
            "channels_dropped": channels_dropped,
        }
        logger.info("housekeeping_complete", **summary)
        return summary
