"""Abstract base class for the durable work queue.

The queue decouples the HTTP layer (producers) from the worker pool
(consumers).  Delivery is at-least-once: a message stays in the queue
until it is acknowledged, and a message whose lease expires (worker
crashed mid-job) becomes deliverable again.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from agentkb.models.job import JobPriority, JobType, QueueDepth, QueueMessage


# Concrete implementation: SQLiteJobQueue (agentkb/providers/queue/).
class IJobQueue(ABC):
    """Contract for a priority-ordered, at-least-once job queue.

    Ordering: higher ``priority`` first, ties by enqueue order.  Failed
    messages are rescheduled with exponential backoff until
    ``max_attempts`` is reached, then moved to a dead state.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indexes if they do not exist."""

    @abstractmethod
    async def enqueue(
        self,
        job_id: str,
        data_source_id: str,
        job_type: JobType,
        priority: int = JobPriority.NORMAL,
        delay_seconds: float = 0.0,
        max_attempts: int | None = None,
    ) -> QueueMessage:
        """Add a message and return its handle."""

    @abstractmethod
    async def dequeue(self, timeout: float | None = None) -> QueueMessage | None:
        """Lease the best available message.

        Waits up to *timeout* seconds (forever when None) for one to become
        available; returns None on timeout.
        """

    @abstractmethod
    async def heartbeat(self, message: QueueMessage) -> bool:
        """Extend the lease of an in-flight message; False if it was lost."""

    @abstractmethod
    async def ack(self, message: QueueMessage) -> None:
        """Remove a successfully handled message."""

    @abstractmethod
    async def nack(
        self,
        message: QueueMessage,
        error: str,
        retryable: bool = True,
    ) -> datetime | None:
        """Record a failed delivery.

        Returns
        -------
        datetime | None
            When the message becomes available again, or None when it was
            moved to the dead state (not retryable or attempts exhausted).
        """

    @abstractmethod
    async def remove(self, job_id: str) -> int:
        """Drop waiting messages for *job_id* (cancellation); return the count."""

    @abstractmethod
    async def requeue_expired(self) -> int:
        """Return messages with expired leases to the waiting state."""

    @abstractmethod
    async def depth(self) -> QueueDepth:
        """Count messages per state without consuming any."""

    @abstractmethod
    async def is_healthy(self) -> bool:
        """Cheap liveness probe."""

    @abstractmethod
    async def purge_dead(self, older_than_days: int) -> int:
        """Delete dead messages older than *older_than_days*; return the count."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection and wake blocked consumers."""
