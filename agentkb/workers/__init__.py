"""Queue consumers: the worker pool and its housekeeping task."""

from agentkb.workers.worker_pool import WorkerPool

__all__ = ["WorkerPool"]
