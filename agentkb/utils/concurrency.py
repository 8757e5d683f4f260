"""Shared concurrency primitives for the ingestion pipeline.

Two helpers are exposed:

1. **throttled_gather** -- A drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  The embedding
   client uses it to run per-chunk embedding calls with bounded
   concurrency while keeping results in input order.  The first failure
   cancels the rest.

2. **wait_with_grace** -- Waits for a set of tasks up to a deadline and
   cancels whatever is still running.  The worker pool uses it during
   graceful shutdown.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Iterable, TypeVar

import structlog

from agentkb.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    limit: int = 1,
    return_exceptions: bool = False,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with at most *limit* in flight.

    Unlike a bare ``asyncio.gather``, the first exception cancels every
    awaitable still pending (queued or running) and waits for them to
    unwind before it is re-raised, so nothing keeps running on behalf of
    a caller that has already given up.

    Parameters
    ----------
    coros:
        Awaitable objects to execute.
    limit:
        Maximum number of awaitables executing at once.  ``1`` gives
        strictly sequential execution in input order.
    return_exceptions:
        Mirrors ``asyncio.gather`` semantics; nothing is cancelled.

    Returns
    -------
    list
        Results in the same order as the input awaitables.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [asyncio.ensure_future(_wrapped(c)) for c in coros]
    if not tasks:
        return []
    if return_exceptions:
        return await asyncio.gather(*tasks, return_exceptions=True)

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _cancel_and_drain(tasks, coros)
        raise

    if pending:
        await _cancel_and_drain(pending, coros)
    for task in tasks:
        if task in done and not task.cancelled() and task.exception() is not None:
            raise task.exception()
    return [task.result() for task in tasks]


async def _cancel_and_drain(tasks: Iterable[asyncio.Future], coros: list[Awaitable]) -> None:
    tasks = list(tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    # Tasks cancelled before their first step never awaited their inner
    # coroutine; closing it avoids a "never awaited" warning.
    for coro in coros:
        if asyncio.iscoroutine(coro):
            coro.close()


async def wait_with_grace(
    tasks: Iterable[asyncio.Task],
    grace_seconds: float,
) -> tuple[int, int]:
    """Wait up to *grace_seconds* for *tasks*, then cancel the stragglers.

    Returns
    -------
    tuple[int, int]
        ``(finished, abandoned)`` task counts.
    """
    pending_tasks = [t for t in tasks if not t.done()]
    if not pending_tasks:
        return 0, 0

    done, still_running = await asyncio.wait(pending_tasks, timeout=grace_seconds)
    for task in still_running:
        task.cancel()
    if still_running:
        # Let cancellation propagate so finally-blocks in the tasks run.
        await asyncio.gather(*still_running, return_exceptions=True)
        _logger.warning("tasks_abandoned_after_grace", abandoned=len(still_running))
    return len(done), len(still_running)
