"""In-process broadcast transport with callback-based listener notification.

# ─── HOW REALTIME BROADCAST WORKS (Junior Developer Guide) ────────────
#
# This implements the Observer pattern keyed by channel name:
#
#   ProgressPublisher ──publish()──→ BroadcastTransport ──callback()──→ WebSocket handler
#                                                      ──callback()──→ (any other listener)
#
# Data flow:
#   1. The source processor reports progress through ProgressPublisher
#   2. ProgressPublisher publishes on ``job_{job_id}`` (and on
#      ``agent_{agent_id}_sources`` for DataSource status changes)
#   3. Every callback subscribed to that channel is invoked
#   4. The WebSocket handler (a subscriber) pushes JSON to the browser
#
# The last event per channel is kept so a client that connects mid-job
# gets an immediate snapshot instead of waiting for the next update.
#
# Listener errors are caught and logged; one broken WebSocket cannot
# block the other listeners or the publisher.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from agentkb.interfaces.realtime_transport import IRealtimeTransport, RealtimeCallback
from agentkb.utils.logging import get_logger


class BroadcastTransport(IRealtimeTransport):
    """Single-process publish/subscribe registry.

    Suitable when the API and the worker pool share a process
    (``RUN_EMBEDDED_WORKER=true``).  A standalone worker process publishes
    into its own registry, which only its in-process subscribers see.
    """

    def __init__(self, max_snapshots: int = 1000) -> None:
        self._listeners: dict[str, list[RealtimeCallback]] = {}
        self._snapshots: dict[str, tuple[str, dict[str, Any]]] = {}
        self._max_snapshots = max_snapshots
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # IRealtimeTransport implementation
    # ------------------------------------------------------------------

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        self._remember(channel, event, payload)

        listeners = list(self._listeners.get(channel, []))
        if not listeners:
            return

        for callback in listeners:
            try:
                result = callback(event, payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    channel=channel,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )

    def subscribe(self, channel: str, callback: RealtimeCallback) -> None:
        listeners = self._listeners.setdefault(channel, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                channel=channel,
                total_listeners=len(listeners),
            )

    def unsubscribe(self, channel: str, callback: RealtimeCallback) -> None:
        listeners = self._listeners.get(channel, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                channel=channel,
                remaining_listeners=len(listeners),
            )

    def cleanup_channels(self) -> int:
        empty = [name for name, listeners in self._listeners.items() if not listeners]
        for name in empty:
            del self._listeners[name]
        return len(empty)

    def get_provider_name(self) -> str:
        return "broadcast"

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def last_event(self, channel: str) -> tuple[str, dict[str, Any]] | None:
        """Return the most recent ``(event, payload)`` published on *channel*."""
        return self._snapshots.get(channel)

    def subscriber_count(self, channel: str) -> int:
        return len(self._listeners.get(channel, []))

    def _remember(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        self._snapshots.pop(channel, None)
        self._snapshots[channel] = (event, payload)
        # dicts keep insertion order; drop the oldest channel first.
        while len(self._snapshots) > self._max_snapshots:
            oldest = next(iter(self._snapshots))
            del self._snapshots[oldest]
