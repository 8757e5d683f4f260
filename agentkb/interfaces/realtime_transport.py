"""Abstract base class for the realtime publish/subscribe transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

# Subscribers receive (event_name, payload).
RealtimeCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


class IRealtimeTransport(ABC):
    """Broadcast channel keyed by name.

    Publishing never requires a subscriber; events published to a channel
    with no listeners are dropped.
    """

    @abstractmethod
    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        """Deliver *payload* under *event* to every subscriber of *channel*."""

    @abstractmethod
    def subscribe(self, channel: str, callback: RealtimeCallback) -> None:
        """Register *callback* for events on *channel*."""

    @abstractmethod
    def unsubscribe(self, channel: str, callback: RealtimeCallback) -> None:
        """Remove *callback* from *channel*; no-op when absent."""

    @abstractmethod
    def cleanup_channels(self) -> int:
        """Drop channels with no subscribers; return how many were removed."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier (e.g. ``"broadcast"``)."""
