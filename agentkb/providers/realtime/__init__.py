"""Realtime transport implementations."""

from agentkb.providers.realtime.broadcast_transport import BroadcastTransport

__all__ = ["BroadcastTransport"]
