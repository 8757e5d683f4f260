"""WebSocket endpoints streaming job and source status events.

# ─── HOW WEBSOCKET UPDATES WORK (Junior Developer Guide) ──────────────
#
#   Client                                Backend (this file)
#   ──────                                ──────────────────
#   ws = new WebSocket(url)   ──────→    websocket.accept()
#                                         transport.subscribe(channel, cb)
#                             ←──────    initial snapshot (from the stores)
#                                         ...worker runs the job...
#                             ←──────    {"event": ..., "channel": ..., "data": {...}}
#   ws.close()                ──────→    WebSocketDisconnect
#                                         transport.unsubscribe(channel, cb)
#
# Channels:
#   /ws/jobs/{job_id}                → job_{job_id}             (job_status_update)
#   /ws/agents/{agent_id}/sources    → agent_{agent_id}_sources (source_status_update)
#
# The ``while True: await websocket.receive_text()`` loop only keeps the
# connection open; pushes happen in the subscribed callback.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import contextlib
from typing import Any

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from agentkb.api.schemas import DataSourceResponse
from agentkb.interfaces.realtime_transport import IRealtimeTransport
from agentkb.models.events import (
    JOB_STATUS_EVENT,
    JobUpdateEvent,
    agent_sources_channel,
    job_channel,
)
from agentkb.services.source_service import SourceService
from agentkb.utils.errors import JobNotFoundError
from agentkb.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

SOURCES_SNAPSHOT_EVENT = "sources_snapshot"


async def websocket_job_updates(websocket: WebSocket, job_id: str) -> None:
    """Stream ``job_status_update`` events for one job."""
    service: SourceService = websocket.app.state.source_service

    snapshot: dict[str, Any] | None = None
    try:
        job = await service.get_job(job_id)
    except JobNotFoundError:
        job = None
    if job is not None:
        snapshot = JobUpdateEvent(
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            error_message=job.error_message,
            result=job.result,
        ).model_dump(mode="json")

    await _stream(websocket, job_channel(job_id), JOB_STATUS_EVENT, snapshot)


async def websocket_source_updates(websocket: WebSocket, agent_id: str) -> None:
    """Stream ``source_status_update`` events for all of an agent's sources."""
    service: SourceService = websocket.app.state.source_service
    sources = await service.list_sources(agent_id)
    snapshot = {
        "agent_id": agent_id,
        "sources": [DataSourceResponse.from_domain(s).model_dump(mode="json") for s in sources],
    }
    await _stream(websocket, agent_sources_channel(agent_id), SOURCES_SNAPSHOT_EVENT, snapshot)


async def _stream(
    websocket: WebSocket,
    channel: str,
    snapshot_event: str,
    snapshot: dict[str, Any] | None,
) -> None:
    transport: IRealtimeTransport = websocket.app.state.realtime_transport

    await websocket.accept()
    _logger.info("websocket_connected", channel=channel)

    async def _on_event(event: str, payload: dict[str, Any]) -> None:
        # The socket may close between publish and send; the finally
        # block below unsubscribes.
        with contextlib.suppress(Exception):
            await websocket.send_json({"event": event, "channel": channel, "data": payload})

    transport.subscribe(channel, _on_event)

    try:
        if snapshot is not None:
            await websocket.send_json({"event": snapshot_event, "channel": channel, "data": snapshot})

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", channel=channel)

    finally:
        transport.unsubscribe(channel, _on_event)
        _logger.debug("websocket_listener_cleaned_up", channel=channel)
