"""agentkb FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and (unless ``RUN_EMBEDDED_WORKER=false``) runs the
worker pool inside the API process.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from agentkb.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from agentkb.api.routes import router as api_router
from agentkb.api.websocket import websocket_job_updates, websocket_source_updates
from agentkb.bootstrap import build_components, close_components, initialize_components
from agentkb.config.loader import load_config
from agentkb.config.settings import Settings
from agentkb.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise stores and the embedded worker on startup, stop them on shutdown."""
    override: Settings | None = getattr(application.state, "settings_override", None)
    app_settings = override or settings
    app_config = load_config(settings=override) if override is not None else config
    components = build_components(app_settings, app_config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await initialize_components(components)

    worker_pool = components["worker_pool"]
    if app_settings.run_embedded_worker:
        await worker_pool.start()

    _logger.info(
        "app_startup",
        version=str(app_config.get("app", {}).get("version", "0.1.0")),
        environment=app_settings.app_env,
        embeddings=components["embedding_client"].provider_name,
        vector_index=components["vector_store"].provider_name,
        object_store=components["object_store"].get_provider_name(),
        embedded_worker=app_settings.run_embedded_worker,
    )

    yield

    if worker_pool.is_running:
        finished, abandoned = await worker_pool.stop()
        _logger.info("worker_pool_drained", finished=finished, abandoned=abandoned)
    await close_components(components)
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    ``app_settings`` replaces the module-level settings for this app only;
    tests pass one pointing at a temporary database.
    """
    application = FastAPI(
        title="agentkb API",
        version="0.1.0",
        description=(
            "Add text, files and websites to a chatbot agent's knowledge base. "
            "Sources are extracted, chunked and embedded by a background worker "
            "pool and stored in a per-agent vector namespace."
        ),
        lifespan=_lifespan,
    )
    application.state.settings_override = app_settings

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    # -- WebSockets --
    @application.websocket("/ws/jobs/{job_id}")
    async def ws_job(websocket: WebSocket, job_id: str) -> None:
        await websocket_job_updates(websocket, job_id)

    @application.websocket("/ws/agents/{agent_id}/sources")
    async def ws_agent_sources(websocket: WebSocket, agent_id: str) -> None:
        await websocket_source_updates(websocket, agent_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# Direct execution
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "agentkb.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
