"""structlog configuration for the API process, the worker and the CLI.

One processor chain serves two renderers: coloured console output while
developing, JSON lines in production (``APP_ENV=production`` or
``json_output=True``).  The stdlib root logger is routed through the same
chain, so uvicorn, httpx and chromadb records look like ours.

Per-job context
---------------
:func:`job_log_context` binds ``job_id``, ``data_source_id``, ``job_type``
and ``attempt`` into structlog's contextvars while one queue message is
being handled.  Every event logged inside the block (processor, crawler,
embedding client, stores) carries those keys without passing them around.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Third-party loggers that are chatty at INFO (per-request lines,
# telemetry notices); they only get through at WARNING and above.
_NOISY_LOGGERS = ("httpx", "httpcore", "chromadb", "botocore", "urllib3", "aiosqlite")


def _processor_chain() -> list[structlog.types.Processor]:
    # contextvars first so job bindings are present for every later step.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Parameters
    ----------
    log_level:
        DEBUG, INFO, WARNING, ERROR or CRITICAL.
    json_output:
        Force the JSON renderer.  Without it JSON is used only when
        ``APP_ENV`` is ``production``.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    chain = _processor_chain()

    structlog.configure(
        processors=[*chain, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *chain, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger tagged with ``logger_name``; configures defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


@contextmanager
def job_log_context(
    job_id: str,
    data_source_id: str,
    job_type: str,
    attempt: int,
    **extra: Any,
) -> Iterator[None]:
    """Bind job identifiers to every log event emitted inside the block."""
    with structlog.contextvars.bound_contextvars(
        job_id=job_id,
        data_source_id=data_source_id,
        job_type=job_type,
        attempt=attempt,
        **extra,
    ):
        yield
