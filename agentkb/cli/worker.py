# =============================================================================
# agentkb/cli/worker.py - Standalone Worker Process
# =============================================================================
#
# Runs the ingestion worker pool outside the API process.  Lifecycle:
#
#   1. Build components (same wiring as the API, see agentkb/bootstrap.py)
#   2. Create tables, then check the queue answers a depth query
#   3. Start N worker slots + the housekeeping task
#   4. Wait for SIGINT / SIGTERM
#   5. Stop dequeuing, give in-flight jobs a grace period, close stores
#
# Jobs still running when the grace period ends keep their queue lease;
# once the lease expires another worker re-delivers them.
#
# Usage examples:
#   python -m agentkb.cli.worker
#   python -m agentkb.cli.worker --concurrency 5 --grace-seconds 60
#   python -m agentkb.cli.worker --housekeeping-only
# =============================================================================

"""Standalone worker process for the agentkb job queue."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from agentkb.bootstrap import build_components, close_components, initialize_components
from agentkb.config.loader import load_config
from agentkb.config.settings import Settings
from agentkb.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m agentkb.cli.worker",
        description="Run the agentkb ingestion worker pool.",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Number of concurrent worker slots (default: JOB_CONCURRENCY)",
    )
    parser.add_argument(
        "--grace-seconds",
        type=float,
        default=None,
        help="Seconds to wait for in-flight jobs on shutdown (default: WORKER_SHUTDOWN_GRACE_SECONDS)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this process",
    )
    parser.add_argument(
        "--housekeeping-only",
        action="store_true",
        help="Run one cleanup pass (old jobs, dead messages, idle channels) and exit",
    )
    return parser


def _apply_overrides(app_settings: Settings, args: argparse.Namespace) -> Settings:
    overrides: dict[str, object] = {}
    if args.concurrency is not None:
        overrides["job_concurrency"] = max(1, args.concurrency)
    if args.grace_seconds is not None:
        overrides["worker_shutdown_grace_seconds"] = max(0.0, args.grace_seconds)
    if args.log_level:
        overrides["log_level"] = args.log_level
    return app_settings.model_copy(update=overrides)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops don't support add_signal_handler; Ctrl+C
            # still raises KeyboardInterrupt there.
            pass


async def run_worker(
    app_settings: Settings,
    stop_event: asyncio.Event | None = None,
    housekeeping_only: bool = False,
) -> int:
    """Run the worker pool until ``stop_event`` is set.

    Returns a process exit code: 0 on a clean stop, 1 when the queue
    fails its startup health check.
    """
    components = build_components(app_settings, load_config(settings=app_settings))
    await initialize_components(components)

    try:
        queue = components["job_queue"]
        if not await queue.is_healthy():
            _logger.error("worker_queue_unhealthy", provider=queue.get_provider_name())
            return 1

        pool = components["worker_pool"]
        if housekeeping_only:
            counts = await pool.run_housekeeping()
            print(f"Housekeeping complete: {counts}")
            return 0

        stop_event = stop_event or asyncio.Event()
        _install_signal_handlers(stop_event)

        await pool.start()
        _logger.info(
            "worker_process_ready",
            concurrency=app_settings.job_concurrency,
            embeddings=components["embedding_client"].provider_name,
        )

        await stop_event.wait()
        _logger.info("worker_shutdown_requested")

        finished, abandoned = await pool.stop(app_settings.worker_shutdown_grace_seconds)
        _logger.info("worker_process_stopped", finished=finished, abandoned=abandoned)
        return 0
    finally:
        await close_components(components)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the worker process."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    app_settings = _apply_overrides(Settings(), args)
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    exit_code = asyncio.run(run_worker(app_settings, housekeeping_only=args.housekeeping_only))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
