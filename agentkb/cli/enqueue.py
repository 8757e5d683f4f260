# =============================================================================
# agentkb/cli/enqueue.py - Add Sources / Inspect Jobs From the Shell
# =============================================================================
#
# Supported subcommands:
#
#   text     - Add inline text (or the contents of a local .txt file)
#   website  - Add a website to crawl
#   file     - Upload a local file (PDF, DOCX, CSV, JSON, TXT, MD, HTML)
#   status   - Print a job's status, progress and result
#
# Every add-subcommand writes a DataSource + Job to the shared database and
# enqueues the job; a worker (embedded in the API or `agentkb.cli.worker`)
# picks it up.
#
# Usage examples:
#   python -m agentkb.cli.enqueue text --agent a1 --name "FAQ" --content "..."
#   python -m agentkb.cli.enqueue text --agent a1 --name "Notes" --from-file notes.txt
#   python -m agentkb.cli.enqueue website --agent a1 --url https://docs.example.com \
#       --subpages --max-pages 25
#   python -m agentkb.cli.enqueue file --agent a1 --path ./handbook.pdf --priority 10
#   python -m agentkb.cli.enqueue status 3f0c...
# =============================================================================

"""Shell access to SourceService: enqueue sources and read job status."""

from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any

from agentkb.bootstrap import build_components, close_components, initialize_components
from agentkb.config.loader import load_config
from agentkb.config.settings import Settings
from agentkb.models.data_source import DataSource
from agentkb.models.job import Job, JobPriority
from agentkb.services.source_service import SourceService
from agentkb.utils.errors import AgentKBError
from agentkb.utils.logging import configure_logging


def _print_created(source: DataSource, job: Job) -> None:
    print(f"Source created: {source.id} ({source.type.value}, {source.name})")
    print(f"  Namespace: {source.namespace}")
    print(f"  Job:       {job.id} (priority {job.priority}, status {job.status.value})")


def _print_job(job: Job) -> None:
    print(f"Job {job.id}")
    print(f"  Source:    {job.data_source_id}")
    print(f"  Type:      {job.type.value}")
    print(f"  Status:    {job.status.value}")
    print(f"  Attempts:  {job.attempts}/{job.max_attempts}")
    if job.progress is not None:
        print(f"  Progress:  {job.progress.step} ({job.progress.percent}%)")
    if job.error_message:
        print(f"  Error:     {job.error_message}")
    if job.result:
        print("  Result:")
        print(json.dumps(job.result, indent=2, default=str))


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_text(args: argparse.Namespace, service: SourceService) -> int:
    if args.from_file:
        content = Path(args.from_file).read_text(encoding="utf-8")
    else:
        content = args.content or ""
    source, job = await service.create_text_source(
        args.agent, args.name, content, priority=args.priority
    )
    _print_created(source, job)
    return 0


async def _handle_website(args: argparse.Namespace, service: SourceService) -> int:
    source, job = await service.create_website_source(
        args.agent,
        args.url,
        name=args.name,
        crawl_subpages=args.subpages,
        max_pages=args.max_pages,
        priority=args.priority,
    )
    _print_created(source, job)
    return 0


async def _handle_file(args: argparse.Namespace, service: SourceService) -> int:
    path = Path(args.path)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1
    content_type = args.content_type or mimetypes.guess_type(path.name)[0]
    source, job = await service.create_file_source(
        args.agent,
        path.name,
        path.read_bytes(),
        content_type,
        name=args.name,
        priority=args.priority,
    )
    _print_created(source, job)
    return 0


async def _handle_status(args: argparse.Namespace, service: SourceService) -> int:
    _print_job(await service.get_job(args.job_id))
    return 0


_HANDLERS = {
    "text": _handle_text,
    "website": _handle_website,
    "file": _handle_file,
    "status": _handle_status,
}


async def run_command(args: argparse.Namespace, app_settings: Settings) -> int:
    """Build components, dispatch one subcommand, and close the stores."""
    components: dict[str, Any] = build_components(app_settings, load_config(settings=app_settings))
    await initialize_components(components)
    try:
        return await _HANDLERS[args.command](args, components["source_service"])
    except AgentKBError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await close_components(components)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m agentkb.cli.enqueue",
        description="Add knowledge-base sources and inspect ingestion jobs.",
    )
    subparsers = parser.add_subparsers(dest="command")

    def _add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--agent", required=True, help="Agent (chatbot) ID owning the source")
        sub.add_argument(
            "--priority",
            type=int,
            default=int(JobPriority.NORMAL),
            help="Job priority; higher runs first (low=1, normal=5, high=10, urgent=20)",
        )

    text_parser = subparsers.add_parser("text", help="Add inline text")
    _add_common(text_parser)
    text_parser.add_argument("--name", required=True, help="Display name of the source")
    content_group = text_parser.add_mutually_exclusive_group(required=True)
    content_group.add_argument("--content", help="Text to ingest")
    content_group.add_argument("--from-file", help="Read the text from a local UTF-8 file")

    website_parser = subparsers.add_parser("website", help="Add a website to crawl")
    _add_common(website_parser)
    website_parser.add_argument("--url", required=True, help="Start URL")
    website_parser.add_argument("--name", default=None, help="Display name (default: URL host)")
    website_parser.add_argument(
        "--subpages", action="store_true", help="Follow same-host links from the start page"
    )
    website_parser.add_argument(
        "--max-pages", type=int, default=10, help="Maximum pages to fetch (1-100, default: 10)"
    )

    file_parser = subparsers.add_parser("file", help="Upload a local file")
    _add_common(file_parser)
    file_parser.add_argument("--path", required=True, help="Path to the file")
    file_parser.add_argument("--name", default=None, help="Display name (default: file name)")
    file_parser.add_argument(
        "--content-type", default=None, help="MIME type (default: guessed from the extension)"
    )

    status_parser = subparsers.add_parser("status", help="Show a job's status")
    status_parser.add_argument("job_id", help="Job ID")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the enqueue tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if getattr(args, "max_pages", None) is not None and not 1 <= args.max_pages <= 100:
        parser.error("--max-pages must be between 1 and 100")

    app_settings = Settings()
    configure_logging(log_level=app_settings.log_level, json_output=False)

    exit_code = asyncio.run(run_command(args, app_settings))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
