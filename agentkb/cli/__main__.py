# =============================================================================
# agentkb/cli/__main__.py - Package Entry Point
# =============================================================================
#
# `python -m agentkb.cli` starts the worker pool, the most common
# long-running CLI process in a split API / worker deployment.
#
# For the enqueue tool, run it directly:
#     python -m agentkb.cli.enqueue text --agent a1 --name notes --content "..."
# =============================================================================

"""Allow ``python -m agentkb.cli`` execution."""

from agentkb.cli.worker import main

main()
