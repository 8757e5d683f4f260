# =============================================================================
# agentkb/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Command-line tools for operating agentkb outside the HTTP API.  Each
# submodule is a self-contained CLI that can be run directly via
# `python -m agentkb.cli.<module>`.
#
#   1. WORKER  (worker.py)
#      Runs the worker pool as its own process against the shared SQLite
#      database.  Use it with RUN_EMBEDDED_WORKER=false on the API so the
#      API process only enqueues.
#
#   2. ENQUEUE (enqueue.py)
#      Creates text / file / website sources and enqueues their jobs from
#      the shell, and prints job status.
#
# Architecture Notes:
#   - argparse only.
#   - Both tools build their components through agentkb.bootstrap, the
#     same wiring the API uses, so queue and store settings always match.
# =============================================================================

"""CLI tools for agentkb.

- ``python -m agentkb.cli.worker`` - run the ingestion worker pool.
- ``python -m agentkb.cli.enqueue`` - add sources and inspect jobs.
"""
