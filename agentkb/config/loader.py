"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY (Junior Developer Guide) ──────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Static defaults checked into the repo
#   2. .env file           - Local developer overrides (not committed)
#   3. Environment vars    - Set at deploy time
#
# load_config() reads the YAML file first, then deep-merges values from
# Settings on top.  The result is a plain dict that /health reports back
# so operators can see which backends a process actually runs with.
# Secrets (API keys, signing keys) are reported as booleans only.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from agentkb.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built Settings; a fresh instance is read when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "embeddings": {
            "provider": "mock" if settings.uses_mock_embeddings() else "openai",
            "model": settings.openai_embedding_model,
            "dimension": settings.embedding_dimension,
        },
        "vector_index": {
            "collection": settings.chromadb_collection,
            "batch_size": settings.vector_batch_size,
        },
        "object_store": {
            "backend": settings.object_store_backend,
            "s3_configured": bool(settings.s3_bucket and settings.s3_access_key_id),
        },
        "queue": {
            "concurrency": settings.job_concurrency,
            "max_attempts": settings.job_max_attempts,
            "backoff_base_seconds": settings.job_backoff_base_seconds,
            "embedded_worker": settings.run_embedded_worker,
        },
        "chunking": {
            "size": settings.chunk_size,
            "overlap": settings.chunk_overlap,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
