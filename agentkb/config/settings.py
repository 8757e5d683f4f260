"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK (Junior Developer Guide) ───────────────────────
#
# This class uses pydantic-settings to automatically read configuration
# from TWO sources (in priority order):
#
#   1. **Environment variables** - e.g., OPENAI_API_KEY=sk-abc123
#      (highest priority - always wins)
#   2. **.env file** - key=value lines in the project root .env file
#      (lower priority - used for local development)
#
# The mapping is automatic: field name `job_concurrency` maps to env var
# `JOB_CONCURRENCY` (pydantic-settings uppercases and matches).
#
# The ingestion services never import this module.  main.py and the CLI
# read a Settings instance once and pass plain values into constructors.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """agentkb application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    # Externally reachable base URL; local-store file URLs are built from it.
    public_base_url: str = "http://localhost:8000"

    # === Durable storage ===
    # One SQLite file holds data_sources, jobs and queue_messages.
    database_path: str = "data/agentkb.db"

    # === Embeddings ===
    # Empty key = "not configured" → main.py wires the deterministic
    # (mock) embedding provider instead of OpenAI.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = "text-embedding-ada-002"
    embedding_dimension: int = 1536
    embedding_concurrency: int = 1

    # === Vector index ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "agentkb_vectors"
    vector_batch_size: int = 100
    vector_batch_pause_seconds: float = 0.1

    # === Object store ===
    object_store_backend: str = "local"  # "local" | "s3"
    object_store_root: str = "./data/uploads"
    object_store_signing_key: str = "dev-signing-key"
    s3_bucket: str = ""
    s3_endpoint_url: str = ""  # set for R2 / MinIO
    s3_region: str = "auto"
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    presigned_url_expiry_seconds: int = 3600
    max_upload_bytes: int = 10 * 1024 * 1024

    # === Job queue / workers ===
    job_concurrency: int = 3
    job_max_attempts: int = 3
    job_backoff_base_seconds: float = 5.0
    job_cleanup_days: int = 7
    job_cleanup_interval_seconds: float = 3600.0
    queue_poll_interval_seconds: float = 1.0
    queue_lease_seconds: float = 600.0
    worker_shutdown_grace_seconds: float = 30.0
    run_embedded_worker: bool = True

    # === Chunking ===
    chunk_size: int = 1000
    chunk_overlap: int = 100

    # === Crawler ===
    crawler_timeout_seconds: float = 30.0
    crawler_user_agent: str = "Mozilla/5.0 (compatible; AgentKB-Bot/1.0)"
    crawler_max_links_per_page: int = 50

    # === Realtime ===
    realtime_publish_timeout_seconds: float = 2.0

    def uses_mock_embeddings(self) -> bool:
        """Return True when no embedding provider key is configured."""
        return not self.openai_api_key
