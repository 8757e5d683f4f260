"""Utility modules for agentkb.

- **errors** -- Domain exception hierarchy rooted at AgentKBError; each
  class declares whether the job queue may retry it.
- **concurrency** -- asyncio semaphore throttling and shutdown helpers.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from agentkb.utils.concurrency import throttled_gather, wait_with_grace
from agentkb.utils.errors import (
    AgentKBError,
    ConfigurationError,
    ContentExtractionError,
    CrawlError,
    DataSourceNotFoundError,
    EmbeddingError,
    EmptyContentError,
    JobCancelledError,
    InvalidJobStateError,
    JobNotFoundError,
    ObjectStoreError,
    SourceBusyError,
    TransientProviderError,
    VectorStoreError,
    is_retryable,
)
from agentkb.utils.logging import configure_logging, get_logger

__all__ = [
    "AgentKBError",
    "ConfigurationError",
    "ContentExtractionError",
    "CrawlError",
    "DataSourceNotFoundError",
    "EmbeddingError",
    "EmptyContentError",
    "JobCancelledError",
    "InvalidJobStateError",
    "JobNotFoundError",
    "ObjectStoreError",
    "SourceBusyError",
    "TransientProviderError",
    "VectorStoreError",
    "configure_logging",
    "get_logger",
    "is_retryable",
    "throttled_gather",
    "wait_with_grace",
]
