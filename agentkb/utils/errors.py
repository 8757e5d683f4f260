"""Custom exception hierarchy for agentkb.

All application exceptions inherit from :class:`AgentKBError`, which
carries an optional ``provider_name`` so error handlers can identify which
external collaborator (e.g. "openai", "chromadb", "s3") caused the failure.

The hierarchy is organized by the ingestion error taxonomy:

    AgentKBError  (base -- catch-all for any agentkb error)
    +-- TransientProviderError   (network / timeout -- retried by the queue)
    |   +-- EmbeddingError       (embedding provider call failed)
    |   +-- VectorStoreError     (vector index call failed)
    |   +-- ObjectStoreError     (blob download / upload failed)
    |   +-- CrawlError           (website fetch failed)
    |   +-- SourceBusyError      (another job holds the DataSource lease)
    +-- ContentExtractionError   (corrupt / unsupported file -- not retried)
    +-- EmptyContentError        (nothing to index -- not retried)
    +-- DataSourceNotFoundError  (DataSource row missing -- not retried)
    +-- JobNotFoundError         (Job row missing -- not retried)
    +-- JobCancelledError        (job was cancelled externally)
    +-- InvalidJobStateError     (cancel/retry on a job in the wrong status)
    +-- ConfigurationError       (startup / missing config)

Each class declares a ``retryable`` flag.  The worker pool consults it via
:func:`is_retryable` when handing a failed message back to the queue;
anything that is not an :class:`AgentKBError` is treated as retryable.
"""


class AgentKBError(Exception):
    """Base exception for all agentkb errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    retryable: bool = True

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Transient errors -- the queue retries these with exponential backoff
# ---------------------------------------------------------------------------

class TransientProviderError(AgentKBError):
    """Raised when an external provider is unreachable or times out."""

    retryable = True

    def __init__(
        self,
        message: str = "External provider is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(TransientProviderError):
    """Raised when the embedding provider call fails."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorStoreError(TransientProviderError):
    """Raised when an upsert, delete, or stats call against the vector index fails."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ObjectStoreError(TransientProviderError):
    """Raised when a blob cannot be read from or written to the object store."""

    def __init__(
        self,
        message: str = "Object store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CrawlError(TransientProviderError):
    """Raised when a single page fetch fails during a website crawl.

    The crawler logs and skips these per page; they only escape the
    crawler if raised outside the per-page loop.
    """

    def __init__(
        self,
        message: str = "Page fetch failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SourceBusyError(TransientProviderError):
    """Raised when another job currently holds the DataSource lease."""

    def __init__(
        self,
        message: str = "Data source is already being processed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Content errors -- retrying cannot help
# ---------------------------------------------------------------------------

class ContentExtractionError(AgentKBError):
    """Raised when a payload cannot be converted to text (corrupt PDF, bad CSV...)."""

    retryable = False

    def __init__(
        self,
        message: str = "Content extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyContentError(AgentKBError):
    """Raised when a source yields no indexable text (e.g. an empty crawl)."""

    retryable = False

    def __init__(
        self,
        message: str = "No content to index",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Not-found / cancellation
# ---------------------------------------------------------------------------

class DataSourceNotFoundError(AgentKBError):
    """Raised when the DataSource row referenced by a job does not exist."""

    retryable = False

    def __init__(
        self,
        message: str = "Data source not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobNotFoundError(AgentKBError):
    """Raised when a Job row does not exist."""

    retryable = False

    def __init__(
        self,
        message: str = "Job not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobCancelledError(AgentKBError):
    """Raised when a dequeued job turns out to be cancelled (or otherwise terminal)."""

    retryable = False

    def __init__(
        self,
        message: str = "Job was cancelled",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidJobStateError(AgentKBError):
    """Raised when a job operation does not apply to the job's current status.

    Examples: cancelling a completed job, retrying a job that has not failed.
    """

    retryable = False

    def __init__(
        self,
        message: str = "Operation not allowed in the job's current status",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

class ConfigurationError(AgentKBError):
    """Raised when configuration is invalid or missing at startup."""

    retryable = False

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


def is_retryable(exc: BaseException) -> bool:
    """Return whether the queue should redeliver a job that raised *exc*."""
    if isinstance(exc, AgentKBError):
        return exc.retryable
    return True
