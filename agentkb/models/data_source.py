"""DataSource models: the content origins an agent's knowledge base is built from.

A DataSource is one of three variants, each carrying its own typed config:

    text     → TextSourceConfig     (inline content)
    file     → FileSourceConfig     (object-store blob + declared MIME type)
    website  → WebsiteSourceConfig  (crawl start URL + bounds)

The config union is discriminated on ``kind`` so a stored JSON payload
round-trips to the right class, and the source processor can ``match`` on
the config type exhaustively.

All models are frozen.  Stores return new instances after every write.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SourceType(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """The three kinds of content origin."""

    TEXT = "text"
    FILE = "file"
    WEBSITE = "website"


class SourceStatus(str, Enum):  # noqa: UP042
    """DataSource lifecycle: PENDING → PROCESSING → {COMPLETED, FAILED}.

    A FAILED source only returns to PENDING through an explicit reprocess.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Typed source configs (discriminated on ``kind``)
# ---------------------------------------------------------------------------
class TextSourceConfig(BaseModel):
    """Inline text pasted by the user."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    content: str


class FileSourceConfig(BaseModel):
    """An uploaded file living in the object store.

    Either ``storage_key`` or ``url`` must be set; when only the URL is
    known the key is parsed from its path at processing time.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["file"] = "file"
    url: str | None = None
    storage_key: str | None = None
    mime_type: str = "text/plain"
    original_name: str = ""
    size_bytes: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _require_location(self) -> FileSourceConfig:
        if not self.storage_key and not self.url:
            raise ValueError("file source needs a storage_key or a url")
        return self


class WebsiteSourceConfig(BaseModel):
    """A website to crawl breadth-first from ``url``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["website"] = "website"
    url: str
    crawl_subpages: bool = False
    max_pages: int = Field(default=10, ge=1)


SourceConfig = Annotated[
    Union[TextSourceConfig, FileSourceConfig, WebsiteSourceConfig],
    Field(discriminator="kind"),
]

_CONFIG_KIND: dict[SourceType, str] = {
    SourceType.TEXT: "text",
    SourceType.FILE: "file",
    SourceType.WEBSITE: "website",
}


def default_namespace(agent_id: str) -> str:
    """Vector namespace used for an agent when none is given."""
    return f"agent_{agent_id}"


# ---------------------------------------------------------------------------
# DataSource
# ---------------------------------------------------------------------------
class DataSource(BaseModel):
    """One content origin owned by one agent.

    ``char_count`` and ``chunk_count`` are only written when processing
    completes.  ``active_job_id`` is the per-source lease: while it is set,
    only that job may move the source to a terminal status.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    agent_id: str
    type: SourceType
    name: str
    config: SourceConfig
    status: SourceStatus = SourceStatus.PENDING
    error_message: str | None = None
    char_count: int | None = Field(default=None, ge=0)
    chunk_count: int | None = Field(default=None, ge=0)
    active_job_id: str | None = None
    namespace: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    processed_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_namespace(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("namespace") and data.get("agent_id"):
            data = {**data, "namespace": default_namespace(str(data["agent_id"]))}
        return data

    @model_validator(mode="after")
    def _config_matches_type(self) -> DataSource:
        if self.config.kind != _CONFIG_KIND[self.type]:
            raise ValueError(
                f"config kind '{self.config.kind}' does not match source type '{self.type.value}'"
            )
        return self

    @property
    def storage_key(self) -> str | None:
        """Object-store key of the uploaded file, for file sources only."""
        if isinstance(self.config, FileSourceConfig):
            return self.config.storage_key
        return None
