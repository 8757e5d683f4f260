"""Object-store result models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class StoredObject(BaseModel):
    """A blob written to the object store."""

    model_config = ConfigDict(frozen=True)

    key: str
    url: str
    size: int
    content_type: str


class ObjectInfo(BaseModel):
    """Result of a metadata-only lookup (``head``)."""

    model_config = ConfigDict(frozen=True)

    key: str
    size: int
    content_type: str | None = None
    last_modified: datetime | None = None
    metadata: dict[str, str] = {}


class PresignedUrl(BaseModel):
    """A time-limited URL for uploading or downloading one key."""

    model_config = ConfigDict(frozen=True)

    url: str
    key: str
    method: str
    expires_at: datetime
