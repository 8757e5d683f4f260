"""Abstract base class for blob/object storage providers.

Files uploaded for ingestion are written here by the HTTP layer and read
back by the source processor.  Implementations: a local directory store
for development and an S3-compatible store (AWS S3, Cloudflare R2, MinIO).
"""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from urllib.parse import unquote, urlparse

from agentkb.models.storage import ObjectInfo, PresignedUrl, StoredObject

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class IObjectStore(ABC):
    """Contract for object storage.

    ``generate_key`` and ``key_from_url`` are concrete: every backend
    shares the same key layout ``{folder}/{owner}/{ms-timestamp}-{name}``.
    """

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the bytes stored under *key*.

        Raises
        ------
        agentkb.utils.errors.ObjectStoreError
            If the key does not exist or the backend is unreachable.
        """

    @abstractmethod
    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        """Write *data* under *key* and return its location."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete *key*; return False when it did not exist."""

    @abstractmethod
    async def head(self, key: str) -> ObjectInfo | None:
        """Return size/content-type for *key*, or None if missing."""

    @abstractmethod
    async def presigned_upload_url(
        self, key: str, content_type: str, expires_in: int = 3600
    ) -> PresignedUrl:
        """Issue a time-limited URL the client can PUT *key* to."""

    @abstractmethod
    async def presigned_download_url(self, key: str, expires_in: int = 3600) -> PresignedUrl:
        """Issue a time-limited URL the client can GET *key* from."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier (e.g. ``"local"``, ``"s3"``)."""

    # -- Shared key helpers ---------------------------------------------------

    @staticmethod
    def generate_key(owner_id: str, original_name: str, folder: str = "uploads") -> str:
        """Build a collision-resistant key for a new upload."""
        timestamp = int(time.time() * 1000)
        safe_name = _UNSAFE_NAME_CHARS.sub("_", original_name) or "file"
        return f"{folder}/{owner_id}/{timestamp}-{safe_name}"

    @staticmethod
    def key_from_url(url: str) -> str:
        """Recover the object key from a public or presigned URL."""
        path = unquote(urlparse(url).path)
        return path.lstrip("/")
