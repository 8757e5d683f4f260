"""Local-disk object store for development and single-node deployments.

Blobs live under ``root_dir/<key>`` with a ``<key>.meta.json`` sidecar
holding the content type and user metadata.  "Presigned" URLs point at the
API's own ``/api/v1/files/{key}`` route and carry an HMAC-SHA256 signature
over ``method:key:expires`` which the route verifies with
:meth:`verify_signature`.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote, urlencode

import structlog

from agentkb.interfaces.object_store import IObjectStore
from agentkb.models.storage import ObjectInfo, PresignedUrl, StoredObject
from agentkb.utils.errors import ObjectStoreError

logger = structlog.get_logger(logger_name=__name__)

_META_SUFFIX = ".meta.json"


class LocalObjectStore(IObjectStore):
    """Object store backed by a directory on the local filesystem."""

    def __init__(
        self,
        root_dir: str,
        signing_key: str,
        public_base_url: str = "http://localhost:8000/api/v1/files",
    ) -> None:
        self._root = Path(root_dir).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._signing_key = signing_key.encode("utf-8")
        self._public_base_url = public_base_url.rstrip("/")

    # ------------------------------------------------------------------
    # IObjectStore implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise ObjectStoreError(
                message=f"Object not found: {key}",
                provider_name=self.get_provider_name(),
            ) from exc
        except OSError as exc:
            raise ObjectStoreError(
                message=f"Failed to read {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        path = self._path_for(key)
        sidecar = {"content_type": content_type, "metadata": metadata or {}}
        try:
            await asyncio.to_thread(self._write, path, data, sidecar)
        except OSError as exc:
            raise ObjectStoreError(
                message=f"Failed to write {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("local_object_stored", key=key, size=len(data))
        return StoredObject(
            key=key,
            url=f"{self._public_base_url}/{quote(key)}",
            size=len(data),
            content_type=content_type,
        )

    async def delete(self, key: str) -> bool:
        path = self._path_for(key)
        meta_path = path.with_name(path.name + _META_SUFFIX)
        existed = path.exists()
        path.unlink(missing_ok=True)
        meta_path.unlink(missing_ok=True)
        return existed

    async def head(self, key: str) -> ObjectInfo | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        stat = path.stat()
        sidecar = self._read_sidecar(path)
        return ObjectInfo(
            key=key,
            size=stat.st_size,
            content_type=sidecar.get("content_type"),
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            metadata=sidecar.get("metadata", {}),
        )

    async def presigned_upload_url(
        self, key: str, content_type: str, expires_in: int = 3600
    ) -> PresignedUrl:
        self._path_for(key)
        return self._sign(key, "PUT", expires_in)

    async def presigned_download_url(self, key: str, expires_in: int = 3600) -> PresignedUrl:
        self._path_for(key)
        return self._sign(key, "GET", expires_in)

    def get_provider_name(self) -> str:
        return "local"

    def key_from_url(self, url: str) -> str:  # type: ignore[override]
        """Strip this store's route prefix (``/api/v1/files/``) from the URL path."""
        key = IObjectStore.key_from_url(url)
        prefix = IObjectStore.key_from_url(self._public_base_url)
        if prefix and key.startswith(prefix + "/"):
            return key[len(prefix) + 1 :]
        return key

    # ------------------------------------------------------------------
    # Signature verification (used by the /files route)
    # ------------------------------------------------------------------

    def verify_signature(self, key: str, method: str, expires: int, signature: str) -> bool:
        """Return True if *signature* is valid for (method, key) and not expired."""
        if expires < int(time.time()):
            return False
        expected = self._signature(method.upper(), key, expires)
        return hmac.compare_digest(expected, signature)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _path_for(self, key: str) -> Path:
        if not key or key.startswith("/"):
            raise ObjectStoreError(message=f"Invalid key: {key!r}", provider_name="local")
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise ObjectStoreError(message=f"Key escapes store root: {key!r}", provider_name="local")
        return path

    def _sign(self, key: str, method: str, expires_in: int) -> PresignedUrl:
        expires = int(time.time()) + expires_in
        query = urlencode(
            {"method": method, "expires": expires, "signature": self._signature(method, key, expires)}
        )
        return PresignedUrl(
            url=f"{self._public_base_url}/{quote(key)}?{query}",
            key=key,
            method=method,
            expires_at=datetime.fromtimestamp(expires, tz=timezone.utc),
        )

    def _signature(self, method: str, key: str, expires: int) -> str:
        message = f"{method}:{key}:{expires}".encode("utf-8")
        return hmac.new(self._signing_key, message, hashlib.sha256).hexdigest()

    @staticmethod
    def _write(path: Path, data: bytes, sidecar: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        path.with_name(path.name + _META_SUFFIX).write_text(json.dumps(sidecar), encoding="utf-8")

    @staticmethod
    def _read_sidecar(path: Path) -> dict:
        meta_path = path.with_name(path.name + _META_SUFFIX)
        if not meta_path.exists():
            return {}
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("local_object_sidecar_unreadable", path=str(meta_path))
            return {}
