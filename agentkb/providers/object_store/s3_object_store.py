"""S3-compatible object store (AWS S3, Cloudflare R2, MinIO).

Wraps a ``boto3`` S3 client.  boto3 is synchronous, so every call runs in
a worker thread via ``asyncio.to_thread``.  Set ``endpoint_url`` for R2 or
MinIO; leave it empty for AWS.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from agentkb.interfaces.object_store import IObjectStore
from agentkb.models.storage import ObjectInfo, PresignedUrl, StoredObject
from agentkb.utils.errors import ObjectStoreError

logger = structlog.get_logger(logger_name=__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3ObjectStore(IObjectStore):
    """Object store backed by an S3-compatible bucket."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str = "",
        region: str = "auto",
        access_key_id: str = "",
        secret_access_key: str = "",
        public_base_url: str = "",
        client: Any | None = None,
    ) -> None:
        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._public_base_url = public_base_url.rstrip("/")
        if client is None:
            client_kwargs: dict[str, Any] = {"region_name": region}
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            if access_key_id:
                client_kwargs["aws_access_key_id"] = access_key_id
                client_kwargs["aws_secret_access_key"] = secret_access_key
            client = boto3.client("s3", **client_kwargs)
        self._client = client

    # ------------------------------------------------------------------
    # IObjectStore implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> bytes:
        try:
            response = await asyncio.to_thread(self._client.get_object, Bucket=self._bucket, Key=key)
            return await asyncio.to_thread(response["Body"].read)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(
                message=f"Failed to download {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(
                message=f"Failed to upload {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("s3_object_stored", bucket=self._bucket, key=key, size=len(data))
        return StoredObject(key=key, url=self._public_url(key), size=len(data), content_type=content_type)

    async def delete(self, key: str) -> bool:
        existing = await self.head(key)
        if existing is None:
            return False
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(
                message=f"Failed to delete {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return True

    async def head(self, key: str) -> ObjectInfo | None:
        try:
            response = await asyncio.to_thread(self._client.head_object, Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                return None
            raise ObjectStoreError(
                message=f"Failed to stat {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(
                message=f"Failed to stat {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        return ObjectInfo(
            key=key,
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
            last_modified=response.get("LastModified"),
            metadata=response.get("Metadata", {}),
        )

    async def presigned_upload_url(
        self, key: str, content_type: str, expires_in: int = 3600
    ) -> PresignedUrl:
        url = await self._presign(
            "put_object",
            {"Bucket": self._bucket, "Key": key, "ContentType": content_type},
            expires_in,
        )
        return PresignedUrl(url=url, key=key, method="PUT", expires_at=_expiry(expires_in))

    async def presigned_download_url(self, key: str, expires_in: int = 3600) -> PresignedUrl:
        url = await self._presign("get_object", {"Bucket": self._bucket, "Key": key}, expires_in)
        return PresignedUrl(url=url, key=key, method="GET", expires_at=_expiry(expires_in))

    def get_provider_name(self) -> str:
        return "s3"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _presign(self, operation: str, params: dict[str, Any], expires_in: int) -> str:
        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                ClientMethod=operation,
                Params=params,
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(
                message=f"Failed to presign {params.get('Key')}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _public_url(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.amazonaws.com/{key}"


def _expiry(expires_in: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=expires_in)
