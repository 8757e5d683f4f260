"""Object store implementations.

    LocalObjectStore - files on local disk, HMAC-signed expiring URLs
                       served by the API's /files route.
    S3ObjectStore    - boto3 against S3 / R2 / MinIO.
"""

from agentkb.providers.object_store.local_object_store import LocalObjectStore
from agentkb.providers.object_store.s3_object_store import S3ObjectStore

__all__ = ["LocalObjectStore", "S3ObjectStore"]
