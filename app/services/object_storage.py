"""Object storage for chat attachments and verification documents.

Files live in MinIO. ``ObjectStorageClient`` is the interface the API layer
depends on; ``MinIOClient`` runs the synchronous minio SDK in a thread pool.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from io import BytesIO
from urllib.parse import quote

from minio import Minio
from minio.error import S3Error

from app.core.config import settings

logger = logging.getLogger(__name__)

# Thread pool for running sync MinIO operations in async context
_executor = ThreadPoolExecutor(max_workers=10, thread_name_prefix="minio_")

_MISSING_CODES = ("NoSuchKey", "NoSuchObject")


class ObjectStorageError(Exception):
    """A storage operation failed for a reason other than a missing object."""


class ObjectStorageClient(ABC):
    """Interface for storing uploaded files."""

    @abstractmethod
    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Upload ``data`` under ``bucket/key``.

        Raises:
            ObjectStorageError: If the upload fails
        """
        ...

    @abstractmethod
    async def get_object(self, bucket: str, key: str) -> bytes | None:
        """Return the object's bytes, or None when it does not exist."""
        ...

    @abstractmethod
    async def delete_object(self, bucket: str, key: str) -> None:
        """Remove an object; missing objects are not an error."""
        ...

    @abstractmethod
    async def object_exists(self, bucket: str, key: str) -> bool:
        ...

    @abstractmethod
    async def list_objects(self, bucket: str, prefix: str = "") -> list[str]:
        """Keys under ``prefix`` (e.g. a user id for verification documents)."""
        ...

    @abstractmethod
    def public_url(self, bucket: str, key: str) -> str:
        """URL clients use to fetch the object."""
        ...


class MinIOClient(ObjectStorageClient):
    """MinIO implementation using the sync SDK behind a thread pool."""

    def __init__(
        self,
        endpoint: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        secure: bool | None = None,
    ):
        self.endpoint = endpoint or settings.minio_endpoint
        self.secure = secure if secure is not None else settings.minio_secure
        self._client = Minio(
            self.endpoint,
            access_key=access_key or settings.minio_access_key,
            secret_key=secret_key or settings.minio_secret_key,
            secure=self.secure,
        )
        self._known_buckets: set[str] = set()

    def _run_sync(self, func, *args, **kwargs):
        """Run a sync function in the thread pool."""
        loop = asyncio.get_event_loop()
        return loop.run_in_executor(_executor, partial(func, *args, **kwargs))

    async def ensure_bucket(self, bucket: str) -> None:
        """Create the bucket on first use."""
        if bucket in self._known_buckets:
            return
        try:
            exists = await self._run_sync(self._client.bucket_exists, bucket)
            if not exists:
                await self._run_sync(self._client.make_bucket, bucket)
                logger.info(f"Created bucket {bucket}")
        except S3Error as e:
            logger.error(f"Failed to prepare bucket {bucket}: {e}")
            raise ObjectStorageError(f"Failed to prepare bucket: {e}") from e
        self._known_buckets.add(bucket)

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        await self.ensure_bucket(bucket)
        try:
            await self._run_sync(
                self._client.put_object,
                bucket,
                key,
                BytesIO(data),
                len(data),
                content_type=content_type,
            )
        except S3Error as e:
            logger.error(f"Failed to upload {bucket}/{key}: {e}")
            raise ObjectStorageError(f"Failed to upload object: {e}") from e
        except Exception as e:
            logger.error(f"Unexpected error uploading {bucket}/{key}: {e}")
            raise ObjectStorageError(f"Failed to upload object: {e}") from e
        logger.debug(f"Stored {bucket}/{key} ({len(data)} bytes)")

    async def get_object(self, bucket: str, key: str) -> bytes | None:
        try:
            response = await self._run_sync(self._client.get_object, bucket, key)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return None
            logger.error(f"Failed to download {bucket}/{key}: {e}")
            raise ObjectStorageError(f"Failed to download object: {e}") from e
        except Exception as e:
            logger.error(f"Unexpected error downloading {bucket}/{key}: {e}")
            raise ObjectStorageError(f"Failed to download object: {e}") from e

        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def delete_object(self, bucket: str, key: str) -> None:
        try:
            await self._run_sync(self._client.remove_object, bucket, key)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return
            logger.error(f"Failed to delete {bucket}/{key}: {e}")
            raise ObjectStorageError(f"Failed to delete object: {e}") from e
        logger.debug(f"Deleted {bucket}/{key}")

    async def object_exists(self, bucket: str, key: str) -> bool:
        try:
            await self._run_sync(self._client.stat_object, bucket, key)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return False
            logger.error(f"Failed to stat {bucket}/{key}: {e}")
            raise ObjectStorageError(f"Failed to check object existence: {e}") from e
        return True

    async def list_objects(self, bucket: str, prefix: str = "") -> list[str]:
        def _list() -> list[str]:
            return [obj.object_name for obj in self._client.list_objects(bucket, prefix=prefix, recursive=True)]

        try:
            return await self._run_sync(_list)
        except S3Error as e:
            logger.error(f"Failed to list {bucket}/{prefix}: {e}")
            raise ObjectStorageError(f"Failed to list objects: {e}") from e

    def public_url(self, bucket: str, key: str) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.endpoint}/{bucket}/{quote(key)}"


_default_client: MinIOClient | None = None


def get_object_storage_client() -> MinIOClient:
    """Get the default object storage client (singleton)."""
    global _default_client
    if _default_client is None:
        _default_client = MinIOClient()
    return _default_client
