"""Google Cloud Storage backend (google-cloud-storage client)."""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable

from google.api_core import exceptions as gcs_exceptions

from ...observability import get_logger
from ..errors import BackendError, ConfigurationError, NotFoundError, UpdateServerError
from .base import FileInfo, StorageBackend, directory_prefix, guess_mime_type, normalize_key

logger = get_logger(__name__)


class GCSStorage(StorageBackend):
    """Objects live in one GCS bucket; directories are ``/``-delimited prefixes.

    The client library is blocking, so calls run in the default executor.
    """

    def __init__(self, bucket: str, project: str = "", client: Any = None):
        if not bucket:
            raise ConfigurationError("bucket is required")
        if client is None:
            try:
                from google.cloud import storage
            except ImportError as e:
                raise ConfigurationError(
                    "google-cloud-storage is required for GCS storage"
                ) from e
            client = storage.Client(project=project or None)
        self.client = client
        self.bucket = client.bucket(bucket)
        logger.info("gcs_storage_initialized", bucket=bucket)

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        except UpdateServerError:
            raise
        except gcs_exceptions.NotFound as err:
            raise NotFoundError(f"{operation}: object not found: {err}") from err
        except Exception as err:
            logger.error("gcs_error", operation=operation, error=str(err))
            raise BackendError(f"{operation} failed: {err}") from err

    def _has_any(self, prefix: str) -> bool:
        blobs = self.client.list_blobs(self.bucket, prefix=prefix, max_results=1)
        return any(True for _ in blobs)

    def _list(self, prefix: str) -> tuple[list[Any], list[str]]:
        iterator = self.client.list_blobs(self.bucket, prefix=prefix, delimiter="/")
        blobs = list(iterator)
        # ``prefixes`` is only populated once the pages have been consumed.
        return blobs, sorted(iterator.prefixes)

    def _download(self, key: str) -> bytes:
        return self.bucket.blob(key).download_as_bytes()

    def _upload(self, key: str, data: bytes) -> None:
        blob = self.bucket.blob(key)
        blob.upload_from_string(data, content_type=guess_mime_type(key))

    def _copy(self, source_key: str, destination_key: str) -> None:
        source = self.bucket.blob(source_key)
        self.bucket.copy_blob(source, self.bucket, destination_key)

    async def exists(self, path: str) -> bool:
        return await self._call("exists", self._has_any, directory_prefix(path))

    async def upload(self, path: str, data: bytes) -> str:
        await self._call("upload", self._upload, normalize_key(path), data)
        logger.info("object_uploaded", path=path, size=len(data))
        return path

    async def download(self, path: str) -> bytes:
        return await self._call("download", self._download, normalize_key(path))

    async def list_files(self, directory: str) -> list[FileInfo]:
        prefix = directory_prefix(directory)
        blobs, _ = await self._call("list_files", self._list, prefix)
        files = []
        for blob in blobs:
            if blob.name == prefix:
                continue
            name = blob.name[len(prefix):]
            files.append(
                FileInfo(
                    name=name,
                    size=int(blob.size or 0),
                    created_at=blob.time_created,
                    updated_at=blob.updated,
                    mime_type=blob.content_type or guess_mime_type(name),
                )
            )
        return files

    async def list_directories(self, directory: str) -> list[str]:
        prefix = directory_prefix(directory)
        _, prefixes = await self._call("list_directories", self._list, prefix)
        return [p[len(prefix):].rstrip("/") for p in prefixes]

    async def copy(self, source_path: str, destination_path: str) -> None:
        await self._call(
            "copy", self._copy, normalize_key(source_path), normalize_key(destination_path),
        )
        logger.info("object_copied", source=source_path, destination=destination_path)
