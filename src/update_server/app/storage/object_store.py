"""fsspec-backed object stores (S3 through s3fs).

fsspec filesystems expose buckets as the first path segment and report
listings as dicts with ``name``/``size``/``type``. Names may or may not
carry a leading ``/`` depending on the filesystem, so every comparison
strips surrounding slashes first.
"""

from __future__ import annotations

import asyncio
import functools
import posixpath
from typing import Any, Callable

from ...observability import get_logger
from ..errors import BackendError, ConfigurationError, NotFoundError, UpdateServerError
from ..models import parse_timestamp
from .base import FileInfo, StorageBackend, guess_mime_type, normalize_key

logger = get_logger(__name__)


def _bare(name: str) -> str:
    return name.strip("/")


def _entry_time(entry: dict[str, Any], *fields: str):
    for name in fields:
        value = entry.get(name)
        if value not in (None, ""):
            return parse_timestamp(value)
    return None


class FsspecStorage(StorageBackend):
    """Storage backend over any fsspec ``AbstractFileSystem``."""

    def __init__(self, bucket: str, fs: Any) -> None:
        if not bucket:
            raise ConfigurationError("bucket is required")
        self.bucket = bucket.strip("/")
        self.fs = fs

    def _key(self, path: str) -> str:
        key = normalize_key(path)
        return f"{self.bucket}/{key}" if key else self.bucket

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        except UpdateServerError:
            raise
        except FileNotFoundError as err:
            raise NotFoundError(f"{operation}: object not found: {err}") from err
        except Exception as err:
            logger.error("object_store_error", operation=operation, error=str(err))
            raise BackendError(f"{operation} failed: {err}") from err

    def _ls(self, path: str) -> list[dict[str, Any]]:
        try:
            return self.fs.ls(self._key(path), detail=True, refresh=True)
        except FileNotFoundError:
            return []

    async def exists(self, path: str) -> bool:
        prefix = _bare(self._key(path)) + "/"
        entries = await self._call("exists", self._ls, path)
        exists = any(_bare(entry["name"]).startswith(prefix) for entry in entries)
        logger.debug("exists_checked", path=path, exists=exists)
        return exists

    async def upload(self, path: str, data: bytes) -> str:
        await self._call("upload", self.fs.pipe_file, self._key(path), data)
        logger.info("object_uploaded", path=path, size=len(data))
        return path

    async def download(self, path: str) -> bytes:
        data = await self._call("download", self.fs.cat_file, self._key(path))
        logger.debug("object_downloaded", path=path, size=len(data))
        return data

    async def list_files(self, directory: str) -> list[FileInfo]:
        marker = _bare(self._key(directory))
        entries = await self._call("list_files", self._ls, directory)
        files = []
        for entry in entries:
            name = _bare(entry["name"])
            if entry.get("type") != "file" or name == marker:
                continue
            base = posixpath.basename(name)
            files.append(
                FileInfo(
                    name=base,
                    size=int(entry.get("size") or 0),
                    created_at=_entry_time(entry, "created", "LastModified", "mtime"),
                    updated_at=_entry_time(entry, "LastModified", "mtime", "created"),
                    mime_type=entry.get("ContentType") or guess_mime_type(base),
                )
            )
        files.sort(key=lambda f: f.name)
        logger.debug("files_listed", directory=directory, count=len(files))
        return files

    async def list_directories(self, directory: str) -> list[str]:
        marker = _bare(self._key(directory))
        entries = await self._call("list_directories", self._ls, directory)
        return sorted(
            posixpath.basename(_bare(entry["name"]))
            for entry in entries
            if entry.get("type") == "directory" and _bare(entry["name"]) != marker
        )

    async def copy(self, source_path: str, destination_path: str) -> None:
        await self._call(
            "copy", self.fs.cp_file, self._key(source_path), self._key(destination_path),
        )
        logger.info("object_copied", source=source_path, destination=destination_path)


class S3Storage(FsspecStorage):
    """AWS S3 storage backend.

    Requires the s3fs package. Credentials come from the usual AWS
    environment/instance-profile chain.
    """

    def __init__(self, bucket: str, region: str = "", fs: Any = None):
        """Initialize S3 storage.

        Args:
            bucket: S3 bucket name
            region: AWS region of the bucket (optional)
            fs: Pre-built fsspec filesystem, mainly for tests
        """
        if fs is None:
            try:
                import s3fs
            except ImportError as e:
                raise ConfigurationError("s3fs is required for S3 storage") from e
            client_kwargs = {"region_name": region} if region else {}
            fs = s3fs.S3FileSystem(anon=False, client_kwargs=client_kwargs)
        super().__init__(bucket, fs)
        logger.info("s3_storage_initialized", bucket=self.bucket, region=region or None)
