"""Local filesystem storage backend."""

from __future__ import annotations

import shutil
from datetime import datetime, timezone
from pathlib import Path

from ...observability import get_logger
from ..errors import BackendError, NotFoundError, ValidationError
from .base import FileInfo, StorageBackend, guess_mime_type, normalize_key

logger = get_logger(__name__)


class LocalStorage(StorageBackend):
    """Objects are plain files below ``root``; keys map to relative paths."""

    def __init__(self, root: Path | str):
        """Initialize with the storage root directory.

        Args:
            root: Directory holding all objects. Created on first write.
        """
        self.root = Path(root).resolve()
        logger.info("local_storage_initialized", root=str(self.root))

    def _abs(self, path: str) -> Path:
        """Convert a key to an absolute path, validating it stays within root.

        Raises:
            ValidationError: If path escapes the root directory
        """
        key = normalize_key(path)
        resolved = (self.root / key).resolve()
        if self.root not in resolved.parents and resolved != self.root:
            raise ValidationError(f"Path outside of storage root: {path}")
        return resolved

    async def exists(self, path: str) -> bool:
        directory = self._abs(path)
        if not directory.is_dir():
            return False
        return any(child.is_file() for child in directory.rglob("*"))

    async def upload(self, path: str, data: bytes) -> str:
        target = self._abs(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as err:
            logger.error("upload_failed", path=path, error=str(err))
            raise BackendError(f"Upload to {path!r} failed: {err}") from err
        logger.info("object_uploaded", path=path, size=len(data))
        return path

    async def download(self, path: str) -> bytes:
        target = self._abs(path)
        if not target.is_file():
            raise NotFoundError(f"Object not found: {path}")
        try:
            return target.read_bytes()
        except OSError as err:
            raise BackendError(f"Download of {path!r} failed: {err}") from err

    async def list_files(self, directory: str) -> list[FileInfo]:
        base = self._abs(directory)
        if not base.is_dir():
            return []
        files = []
        for child in sorted(base.iterdir(), key=lambda p: p.name):
            if not child.is_file():
                continue
            stat = child.stat()
            # st_ctime is the inode change time on POSIX, not creation.
            created = getattr(stat, "st_birthtime", None) or stat.st_mtime
            files.append(
                FileInfo(
                    name=child.name,
                    size=stat.st_size,
                    created_at=datetime.fromtimestamp(created, tz=timezone.utc),
                    updated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    mime_type=guess_mime_type(child.name),
                )
            )
        return files

    async def list_directories(self, directory: str) -> list[str]:
        base = self._abs(directory)
        if not base.is_dir():
            return []
        return sorted(child.name for child in base.iterdir() if child.is_dir())

    async def copy(self, source_path: str, destination_path: str) -> None:
        source = self._abs(source_path)
        destination = self._abs(destination_path)
        if not source.is_file():
            raise NotFoundError(f"Object not found: {source_path}")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        except OSError as err:
            raise BackendError(
                f"Copy {source_path!r} -> {destination_path!r} failed: {err}"
            ) from err
        logger.info("object_copied", source=source_path, destination=destination_path)
