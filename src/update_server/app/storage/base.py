"""Storage backend contract shared by every object-store adapter.

Object stores have no real directories: a "directory" is a key prefix
ending in ``/``. All adapters normalize paths the same way so that
existence checks and listings behave identically whichever backend is
configured.
"""

from __future__ import annotations

import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..errors import ValidationError

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class FileInfo:
    """A direct child object of a listed directory."""

    name: str
    size: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    mime_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "size": self.size,
            "mimeType": self.mime_type,
        }


def normalize_key(path: str) -> str:
    """Strip surrounding slashes and reject parent-directory segments.

    Raises:
        ValidationError: If the path contains ``..`` or empty segments.
    """
    key = str(path).strip().strip("/")
    if not key:
        return ""
    parts = key.split("/")
    if any(part in ("", ".", "..") for part in parts):
        raise ValidationError(f"Invalid storage path: {path!r}")
    return key


def directory_prefix(path: str) -> str:
    """Return the listing prefix for *path* (always ends with ``/``)."""
    key = normalize_key(path)
    return f"{key}/" if key else ""


def guess_mime_type(name: str) -> str:
    return mimetypes.guess_type(name)[0] or DEFAULT_MIME_TYPE


class StorageBackend(ABC):
    """Abstract object store.

    Every method is async; adapters backed by blocking SDKs run their calls
    in the default executor.
    """

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """True if any object key starts with ``{path}/``."""
        ...

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> str:
        """Write *data* at key *path*, overwriting. Returns *path*."""
        ...

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Read the object at key *path*.

        Raises:
            NotFoundError: If no object exists at exactly that key.
        """
        ...

    @abstractmethod
    async def list_files(self, directory: str) -> list[FileInfo]:
        """Direct child objects of *directory* (the marker object excluded)."""
        ...

    @abstractmethod
    async def list_directories(self, directory: str) -> list[str]:
        """Names of the immediate sub-prefixes of *directory*."""
        ...

    @abstractmethod
    async def copy(self, source_path: str, destination_path: str) -> None:
        """Copy an object server-side where the backend supports it."""
        ...
