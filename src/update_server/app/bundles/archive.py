"""Read entries out of an update bundle archive.

A bundle is a zip whose top-level entries are ``metadata.json``, an optional
``rollback`` marker, an optional ``expoConfig.json`` and the asset files that
the metadata references.
"""

from __future__ import annotations

import io
import json
import zipfile
from typing import Any

from ..errors import ArchiveEntryNotFoundError, InvalidArchiveError

METADATA_ENTRY = "metadata.json"
ROLLBACK_ENTRY = "rollback"
EXPO_CONFIG_ENTRY = "expoConfig.json"


class BundleArchive:
    """In-memory view over the bytes of one bundle archive."""

    def __init__(self, data: bytes) -> None:
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, ValueError) as err:
            raise InvalidArchiveError(f"Bundle is not a valid zip archive: {err}") from err

    def names(self) -> list[str]:
        return [info.filename for info in self._zip.infolist() if not info.is_dir()]

    def has_entry(self, name: str) -> bool:
        try:
            info = self._zip.getinfo(name)
        except KeyError:
            return False
        return not info.is_dir()

    def read(self, name: str) -> bytes:
        """Return the raw bytes of entry *name*.

        Raises:
            ArchiveEntryNotFoundError: If the entry is absent or a directory.
            InvalidArchiveError: If the entry cannot be decompressed.
        """
        if not self.has_entry(name):
            raise ArchiveEntryNotFoundError(name)
        try:
            return self._zip.read(name)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as err:
            raise InvalidArchiveError(f"Cannot read entry {name!r}: {err}") from err

    def read_json(self, name: str) -> Any:
        return json.loads(self.read(name).decode("utf-8"))

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> BundleArchive:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
