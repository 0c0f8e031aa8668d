"""Update resolution: latest bundle lookup, asset hashing, metadata and directives.

Bundles live at ``updates/{runtimeVersion}/{timestamp}.zip``. The "bundle
path" handed around by callers is that key without the ``.zip`` suffix.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Callable
from urllib.parse import quote, urlencode

from ...observability import get_logger
from ..bundles import (
    EXPO_CONFIG_ENTRY,
    METADATA_ENTRY,
    ROLLBACK_ENTRY,
    BundleArchive,
    md5_hex,
    sha256_base64url,
    sha256_hex,
)
from ..errors import (
    ArchiveEntryNotFoundError,
    AssetNotFoundError,
    InvalidArchiveError,
    MetadataMissingError,
    NotFoundError,
    NoUpdateAvailableError,
    NoUpdatesFoundError,
    RollbackNotFoundError,
    ValidationError,
)
from ..models import AssetMetadata, BundleMetadata, utcnow
from ..storage import StorageBackend, guess_mime_type

logger = get_logger(__name__)

UPDATES_ROOT = "updates"
ARCHIVE_SUFFIX = ".zip"
LAUNCH_ASSET_EXTENSION = ".bundle"
LAUNCH_ASSET_CONTENT_TYPE = "application/javascript"

_RUNTIME_VERSION_RE = re.compile(r"^[A-Za-z0-9._:+-]+$")
_LEADING_DIGITS_RE = re.compile(r"^\d+")


def validate_runtime_version(runtime_version: str) -> str:
    """Reject runtime versions that cannot be a single storage path segment."""
    if (
        not runtime_version
        or runtime_version in (".", "..")
        or not _RUNTIME_VERSION_RE.match(runtime_version)
    ):
        raise ValidationError(f"Invalid runtime version: {runtime_version!r}", ["runtimeVersion"])
    return runtime_version


def runtime_directory(runtime_version: str) -> str:
    return f"{UPDATES_ROOT}/{runtime_version}"


def archive_key(bundle_path: str) -> str:
    return f"{bundle_path}{ARCHIVE_SUFFIX}"


def bundle_path_for(key: str) -> str:
    """Strip the archive suffix from a storage key."""
    return key[: -len(ARCHIVE_SUFFIX)] if key.endswith(ARCHIVE_SUFFIX) else key


def _timestamp_of(name: str) -> int:
    # Names that do not start with digits sort last.
    match = _LEADING_DIGITS_RE.match(name)
    return int(match.group(0)) if match else 0


def no_update_available_directive() -> dict[str, Any]:
    return {"type": "noUpdateAvailable"}


class UpdateResolver:
    """Reads bundles out of storage and derives what update clients need."""

    def __init__(
        self,
        storage: StorageBackend,
        public_url: str = "",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.public_url = public_url.rstrip("/")
        self._clock = clock

    async def open_bundle(self, bundle_path: str) -> BundleArchive:
        """Download and open the archive behind *bundle_path*.

        Raises:
            NotFoundError: If no archive is stored there.
            InvalidArchiveError: If the stored bytes are not a zip.
        """
        data = await self.storage.download(archive_key(bundle_path))
        return BundleArchive(data)

    async def resolve_latest_bundle_path(self, runtime_version: str) -> str:
        """Return the bundle path of the newest archive for *runtime_version*.

        Raises:
            NoUpdateAvailableError: No ``updates/{runtimeVersion}`` prefix exists.
            NoUpdatesFoundError: The prefix holds no ``.zip`` archive.
        """
        validate_runtime_version(runtime_version)
        directory = runtime_directory(runtime_version)
        if not await self.storage.exists(directory):
            logger.info("no_update_directory", runtime_version=runtime_version)
            raise NoUpdateAvailableError(runtime_version)

        archives = [f for f in await self.storage.list_files(directory) if f.name.endswith(ARCHIVE_SUFFIX)]
        if not archives:
            logger.info("no_update_archives", runtime_version=runtime_version)
            raise NoUpdatesFoundError(runtime_version)

        archives.sort(key=lambda f: _timestamp_of(f.name), reverse=True)
        latest = f"{directory}/{bundle_path_for(archives[0].name)}"
        logger.debug("latest_bundle_resolved", runtime_version=runtime_version, path=latest)
        return latest

    def asset_url(self, file_path: str, runtime_version: str, platform: str) -> str:
        query = urlencode(
            {"asset": file_path, "runtimeVersion": runtime_version, "platform": platform},
            quote_via=quote,
            safe="/:",
        )
        return f"{self.public_url}/api/assets?{query}"

    async def resolve_asset_metadata(
        self,
        *,
        bundle_path: str,
        file_path: str,
        is_launch_asset: bool,
        ext: str | None,
        runtime_version: str,
        platform: str,
        archive: BundleArchive | None = None,
    ) -> AssetMetadata:
        """Hash one asset of the bundle and describe how to fetch it.

        Pass an already opened *archive* to avoid downloading the bundle once
        per asset.

        Raises:
            AssetNotFoundError: If the archive has no entry *file_path*.
        """
        bundle = archive or await self.open_bundle(bundle_path)
        try:
            asset = bundle.read(file_path)
        except ArchiveEntryNotFoundError as err:
            raise AssetNotFoundError(bundle_path, file_path) from err

        if is_launch_asset:
            file_extension = LAUNCH_ASSET_EXTENSION
            content_type = LAUNCH_ASSET_CONTENT_TYPE
        else:
            suffix = (ext or "").lstrip(".")
            file_extension = f".{suffix}"
            content_type = guess_mime_type(f"asset.{suffix}")

        return AssetMetadata(
            hash=sha256_base64url(asset),
            key=md5_hex(asset),
            file_extension=file_extension,
            content_type=content_type,
            url=self.asset_url(file_path, runtime_version, platform),
        )

    async def resolve_metadata(
        self,
        *,
        bundle_path: str,
        runtime_version: str,
        archive: BundleArchive | None = None,
    ) -> BundleMetadata:
        """Parse ``metadata.json`` and fingerprint its raw bytes.

        Raises:
            MetadataMissingError: The bundle, or its metadata entry, is missing
                or unreadable. The underlying error is chained.
        """
        try:
            bundle = archive or await self.open_bundle(bundle_path)
            raw = bundle.read(METADATA_ENTRY)
            metadata_json = json.loads(raw.decode("utf-8"))
        except (NotFoundError, InvalidArchiveError, ArchiveEntryNotFoundError, ValueError) as err:
            raise MetadataMissingError(
                f"No metadata found with runtime version: {runtime_version}. Error: {err}"
            ) from err

        return BundleMetadata(
            metadata_json=metadata_json,
            created_at=self._clock(),
            id=sha256_hex(raw),
        )

    async def resolve_expo_config(
        self,
        bundle_path: str,
        archive: BundleArchive | None = None,
    ) -> Any | None:
        """Return the bundle's ``expoConfig.json`` contents, or None if absent."""
        bundle = archive or await self.open_bundle(bundle_path)
        if not bundle.has_entry(EXPO_CONFIG_ENTRY):
            return None
        return bundle.read_json(EXPO_CONFIG_ENTRY)

    async def read_asset(
        self,
        bundle_path: str,
        file_path: str,
        archive: BundleArchive | None = None,
    ) -> bytes:
        """Raw bytes of one asset, for the asset download endpoint."""
        bundle = archive or await self.open_bundle(bundle_path)
        try:
            return bundle.read(file_path)
        except ArchiveEntryNotFoundError as err:
            raise AssetNotFoundError(bundle_path, file_path) from err

    async def resolve_directive(
        self,
        bundle_path: str,
        archive: BundleArchive | None = None,
    ) -> dict[str, Any]:
        """Return a ``rollBackToEmbedded`` directive if the bundle carries a rollback marker.

        Raises:
            RollbackNotFoundError: No marker (callers fall back to serving
                the manifest or a ``noUpdateAvailable`` directive).
        """
        try:
            bundle = archive or await self.open_bundle(bundle_path)
        except (NotFoundError, InvalidArchiveError) as err:
            raise RollbackNotFoundError(bundle_path) from err
        if not bundle.has_entry(ROLLBACK_ENTRY):
            raise RollbackNotFoundError(bundle_path)
        return {
            "type": "rollBackToEmbedded",
            "parameters": {"commitTime": self._clock().isoformat()},
        }

    @staticmethod
    def no_update_available_directive() -> dict[str, Any]:
        return no_update_available_directive()
