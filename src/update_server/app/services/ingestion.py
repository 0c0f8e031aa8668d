"""Bundle ingestion: store the archive, then record the release.

The two writes are not atomic. The archive is uploaded first; if recording
the release then fails, the uploaded object stays in storage without a
release row. The orphaned key is logged and the error propagates; nothing
is deleted.

Bundle paths carry a one-second timestamp. A publish that lands on a path
already in use is refused with ``ConflictError`` before anything is written.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from ...observability import get_logger
from ..bundles import METADATA_ENTRY, BundleArchive, update_id_for
from ..errors import (
    ArchiveEntryNotFoundError,
    BackendError,
    ConflictError,
    MetadataMissingError,
    NotFoundError,
    ValidationError,
)
from ..models import Release, utcnow
from ..protocols import ReleaseStore
from ..storage import StorageBackend
from .resolver import archive_key, bundle_path_for, runtime_directory, validate_runtime_version

logger = get_logger(__name__)

DEFAULT_COMMIT_MESSAGE = "No message provided"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


class IngestionService:
    """Accepts uploaded bundles and republishes earlier ones."""

    def __init__(
        self,
        storage: StorageBackend,
        release_store: ReleaseStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.release_store = release_store
        self._clock = clock

    def _new_bundle_path(self, runtime_version: str, now: datetime) -> str:
        return f"{runtime_directory(runtime_version)}/{now.strftime(TIMESTAMP_FORMAT)}"

    async def _claim_path(self, runtime_version: str, now: datetime) -> str:
        """Return the bundle path for *now*, refusing one that is already taken.

        Paths have one-second resolution, so two publishes in the same
        second would otherwise share a key and overwrite the first archive.
        """
        bundle_path = self._new_bundle_path(runtime_version, now)
        if await self.storage.exists(archive_key(bundle_path)):
            raise ConflictError(bundle_path)
        if await self.release_store.get_release_by_path(bundle_path) is not None:
            raise ConflictError(bundle_path)
        return bundle_path

    async def _record(self, release: Release, stored_key: str) -> Release:
        try:
            return await self.release_store.create_release(release)
        except BackendError:
            logger.error(
                "release_record_failed",
                orphaned_key=stored_key,
                runtime_version=release.runtime_version,
            )
            raise

    async def ingest(
        self,
        archive_bytes: bytes | None,
        *,
        runtime_version: str | None,
        version: str | None,
        commit_hash: str | None,
        commit_message: str | None = None,
    ) -> Release:
        """Store a new bundle and record its release.

        Raises:
            ValidationError: A required field is missing or malformed.
            InvalidArchiveError: The upload is not a zip archive.
            MetadataMissingError: The archive has no ``metadata.json``.
            ConflictError: A bundle was already published this second.
            BackendError: Storage or database failure.
        """
        missing = [
            name
            for name, value in (
                ("file", archive_bytes),
                ("runtimeVersion", runtime_version),
                ("version", version),
                ("commitHash", commit_hash),
            )
            if not value
        ]
        if missing:
            raise ValidationError.missing(missing)
        validate_runtime_version(runtime_version)

        with BundleArchive(archive_bytes) as archive:
            try:
                metadata = archive.read(METADATA_ENTRY)
            except ArchiveEntryNotFoundError as err:
                raise MetadataMissingError("Bundle has no metadata.json") from err
        update_id = update_id_for(metadata)

        now = self._clock()
        bundle_path = await self._claim_path(runtime_version, now)
        key = archive_key(bundle_path)
        await self.storage.upload(key, archive_bytes)
        logger.info("bundle_stored", path=key, size=len(archive_bytes), update_id=update_id)

        release = await self._record(
            Release(
                version=version,
                runtime_version=runtime_version,
                path=bundle_path,
                commit_hash=commit_hash,
                commit_message=commit_message or DEFAULT_COMMIT_MESSAGE,
                update_id=update_id,
                timestamp=now,
            ),
            key,
        )
        logger.info("release_ingested", release_id=release.id, path=bundle_path)
        return release

    async def republish(self, path: str) -> Release:
        """Publish the bundle of an earlier release again as the newest one.

        The archive is copied server-side to a fresh timestamped key, so
        devices resolving "latest" receive the earlier bundle.

        Raises:
            ValidationError: *path* is empty.
            NotFoundError: No release is recorded at *path*.
            ConflictError: A bundle was already published this second.
        """
        if not path:
            raise ValidationError.missing(["path"])
        source_path = bundle_path_for(path.strip("/"))
        source = await self.release_store.get_release_by_path(source_path)
        if source is None:
            raise NotFoundError(f"No release recorded at {source_path!r}")

        now = self._clock()
        bundle_path = await self._claim_path(source.runtime_version, now)
        key = archive_key(bundle_path)
        await self.storage.copy(archive_key(source_path), key)

        release = await self._record(
            Release(
                version=source.version,
                runtime_version=source.runtime_version,
                path=bundle_path,
                commit_hash=source.commit_hash,
                commit_message=f"Rollback to {source.commit_hash}",
                update_id=source.update_id,
                timestamp=now,
            ),
            key,
        )
        logger.info("release_republished", source=source_path, path=bundle_path)
        return release
