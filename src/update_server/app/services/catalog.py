"""Release catalog: stored bundles merged with their release records."""

from __future__ import annotations

from ...observability import get_logger
from ..models import CatalogEntry
from ..protocols import ReleaseStore
from ..storage import StorageBackend
from .resolver import UPDATES_ROOT, bundle_path_for, runtime_directory

logger = get_logger(__name__)


class CatalogService:
    def __init__(self, storage: StorageBackend, release_store: ReleaseStore) -> None:
        self.storage = storage
        self.release_store = release_store

    async def list_catalog(self) -> list[CatalogEntry]:
        """Every stored file under ``updates/``, in directory listing order.

        Files without a release record are kept, with empty commit fields.
        """
        directories = await self.storage.list_directories(UPDATES_ROOT)
        releases = {release.path: release for release in await self.release_store.list_releases()}

        entries: list[CatalogEntry] = []
        for runtime_version in directories:
            folder = runtime_directory(runtime_version)
            for info in await self.storage.list_files(folder):
                path = bundle_path_for(f"{folder}/{info.name}")
                release = releases.get(path)
                entries.append(
                    CatalogEntry(
                        path=path,
                        runtime_version=runtime_version,
                        timestamp=info.created_at,
                        size=info.size,
                        version=release.version if release else None,
                        commit_hash=release.commit_hash if release else None,
                        commit_message=release.commit_message if release else None,
                    )
                )

        logger.info("catalog_listed", directories=len(directories), entries=len(entries))
        return entries
