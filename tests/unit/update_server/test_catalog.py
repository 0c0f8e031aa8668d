"""Unit tests for CatalogService."""

import pytest

from support import build_bundle
from update_server.app.services import CatalogService, IngestionService


@pytest.fixture
def catalog(storage, release_store):
    return CatalogService(storage, release_store)


class TestCatalog:
    @pytest.mark.asyncio
    async def test_empty_storage(self, catalog):
        assert await catalog.list_catalog() == []

    @pytest.mark.asyncio
    async def test_merges_release_records(self, catalog, storage, release_store, clock):
        ingestion = IngestionService(storage, release_store, clock=clock)
        release = await ingestion.ingest(
            build_bundle(), runtime_version="1.0.0", version="1.2.0", commit_hash="abc123",
        )
        await storage.upload("updates/2.0.0/20240101000000.zip", b"unrecorded")

        entries = await catalog.list_catalog()

        assert [e.path for e in entries] == [release.path, "updates/2.0.0/20240101000000"]
        recorded, unrecorded = entries
        assert recorded.runtime_version == "1.0.0"
        assert recorded.version == "1.2.0"
        assert recorded.commit_hash == "abc123"
        assert recorded.size > 0
        assert recorded.timestamp is not None
        assert unrecorded.version is None
        assert unrecorded.commit_hash is None
        assert unrecorded.to_dict()["runtimeVersion"] == "2.0.0"
        assert unrecorded.to_dict()["size"] == len(b"unrecorded")
