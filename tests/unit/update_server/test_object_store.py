"""Unit tests for the fsspec-backed object store (S3 through s3fs)."""

from datetime import datetime, timezone

import pytest
from fsspec.implementations.memory import MemoryFileSystem

from update_server.app.errors import BackendError, ConfigurationError, NotFoundError
from update_server.app.storage.object_store import FsspecStorage, S3Storage


@pytest.fixture
def memory_fs():
    MemoryFileSystem.store.clear()
    MemoryFileSystem.pseudo_dirs[:] = [""]
    fs = MemoryFileSystem(skip_instance_cache=True)
    yield fs
    MemoryFileSystem.store.clear()
    MemoryFileSystem.pseudo_dirs[:] = [""]


@pytest.fixture
def storage(memory_fs):
    return FsspecStorage("bundles", memory_fs)


class FakeListingFS:
    """Returns canned ``ls`` results shaped like s3fs listings."""

    def __init__(self, entries=None, error=None):
        self.entries = entries or []
        self.error = error

    def ls(self, path, detail=True, refresh=False):
        if self.error is not None:
            raise self.error
        return self.entries

    def cat_file(self, path):
        raise PermissionError("access denied")


class TestFsspecStorage:
    def test_requires_bucket(self, memory_fs):
        with pytest.raises(ConfigurationError):
            FsspecStorage("", memory_fs)

    @pytest.mark.asyncio
    async def test_upload_download_roundtrip(self, storage):
        await storage.upload("updates/1.0.0/1.zip", b"bundle")
        assert await storage.download("updates/1.0.0/1.zip") == b"bundle"

    @pytest.mark.asyncio
    async def test_download_missing_maps_to_not_found(self, storage):
        with pytest.raises(NotFoundError):
            await storage.download("updates/1.0.0/missing.zip")

    @pytest.mark.asyncio
    async def test_exists_is_prefix_based(self, storage):
        assert await storage.exists("updates/1.0.0") is False
        await storage.upload("updates/1.0.0/1.zip", b"x")
        assert await storage.exists("updates/1.0.0") is True
        assert await storage.exists("updates/1.0") is False

    @pytest.mark.asyncio
    async def test_list_files_and_directories(self, storage):
        await storage.upload("updates/1.0.0/2.zip", b"22")
        await storage.upload("updates/1.0.0/1.zip", b"1")
        await storage.upload("updates/2.0.0/1.zip", b"1")

        files = await storage.list_files("updates/1.0.0")
        assert [f.name for f in files] == ["1.zip", "2.zip"]
        assert [f.size for f in files] == [1, 2]
        assert files[0].mime_type == "application/zip"

        assert await storage.list_directories("updates") == ["1.0.0", "2.0.0"]
        assert await storage.list_files("updates/3.0.0") == []

    @pytest.mark.asyncio
    async def test_copy(self, storage):
        await storage.upload("updates/1.0.0/1.zip", b"bundle")
        await storage.copy("updates/1.0.0/1.zip", "updates/1.0.0/2.zip")
        assert await storage.download("updates/1.0.0/2.zip") == b"bundle"

    @pytest.mark.asyncio
    async def test_list_files_skips_directory_marker_and_reads_s3_fields(self):
        modified = datetime(2024, 5, 1, tzinfo=timezone.utc)
        fs = FakeListingFS(
            entries=[
                {"name": "bundles/updates/1.0.0", "size": 0, "type": "file"},
                {
                    "name": "bundles/updates/1.0.0/1.zip",
                    "size": 10,
                    "type": "file",
                    "LastModified": modified,
                    "ContentType": "application/zip",
                },
                {"name": "bundles/updates/1.0.0/sub", "size": 0, "type": "directory"},
            ]
        )
        storage = FsspecStorage("bundles", fs)

        files = await storage.list_files("updates/1.0.0")

        assert len(files) == 1
        assert files[0].name == "1.zip"
        assert files[0].created_at == modified
        assert files[0].updated_at == modified
        assert files[0].mime_type == "application/zip"

    @pytest.mark.asyncio
    async def test_other_errors_map_to_backend_error(self):
        storage = FsspecStorage("bundles", FakeListingFS(error=PermissionError("denied")))
        with pytest.raises(BackendError):
            await storage.list_files("updates")
        with pytest.raises(BackendError):
            await storage.download("updates/1.0.0/1.zip")


class TestS3Storage:
    def test_accepts_prebuilt_filesystem(self, memory_fs):
        storage = S3Storage("bucket", region="eu-west-1", fs=memory_fs)
        assert storage.bucket == "bucket"
        assert storage.fs is memory_fs
