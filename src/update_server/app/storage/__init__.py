"""Object storage adapters and the factory that picks one from settings."""

from __future__ import annotations

import httpx

from ..errors import ConfigurationError
from ..settings import ServerSettings
from .base import FileInfo, StorageBackend, directory_prefix, guess_mime_type, normalize_key
from .local import LocalStorage


def create_storage(
    settings: ServerSettings,
    http_client: httpx.AsyncClient | None = None,
) -> StorageBackend:
    """Build the single storage backend named by ``settings.storage_type``.

    Raises:
        ConfigurationError: For an unknown storage type.
    """
    storage_type = settings.storage_type
    if storage_type == "local":
        return LocalStorage(settings.local_storage_path)
    if storage_type == "s3":
        from .object_store import S3Storage

        return S3Storage(settings.storage_bucket, region=settings.aws_region)
    if storage_type == "gcs":
        from .gcs import GCSStorage

        return GCSStorage(settings.storage_bucket, project=settings.gcs_project)
    if storage_type == "supabase":
        from .supabase import SupabaseStorage

        return SupabaseStorage(
            supabase_url=settings.supabase_url,
            api_key=settings.supabase_api_key,
            bucket=settings.storage_bucket,
            http_client=http_client,
        )
    raise ConfigurationError(f"Unsupported storage type: {storage_type!r}")


__all__ = [
    "FileInfo",
    "LocalStorage",
    "StorageBackend",
    "create_storage",
    "directory_prefix",
    "guess_mime_type",
    "normalize_key",
]
