"""Release store adapters (Supabase, Postgres) and the factory that picks one."""

from __future__ import annotations

import httpx

from ..errors import ConfigurationError
from ..inmemory import InMemoryReleaseStore
from ..protocols import ReleaseStore
from ..settings import ServerSettings
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from .release_repo import SupabaseReleaseStore
from .supabase_client import SupabaseClient


def create_release_store(
    settings: ServerSettings,
    http_client: httpx.AsyncClient | None = None,
) -> ReleaseStore:
    """Build the release store named by ``settings.database_type``.

    Raises:
        ConfigurationError: For an unknown database type.
    """
    database_type = settings.database_type
    if database_type == "memory":
        return InMemoryReleaseStore()
    if database_type == "supabase":
        client = SupabaseClient(
            supabase_url=settings.supabase_url,
            service_role_key=settings.supabase_api_key,
            http_client=http_client,
        )
        return SupabaseReleaseStore(client)
    if database_type == "postgres":
        from .postgres_store import PostgresReleaseStore

        return PostgresReleaseStore(settings.postgres_dsn)
    raise ConfigurationError(f"Unsupported database type: {database_type!r}")


__all__ = [
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseError",
    "SupabaseNotFoundError",
    "SupabaseReleaseStore",
    "create_release_store",
]
