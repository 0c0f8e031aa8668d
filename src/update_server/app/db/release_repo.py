"""Supabase-backed ReleaseStore implementation.

Persists releases in ``releases`` and update checks in ``releases_tracking``
via PostgREST. Per-platform counts come from the ``release_tracking_metrics``
SQL function (see ``update_server/migrations``) called over RPC.
"""

from __future__ import annotations

from typing import Any, Awaitable, TypeVar

import httpx

from ...observability import get_logger
from ..errors import BackendError
from ..models import Release, Tracking, TrackingMetrics
from .errors import SupabaseError
from .supabase_client import SupabaseClient

logger = get_logger(__name__)

T = TypeVar("T")


def _metrics(rows: Any) -> list[TrackingMetrics]:
    return [TrackingMetrics(platform=row["platform"], count=int(row["count"])) for row in rows or []]


class SupabaseReleaseStore:
    """ReleaseStore backed by the releases tables via PostgREST."""

    TABLE = "releases"
    TRACKING_TABLE = "releases_tracking"
    METRICS_FUNCTION = "release_tracking_metrics"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except (SupabaseError, httpx.HTTPError) as err:
            logger.error("release_store_error", operation=operation, error=str(err))
            raise BackendError(f"{operation} failed: {err}") from err

    async def _first(self, operation: str, filters: dict[str, Any], **kwargs: Any) -> Release | None:
        rows = await self._call(
            operation, self._client.select(self.TABLE, filters=filters, limit=1, **kwargs),
        )
        return Release.from_row(rows[0]) if rows else None

    async def create_release(self, release: Release) -> Release:
        rows = await self._call("create_release", self._client.insert(self.TABLE, release.to_row()))
        if not rows:
            raise BackendError("create_release returned no row")
        created = Release.from_row(rows[0])
        logger.info("release_created", release_id=created.id, path=created.path)
        return created

    async def get_release(self, release_id: str) -> Release | None:
        return await self._first("get_release", {"id": ("eq", release_id)})

    async def get_release_by_path(self, path: str) -> Release | None:
        return await self._first("get_release_by_path", {"path": ("eq", path)})

    async def get_latest_release_for_runtime_version(self, runtime_version: str) -> Release | None:
        return await self._first(
            "get_latest_release_for_runtime_version",
            {"runtime_version": ("eq", runtime_version)},
            order="timestamp.desc",
        )

    async def list_releases(self) -> list[Release]:
        rows = await self._call(
            "list_releases", self._client.select(self.TABLE, order="timestamp.desc"),
        )
        return [Release.from_row(row) for row in rows]

    async def create_tracking(self, release_id: str, platform: str) -> Tracking:
        rows = await self._call(
            "create_tracking",
            self._client.insert(
                self.TRACKING_TABLE, {"release_id": release_id, "platform": platform},
            ),
        )
        if not rows:
            raise BackendError("create_tracking returned no row")
        return Tracking.from_row(rows[0])

    async def get_tracking_metrics(self, release_id: str) -> list[TrackingMetrics]:
        rows = await self._call(
            "get_tracking_metrics",
            self._client.rpc(self.METRICS_FUNCTION, {"p_release_id": release_id}),
        )
        return _metrics(rows)

    async def get_tracking_metrics_for_all_releases(self) -> list[TrackingMetrics]:
        rows = await self._call(
            "get_tracking_metrics_for_all_releases",
            self._client.rpc(self.METRICS_FUNCTION, {"p_release_id": None}),
        )
        return _metrics(rows)
