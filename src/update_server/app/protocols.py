"""Repository protocol interfaces for dependency injection.

These protocols define the contracts that concrete implementations
(InMemory for local dev and tests, Supabase or Postgres otherwise) must
satisfy. The app factory accepts any implementation that matches them.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import Release, Tracking, TrackingMetrics


@runtime_checkable
class ReleaseStore(Protocol):
    """Release records and their download tracking."""

    async def create_release(self, release: Release) -> Release: ...
    async def get_release(self, release_id: str) -> Release | None: ...
    async def get_release_by_path(self, path: str) -> Release | None: ...
    async def get_latest_release_for_runtime_version(self, runtime_version: str) -> Release | None: ...
    async def list_releases(self) -> list[Release]: ...
    async def create_tracking(self, release_id: str, platform: str) -> Tracking: ...
    async def get_tracking_metrics(self, release_id: str) -> list[TrackingMetrics]: ...
    async def get_tracking_metrics_for_all_releases(self) -> list[TrackingMetrics]: ...
