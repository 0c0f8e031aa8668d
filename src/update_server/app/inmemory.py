"""In-memory release store for local development and tests.

Used when DB_TYPE=memory (the default with ENVIRONMENT=local). It enforces
the same constraints as the SQL schema (unique release path, tracking rows
must reference an existing release) but nothing survives a restart.
"""

from __future__ import annotations

import uuid
from collections import Counter

from .errors import BackendError
from .models import Release, Tracking, TrackingMetrics, utcnow


def _metrics(trackings: list[Tracking]) -> list[TrackingMetrics]:
    counts = Counter(t.platform for t in trackings)
    return [TrackingMetrics(platform=p, count=c) for p, c in sorted(counts.items())]


class InMemoryReleaseStore:
    def __init__(self) -> None:
        self._releases: dict[str, Release] = {}
        self._trackings: list[Tracking] = []

    async def create_release(self, release: Release) -> Release:
        if any(r.path == release.path for r in self._releases.values()):
            raise BackendError(f"A release already exists at path {release.path!r}")
        stored = release.with_id(str(uuid.uuid4()))
        self._releases[stored.id] = stored
        return stored

    async def get_release(self, release_id: str) -> Release | None:
        return self._releases.get(release_id)

    async def get_release_by_path(self, path: str) -> Release | None:
        for release in self._releases.values():
            if release.path == path:
                return release
        return None

    async def get_latest_release_for_runtime_version(self, runtime_version: str) -> Release | None:
        matching = [r for r in self._releases.values() if r.runtime_version == runtime_version]
        return max(matching, key=lambda r: r.timestamp, default=None)

    async def list_releases(self) -> list[Release]:
        return sorted(self._releases.values(), key=lambda r: r.timestamp, reverse=True)

    async def create_tracking(self, release_id: str, platform: str) -> Tracking:
        if release_id not in self._releases:
            raise BackendError(f"Unknown release id {release_id!r}")
        tracking = Tracking(
            id=str(uuid.uuid4()),
            release_id=release_id,
            platform=platform,
            download_timestamp=utcnow(),
        )
        self._trackings.append(tracking)
        return tracking

    async def get_tracking_metrics(self, release_id: str) -> list[TrackingMetrics]:
        return _metrics([t for t in self._trackings if t.release_id == release_id])

    async def get_tracking_metrics_for_all_releases(self) -> list[TrackingMetrics]:
        return _metrics(self._trackings)
