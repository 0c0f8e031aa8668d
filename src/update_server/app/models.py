"""Release and tracking domain objects.

These mirror the ``releases`` and ``releases_tracking`` tables. Attribute
names are snake_case; ``to_dict()`` renders the camelCase shape that update
clients and the dashboard consume.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a database/JSON timestamp into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ── Release ───────────────────────────────────────────────────────────


@dataclass
class Release:
    """One uploaded bundle.

    ``path`` is the bundle path (storage key without ``.zip``). ``id`` is
    ``None`` until the release store assigns one.
    """

    version: str
    runtime_version: str
    path: str
    commit_hash: str
    commit_message: str | None = None
    update_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)
    id: str | None = None

    def with_id(self, release_id: str) -> Release:
        return replace(self, id=release_id)

    def to_row(self) -> dict[str, Any]:
        """Column mapping for inserts (``id`` is store-assigned)."""
        return {
            "version": self.version,
            "runtime_version": self.runtime_version,
            "path": self.path,
            "timestamp": self.timestamp.isoformat(),
            "commit_hash": self.commit_hash,
            "commit_message": self.commit_message,
            "update_id": self.update_id,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Release:
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            version=row["version"],
            runtime_version=row["runtime_version"],
            path=row["path"],
            timestamp=parse_timestamp(row.get("timestamp")) or utcnow(),
            commit_hash=row["commit_hash"],
            commit_message=row.get("commit_message"),
            update_id=row.get("update_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "runtimeVersion": self.runtime_version,
            "path": self.path,
            "timestamp": _iso(self.timestamp),
            "commitHash": self.commit_hash,
            "commitMessage": self.commit_message,
            "updateId": self.update_id,
        }


# ── Tracking ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Tracking:
    """One recorded update check served for a release."""

    id: str
    release_id: str
    platform: str
    download_timestamp: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Tracking:
        return cls(
            id=str(row["id"]),
            release_id=str(row["release_id"]),
            platform=row["platform"],
            download_timestamp=parse_timestamp(row.get("download_timestamp")) or utcnow(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "releaseId": self.release_id,
            "platform": self.platform,
            "downloadTimestamp": _iso(self.download_timestamp),
        }


@dataclass(frozen=True)
class TrackingMetrics:
    platform: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"platform": self.platform, "count": self.count}


# ── Resolution results ────────────────────────────────────────────────


@dataclass(frozen=True)
class AssetMetadata:
    """Content identity and download reference for one bundle asset."""

    hash: str
    key: str
    file_extension: str
    content_type: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "key": self.key,
            "fileExtension": self.file_extension,
            "contentType": self.content_type,
            "url": self.url,
        }


@dataclass(frozen=True)
class BundleMetadata:
    """Parsed ``metadata.json`` plus its fingerprint.

    ``id`` is the hex SHA-256 of the raw metadata bytes; ``created_at`` is
    the time of resolution, not of upload.
    """

    metadata_json: Any
    created_at: datetime
    id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadataJson": self.metadata_json,
            "createdAt": _iso(self.created_at),
            "id": self.id,
        }


# ── Catalog ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CatalogEntry:
    """One stored bundle, enriched with its release record when known."""

    path: str
    runtime_version: str
    timestamp: datetime | None
    size: int
    version: str | None = None
    commit_hash: str | None = None
    commit_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "version": self.version,
            "runtimeVersion": self.runtime_version,
            "timestamp": _iso(self.timestamp),
            "size": self.size,
            "commitHash": self.commit_hash,
            "commitMessage": self.commit_message,
        }
