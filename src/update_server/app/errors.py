"""Error hierarchy for the update distribution engine.

Every error carries a stable machine-readable ``code`` and the HTTP status
the boundary layer maps it to. "Nothing to serve" outcomes
(:class:`NoUpdateAvailableError`, :class:`NoUpdatesFoundError`) are part of
the hierarchy so callers can catch them explicitly, but they are not
failures: the manifest route turns them into a ``noUpdateAvailable``
directive.
"""

from __future__ import annotations

from typing import Any, Sequence


class UpdateServerError(Exception):
    """Base class for all errors raised by the core."""

    code = "update_server_error"
    http_status = 500

    def __init__(self, message: str = "") -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ConfigurationError(UpdateServerError, ValueError):
    """Invalid process configuration (unknown storage type, missing bucket...)."""

    code = "configuration_error"


class ValidationError(UpdateServerError):
    """Missing or malformed caller input. Never retried."""

    code = "validation_error"
    http_status = 400

    def __init__(self, message: str, fields: Sequence[str] = ()) -> None:
        self.fields = tuple(fields)
        super().__init__(message)

    @classmethod
    def missing(cls, fields: Sequence[str]) -> ValidationError:
        return cls(f"Missing required fields: {', '.join(fields)}", fields)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload


class NoUpdateAvailableError(UpdateServerError):
    """No ``updates/{runtimeVersion}`` prefix exists in storage."""

    code = "no_update_available"
    http_status = 404

    def __init__(self, runtime_version: str) -> None:
        self.runtime_version = runtime_version
        super().__init__(f"No update available for runtime version: {runtime_version}")


class NoUpdatesFoundError(UpdateServerError):
    """The runtime version directory exists but holds no ``.zip`` archive."""

    code = "no_updates_found"
    http_status = 404

    def __init__(self, runtime_version: str) -> None:
        self.runtime_version = runtime_version
        super().__init__(f"No updates found for runtime version: {runtime_version}")


class NotFoundError(UpdateServerError):
    """A storage key or database record does not exist."""

    code = "not_found"
    http_status = 404


class MetadataMissingError(UpdateServerError):
    """``metadata.json`` is absent from the bundle or cannot be parsed."""

    code = "metadata_missing"
    http_status = 404


class AssetNotFoundError(UpdateServerError):
    """The requested asset entry is not present in the bundle."""

    code = "asset_not_found"
    http_status = 404

    def __init__(self, bundle_path: str, file_path: str) -> None:
        self.bundle_path = bundle_path
        self.file_path = file_path
        super().__init__(f"Asset {file_path!r} not found in bundle {bundle_path!r}")


class RollbackNotFoundError(UpdateServerError):
    """The bundle carries no rollback marker."""

    code = "rollback_not_found"
    http_status = 404

    def __init__(self, bundle_path: str) -> None:
        self.bundle_path = bundle_path
        super().__init__(f"No rollback found in bundle {bundle_path!r}")


class InvalidArchiveError(UpdateServerError):
    """Bytes that should hold a bundle archive are not a readable zip."""

    code = "invalid_archive"
    http_status = 400


class ArchiveEntryNotFoundError(UpdateServerError):
    """A named entry is absent from an archive."""

    code = "archive_entry_not_found"
    http_status = 404

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Entry {name!r} not found in archive")


class ConflictError(UpdateServerError):
    """A bundle is already stored at the path a new release would take."""

    code = "bundle_conflict"
    http_status = 409

    def __init__(self, bundle_path: str) -> None:
        self.bundle_path = bundle_path
        super().__init__(f"A bundle already exists at {bundle_path!r}; retry in a second")


class BackendError(UpdateServerError):
    """Object-store or database failure. The original cause is chained."""

    code = "backend_error"
    http_status = 502
