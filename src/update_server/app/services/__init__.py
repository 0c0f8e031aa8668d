"""Update distribution services: resolution, ingestion and the catalog."""

from .catalog import CatalogService
from .ingestion import DEFAULT_COMMIT_MESSAGE, IngestionService
from .resolver import (
    UPDATES_ROOT,
    UpdateResolver,
    archive_key,
    bundle_path_for,
    no_update_available_directive,
    validate_runtime_version,
)

__all__ = [
    "CatalogService",
    "DEFAULT_COMMIT_MESSAGE",
    "IngestionService",
    "UPDATES_ROOT",
    "UpdateResolver",
    "archive_key",
    "bundle_path_for",
    "no_update_available_directive",
    "validate_runtime_version",
]
