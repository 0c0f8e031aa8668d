"""Release catalog, rollback and download tracking endpoints.

Response contracts:
  GET  /api/releases          → 200 {"releases": [catalog entries]}
  POST /api/rollback {"path"} → 200 {"success": true, "release": {...}}
  GET  /api/tracking          → 200 {"trackings": [{"platform", "count"}]}
                              → 400 when releaseId is not a UUID
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ...observability import get_logger
from ..errors import ValidationError
from ..protocols import ReleaseStore
from ..services import CatalogService, IngestionService

logger = get_logger(__name__)


# ── Request schemas ──────────────────────────────────────────────────


class RollbackRequest(BaseModel):
    """Republish the bundle of an earlier release."""

    path: str = Field(..., min_length=1, description='Bundle path of the release to restore')


# ── Route factory ────────────────────────────────────────────────────


def create_releases_router(
    catalog: CatalogService,
    ingestion: IngestionService,
    release_store: ReleaseStore,
) -> APIRouter:
    """Create the release dashboard router.

    Args:
        catalog: Merges stored bundles with release records.
        ingestion: Republishes earlier bundles on rollback.
        release_store: Source of download tracking metrics.
    """
    router = APIRouter(tags=['releases'])

    @router.get('/api/releases')
    async def list_releases():
        entries = await catalog.list_catalog()
        return {"releases": [entry.to_dict() for entry in entries]}

    @router.post('/api/rollback')
    async def rollback(body: RollbackRequest):
        release = await ingestion.republish(body.path)
        logger.info("rollback_published", source=body.path, path=release.path)
        return {"success": True, "release": release.to_dict()}

    @router.get('/api/tracking')
    async def tracking(releaseId: str | None = None):
        if releaseId:
            try:
                uuid.UUID(releaseId)
            except ValueError as err:
                raise ValidationError("releaseId must be a UUID", ["releaseId"]) from err
            metrics = await release_store.get_tracking_metrics(releaseId)
        else:
            metrics = await release_store.get_tracking_metrics_for_all_releases()
        return {"trackings": [m.to_dict() for m in metrics]}

    return router
