"""Bundle upload endpoint.

POST /api/upload (multipart: file, runtimeVersion, version, commitHash,
commitMessage) → 200 {"success": true, "path": "<storage key>", "release": {...}}
"""

from __future__ import annotations

from fastapi import APIRouter, File, Form, UploadFile

from ...observability import get_logger
from ...observability.metrics import BUNDLE_UPLOADS_TOTAL
from ..errors import UpdateServerError
from ..services import IngestionService, archive_key

logger = get_logger(__name__)


def create_upload_router(ingestion: IngestionService) -> APIRouter:
    router = APIRouter(tags=['releases'])

    @router.post('/api/upload')
    async def upload_bundle(
        file: UploadFile | None = File(None),
        runtimeVersion: str | None = Form(None),
        version: str | None = Form(None),
        commitHash: str | None = Form(None),
        commitMessage: str | None = Form(None),
    ):
        """Store an uploaded bundle and record its release."""
        data = await file.read() if file is not None else None
        try:
            release = await ingestion.ingest(
                data,
                runtime_version=runtimeVersion,
                version=version,
                commit_hash=commitHash,
                commit_message=commitMessage,
            )
        except UpdateServerError as err:
            outcome = "rejected" if err.http_status < 500 else "failed"
            BUNDLE_UPLOADS_TOTAL.labels(outcome=outcome).inc()
            logger.warning("upload_failed", code=err.code, error=err.message)
            raise
        BUNDLE_UPLOADS_TOTAL.labels(outcome="success").inc()
        return {
            "success": True,
            "path": archive_key(release.path),
            "release": release.to_dict(),
        }

    return router
