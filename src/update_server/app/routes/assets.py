"""Asset download endpoint.

GET /api/assets?asset=&runtimeVersion=&platform= → raw bytes of one entry of
the latest bundle, with the content type the manifest advertised for it.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response

from ...observability import bind_update_context, get_logger
from ..errors import MetadataMissingError, ValidationError
from ..services import UpdateResolver
from ..services.resolver import LAUNCH_ASSET_CONTENT_TYPE
from ..storage import guess_mime_type
from .manifest import PLATFORMS, platform_metadata_for

logger = get_logger(__name__)


def _content_type(platform_metadata: dict[str, Any], asset: str) -> str:
    if platform_metadata.get("bundle") == asset:
        return LAUNCH_ASSET_CONTENT_TYPE
    for entry in platform_metadata.get("assets") or []:
        if entry.get("path") == asset and entry.get("ext"):
            return guess_mime_type(f"asset.{str(entry['ext']).lstrip('.')}")
    return guess_mime_type(asset)


def create_assets_router(resolver: UpdateResolver) -> APIRouter:
    router = APIRouter(tags=['updates'])

    @router.get('/api/assets')
    async def get_asset(
        asset: str | None = None,
        runtimeVersion: str | None = None,
        platform: str | None = None,
    ):
        """Serve one asset of the latest bundle for a runtime version."""
        missing = [
            name
            for name, value in (("asset", asset), ("runtimeVersion", runtimeVersion), ("platform", platform))
            if not value
        ]
        if missing:
            raise ValidationError.missing(missing)
        if platform not in PLATFORMS:
            raise ValidationError('Unsupported platform. Expected either "ios" or "android".', ["platform"])

        with bind_update_context(runtime_version=runtimeVersion, platform=platform):
            bundle_path = await resolver.resolve_latest_bundle_path(runtimeVersion)
            with await resolver.open_bundle(bundle_path) as archive:
                metadata = await resolver.resolve_metadata(
                    bundle_path=bundle_path, runtime_version=runtimeVersion, archive=archive,
                )
                try:
                    content_type = _content_type(platform_metadata_for(metadata.metadata_json, platform), asset)
                except MetadataMissingError:
                    content_type = guess_mime_type(asset)
                content = await resolver.read_asset(bundle_path, asset, archive=archive)
            logger.debug("asset_served", path=bundle_path, asset=asset, size=len(content))
        return Response(content=content, media_type=content_type)

    return router
