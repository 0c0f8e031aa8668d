"""Update check endpoint.

Response contracts:
  GET /api/manifest → 200 {"manifest": {...}}
                    → 200 {"directive": {"type": "rollBackToEmbedded" | "noUpdateAvailable", ...}}
                    → 404 {"code", "message"} when protocol 0 cannot express the outcome

Request inputs (header, or query parameter fallback):
  expo-runtime-version / runtime-version
  expo-platform / platform            ios | android
  expo-protocol-version               0 (default) | 1
  expo-current-update-id              the update the device is running
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...observability import bind_update_context, get_logger
from ...observability.metrics import UPDATE_CHECKS_TOTAL
from ..bundles import BundleArchive, sha256_hex_to_uuid
from ..errors import (
    BackendError,
    MetadataMissingError,
    NoUpdateAvailableError,
    NoUpdatesFoundError,
    RollbackNotFoundError,
    ValidationError,
)
from ..protocols import ReleaseStore
from ..services import UpdateResolver, no_update_available_directive

logger = get_logger(__name__)

PLATFORMS = ("ios", "android")
PROTOCOL_VERSIONS = (0, 1)

RESPONSE_HEADERS = {
    "expo-sfv-version": "0",
    "cache-control": "private, max-age=0",
}


def _param(request: Request, header: str, query: str) -> str:
    return (request.headers.get(header) or request.query_params.get(query) or "").strip()


def _protocol_version(request: Request) -> int:
    raw = request.headers.get("expo-protocol-version", "0").strip() or "0"
    try:
        version = int(raw)
    except ValueError:
        version = -1
    if version not in PROTOCOL_VERSIONS:
        raise ValidationError(f"Unsupported protocol version: {raw!r}", ["expo-protocol-version"])
    return version


def _respond(body: dict[str, Any], protocol_version: int) -> JSONResponse:
    return JSONResponse(
        content=body,
        headers={**RESPONSE_HEADERS, "expo-protocol-version": str(protocol_version)},
    )


def platform_metadata_for(metadata_json: Any, platform: str) -> dict[str, Any]:
    file_metadata = metadata_json.get("fileMetadata") if isinstance(metadata_json, dict) else None
    platform_metadata = (file_metadata or {}).get(platform)
    if not isinstance(platform_metadata, dict) or not platform_metadata.get("bundle"):
        raise MetadataMissingError(f"metadata.json has no bundle for platform {platform!r}")
    return platform_metadata


async def build_manifest(
    resolver: UpdateResolver,
    *,
    bundle_path: str,
    archive: BundleArchive,
    runtime_version: str,
    platform: str,
) -> dict[str, Any]:
    """Assemble the manifest served for *bundle_path*."""
    metadata = await resolver.resolve_metadata(
        bundle_path=bundle_path, runtime_version=runtime_version, archive=archive,
    )
    platform_metadata = platform_metadata_for(metadata.metadata_json, platform)

    assets = [
        (
            await resolver.resolve_asset_metadata(
                bundle_path=bundle_path,
                file_path=asset["path"],
                is_launch_asset=False,
                ext=asset.get("ext"),
                runtime_version=runtime_version,
                platform=platform,
                archive=archive,
            )
        ).to_dict()
        for asset in platform_metadata.get("assets") or []
    ]
    launch_asset = await resolver.resolve_asset_metadata(
        bundle_path=bundle_path,
        file_path=platform_metadata["bundle"],
        is_launch_asset=True,
        ext=None,
        runtime_version=runtime_version,
        platform=platform,
        archive=archive,
    )
    expo_config = await resolver.resolve_expo_config(bundle_path, archive=archive)

    return {
        "id": sha256_hex_to_uuid(metadata.id),
        "createdAt": metadata.created_at.isoformat(),
        "runtimeVersion": runtime_version,
        "assets": assets,
        "launchAsset": launch_asset.to_dict(),
        "metadata": {},
        "extra": {"expoClient": expo_config},
    }


def create_manifest_router(
    resolver: UpdateResolver,
    release_store: ReleaseStore,
) -> APIRouter:
    """Create the update check router.

    Args:
        resolver: Resolves bundles out of storage.
        release_store: Receives one tracking row per served manifest.
    """
    router = APIRouter(tags=['updates'])

    async def record_tracking(bundle_path: str, platform: str) -> None:
        try:
            release = await release_store.get_release_by_path(bundle_path)
            if release is None:
                logger.warning("tracking_skipped_unknown_release", path=bundle_path)
                return
            await release_store.create_tracking(release.id, platform)
        except BackendError as err:
            logger.warning("tracking_failed", path=bundle_path, platform=platform, error=str(err))

    def no_update(protocol_version: int, platform: str, message: str) -> JSONResponse:
        UPDATE_CHECKS_TOTAL.labels(platform=platform, outcome="no_update").inc()
        if protocol_version == 0:
            return JSONResponse(
                status_code=404,
                content={"code": "no_update_available", "message": message},
            )
        return _respond({"directive": no_update_available_directive()}, protocol_version)

    @router.get('/api/manifest')
    async def get_manifest(request: Request):
        """Return the latest manifest or a directive for the calling device."""
        protocol_version = _protocol_version(request)
        platform = _param(request, "expo-platform", "platform")
        runtime_version = _param(request, "expo-runtime-version", "runtime-version")
        missing = [name for name, value in (("platform", platform), ("runtimeVersion", runtime_version)) if not value]
        if missing:
            raise ValidationError.missing(missing)
        if platform not in PLATFORMS:
            raise ValidationError('Unsupported platform. Expected either "ios" or "android".', ["platform"])

        with bind_update_context(
            runtime_version=runtime_version, platform=platform, protocol_version=protocol_version,
        ):
            return await serve_update(request, protocol_version, platform, runtime_version)

    async def serve_update(request: Request, protocol_version: int, platform: str, runtime_version: str):
        try:
            bundle_path = await resolver.resolve_latest_bundle_path(runtime_version)
        except (NoUpdateAvailableError, NoUpdatesFoundError) as err:
            return no_update(protocol_version, platform, err.message)

        with await resolver.open_bundle(bundle_path) as archive:
            try:
                directive = await resolver.resolve_directive(bundle_path, archive=archive)
            except RollbackNotFoundError:
                directive = None

            if directive is not None:
                if protocol_version == 0:
                    return JSONResponse(
                        status_code=404,
                        content={
                            "code": "rollback_not_supported",
                            "message": "Rollbacks are not supported on protocol version 0",
                        },
                    )
                UPDATE_CHECKS_TOTAL.labels(platform=platform, outcome="rollback").inc()
                logger.info("rollback_served", path=bundle_path)
                return _respond({"directive": directive}, protocol_version)

            manifest = await build_manifest(
                resolver,
                bundle_path=bundle_path,
                archive=archive,
                runtime_version=runtime_version,
                platform=platform,
            )

        current_update_id = request.headers.get("expo-current-update-id", "").strip().lower()
        if protocol_version == 1 and current_update_id == manifest["id"]:
            return no_update(protocol_version, platform, "Device is already running the latest update")

        await record_tracking(bundle_path, platform)
        UPDATE_CHECKS_TOTAL.labels(platform=platform, outcome="manifest").inc()
        logger.info("manifest_served", path=bundle_path, update_id=manifest["id"])
        return _respond({"manifest": manifest}, protocol_version)

    return router
