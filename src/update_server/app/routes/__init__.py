"""HTTP route factories. Each takes its services and returns an APIRouter."""

from .assets import create_assets_router
from .manifest import create_manifest_router
from .releases import RollbackRequest, create_releases_router
from .upload import create_upload_router

__all__ = [
    "RollbackRequest",
    "create_assets_router",
    "create_manifest_router",
    "create_releases_router",
    "create_upload_router",
]
