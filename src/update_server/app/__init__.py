"""Update server FastAPI application."""

from .main import AppDependencies, create_app
from .settings import ServerSettings

__all__ = ["AppDependencies", "ServerSettings", "create_app"]
