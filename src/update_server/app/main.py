"""Update server FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It validates settings, constructs the storage backend and
release store once, injects them into the services, and wires middleware
and routes.

Usage:
    # Production (settings from the environment)
    uvicorn update_server.app.main:create_app --factory

    # Testing (full DI control)
    app = create_app(ServerSettings(), storage=LocalStorage(tmp_path),
                     release_store=InMemoryReleaseStore())
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from ..observability import configure_logging, get_logger, metrics_text
from ..observability.middleware import RequestContextMiddleware, RequestTelemetryMiddleware
from .db import create_release_store
from .errors import ConfigurationError, UpdateServerError
from .models import utcnow
from .protocols import ReleaseStore
from .routes import (
    create_assets_router,
    create_manifest_router,
    create_releases_router,
    create_upload_router,
)
from .services import CatalogService, IngestionService, UpdateResolver
from .settings import ServerSettings
from .storage import StorageBackend, create_storage

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for the injected adapters and the services built on them.

    Stored on ``app.state.deps`` so route handlers and tests can reach them.
    """

    storage: StorageBackend
    release_store: ReleaseStore
    resolver: UpdateResolver
    ingestion: IngestionService
    catalog: CatalogService
    http_client: httpx.AsyncClient


def _error_response(status_code: int, content: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(UpdateServerError)
    async def handle_update_server_error(request: Request, exc: UpdateServerError):
        if exc.http_status >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        return _error_response(exc.http_status, exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        return _error_response(
            400,
            {"code": "validation_error", "message": "Invalid request", "fields": fields},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path)
        return _error_response(500, {"code": "internal_error", "message": "Internal server error"})


def create_app(
    settings: ServerSettings | None = None,
    *,
    storage: StorageBackend | None = None,
    release_store: ReleaseStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """Create a configured update server FastAPI application.

    Args:
        settings: Application settings. Defaults to ``ServerSettings.from_env()``.
        storage, release_store: Adapter overrides. When None they are built
            from settings.
        http_client: Shared client for the Supabase adapters. Created (and
            closed on shutdown) when not supplied.
        clock: Time source for upload timestamps and manifest ``createdAt``.

    Raises:
        ConfigurationError: If settings validation fails.
    """
    if settings is None:
        settings = ServerSettings.from_env()

    errors = settings.validate()
    if errors:
        raise ConfigurationError(
            "Update server settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging(level=settings.log_level, json_output=settings.log_format == "json")

    owns_http_client = http_client is None
    client = http_client or httpx.AsyncClient()
    storage = storage or create_storage(settings, http_client=client)
    release_store = release_store or create_release_store(settings, http_client=client)

    resolver = UpdateResolver(storage, public_url=settings.public_url, clock=clock)
    deps = AppDependencies(
        storage=storage,
        release_store=release_store,
        resolver=resolver,
        ingestion=IngestionService(storage, release_store, clock=clock),
        catalog=CatalogService(storage, release_store),
        http_client=client,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "update_server_startup",
            environment=settings.environment,
            storage_type=settings.storage_type,
            database_type=settings.database_type,
        )
        migrate = getattr(deps.release_store, "migrate", None)
        if migrate is not None:
            applied = await migrate()
            logger.info("migrations_applied", migrations=applied)
        try:
            yield
        finally:
            close = getattr(deps.release_store, "close", None)
            if close is not None:
                close()
            if owns_http_client:
                await client.aclose()
            logger.info("update_server_shutdown")

    app = FastAPI(
        title="OTA Update Server",
        description="Over-the-air update distribution for Expo clients",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestContext -> Telemetry -> CORS -> route handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTelemetryMiddleware)
    app.add_middleware(RequestContextMiddleware)

    _register_error_handlers(app)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
            "storage": settings.storage_type,
            "database": settings.database_type,
        }

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_manifest_router(resolver, release_store))
    app.include_router(create_assets_router(resolver))
    app.include_router(create_upload_router(deps.ingestion))
    app.include_router(create_releases_router(deps.catalog, deps.ingestion, release_store))

    return app


# For uvicorn, use --factory flag:
#   uvicorn update_server.app.main:create_app --factory
# This avoids executing create_app() at import time.
