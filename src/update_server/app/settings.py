"""Update server configuration settings.

ServerSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config without
touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

STORAGE_TYPES = ("local", "s3", "gcs", "supabase")
DATABASE_TYPES = ("memory", "supabase", "postgres")

DEFAULT_PUBLIC_URL = "http://localhost:3000"
DEFAULT_LOCAL_STORAGE_PATH = "./data/updates"
DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
)


@dataclass(frozen=True, slots=True)
class ServerSettings:
    """Configuration for the update server FastAPI application.

    All fields have defaults suitable for local development: bundles on the
    local filesystem and releases in memory.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    public_url: str = DEFAULT_PUBLIC_URL
    """Base URL devices use to download assets (``HOST``)."""

    # ── Blob storage ───────────────────────────────────────────────
    storage_type: str = "local"
    """One of: local, s3, gcs, supabase."""

    local_storage_path: str = DEFAULT_LOCAL_STORAGE_PATH
    storage_bucket: str = ""
    aws_region: str = ""
    gcs_project: str = ""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    supabase_api_key: str = ""
    """Service-role key for Storage and PostgREST calls. Never log this."""

    # ── Database ───────────────────────────────────────────────────
    database_type: str = "memory"
    """One of: memory, supabase, postgres."""

    postgres_user: str = ""
    postgres_password: str = ""
    postgres_db: str = ""
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    @property
    def postgres_dsn(self) -> str:
        return (
            f"host={self.postgres_host} port={self.postgres_port} "
            f"dbname={self.postgres_db} user={self.postgres_user} "
            f"password={self.postgres_password}"
        )

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.storage_type not in STORAGE_TYPES:
            errors.append(f"unsupported storage type: {self.storage_type!r}")
        if self.database_type not in DATABASE_TYPES:
            errors.append(f"unsupported database type: {self.database_type!r}")

        if self.storage_type == "local" and not self.local_storage_path:
            errors.append("local storage requires local_storage_path")
        if self.storage_type in ("s3", "gcs", "supabase") and not self.storage_bucket:
            errors.append(f"{self.storage_type} storage requires storage_bucket")
        if "supabase" in (self.storage_type, self.database_type):
            if not self.supabase_url:
                errors.append("supabase requires supabase_url")
            if not self.supabase_api_key:
                errors.append("supabase requires supabase_api_key")
        if self.database_type == "postgres":
            for name in ("postgres_user", "postgres_db", "postgres_host"):
                if not getattr(self, name):
                    errors.append(f"postgres requires {name}")

        if not self.is_local and self.database_type == "memory":
            errors.append(f"{self.environment}: the in-memory release store is local-only")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ServerSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct ServerSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else DEFAULT_CORS_ORIGINS

        port_raw = env.get("POSTGRES_PORT", "5432")
        try:
            port = int(port_raw)
        except ValueError:
            port = 5432

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            public_url=env.get("HOST", DEFAULT_PUBLIC_URL).rstrip("/"),
            storage_type=env.get("BLOB_STORAGE_TYPE", "local").lower(),
            local_storage_path=env.get("LOCAL_STORAGE_PATH", DEFAULT_LOCAL_STORAGE_PATH),
            storage_bucket=env.get("BLOB_STORAGE_BUCKET", ""),
            aws_region=env.get("AWS_REGION", ""),
            gcs_project=env.get("GCS_PROJECT", ""),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_api_key=env.get("SUPABASE_API_KEY", ""),
            database_type=env.get("DB_TYPE", "memory").lower(),
            postgres_user=env.get("POSTGRES_USER", ""),
            postgres_password=env.get("POSTGRES_PASSWORD", ""),
            postgres_db=env.get("POSTGRES_DB", ""),
            postgres_host=env.get("POSTGRES_HOST", "localhost"),
            postgres_port=port,
            cors_origins=cors,
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
        )
