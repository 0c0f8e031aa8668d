"""PostgreSQL-backed ReleaseStore (psycopg2 threaded connection pool).

psycopg2 is blocking, so every statement runs in the default executor on a
pooled connection, inside its own transaction.
"""

from __future__ import annotations

import asyncio
import functools
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import psycopg2
from psycopg2.extras import RealDictCursor

from ...migrations import apply_migrations
from ...observability import get_logger
from ..errors import BackendError
from ..models import Release, Tracking, TrackingMetrics

logger = get_logger(__name__)

_RELEASE_COLUMNS = (
    "id, version, runtime_version, path, timestamp, commit_hash, commit_message, update_id"
)


class PostgresReleaseStore:
    """ReleaseStore over the ``releases``/``releases_tracking`` tables."""

    def __init__(
        self,
        dsn: str = "",
        *,
        pool: Any = None,
        min_connections: int = 1,
        max_connections: int = 10,
    ) -> None:
        if pool is None:
            from psycopg2.pool import ThreadedConnectionPool

            pool = ThreadedConnectionPool(min_connections, max_connections, dsn)
        self._pool = pool
        logger.info("postgres_release_store_initialized", max_connections=max_connections)

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._connection() as conn:
            with conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                    cursor.execute(sql, params)
                    if cursor.description is None:
                        return []
                    return [dict(row) for row in cursor.fetchall()]

    async def _run(self, operation: str, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(self._execute, sql, params))
        except psycopg2.Error as err:
            logger.error("release_store_error", operation=operation, error=str(err))
            raise BackendError(f"{operation} failed: {err}") from err

    async def _first(self, operation: str, sql: str, params: Sequence[Any]) -> Release | None:
        rows = await self._run(operation, sql, params)
        return Release.from_row(rows[0]) if rows else None

    def _migrate(self) -> list[str]:
        with self._connection() as conn:
            return apply_migrations(conn)

    async def migrate(self) -> list[str]:
        """Apply the bundled schema migrations; safe to call on every start."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._migrate)
        except psycopg2.Error as err:
            raise BackendError(f"migrate failed: {err}") from err

    def close(self) -> None:
        self._pool.closeall()

    async def create_release(self, release: Release) -> Release:
        row = release.to_row()
        rows = await self._run(
            "create_release",
            f"""
            INSERT INTO releases
                (version, runtime_version, path, timestamp, commit_hash, commit_message, update_id)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_RELEASE_COLUMNS}
            """,
            (
                row["version"],
                row["runtime_version"],
                row["path"],
                row["timestamp"],
                row["commit_hash"],
                row["commit_message"],
                row["update_id"],
            ),
        )
        created = Release.from_row(rows[0])
        logger.info("release_created", release_id=created.id, path=created.path)
        return created

    async def get_release(self, release_id: str) -> Release | None:
        return await self._first(
            "get_release",
            f"SELECT {_RELEASE_COLUMNS} FROM releases WHERE id = %s",
            (release_id,),
        )

    async def get_release_by_path(self, path: str) -> Release | None:
        return await self._first(
            "get_release_by_path",
            f"SELECT {_RELEASE_COLUMNS} FROM releases WHERE path = %s",
            (path,),
        )

    async def get_latest_release_for_runtime_version(self, runtime_version: str) -> Release | None:
        return await self._first(
            "get_latest_release_for_runtime_version",
            f"""
            SELECT {_RELEASE_COLUMNS} FROM releases
            WHERE runtime_version = %s
            ORDER BY timestamp DESC
            LIMIT 1
            """,
            (runtime_version,),
        )

    async def list_releases(self) -> list[Release]:
        rows = await self._run(
            "list_releases",
            f"SELECT {_RELEASE_COLUMNS} FROM releases ORDER BY timestamp DESC",
        )
        return [Release.from_row(row) for row in rows]

    async def create_tracking(self, release_id: str, platform: str) -> Tracking:
        rows = await self._run(
            "create_tracking",
            """
            INSERT INTO releases_tracking (release_id, platform)
            VALUES (%s, %s)
            RETURNING id, release_id, download_timestamp, platform
            """,
            (release_id, platform),
        )
        return Tracking.from_row(rows[0])

    async def get_tracking_metrics(self, release_id: str) -> list[TrackingMetrics]:
        rows = await self._run(
            "get_tracking_metrics",
            """
            SELECT platform, COUNT(*) AS count
            FROM releases_tracking
            WHERE release_id = %s
            GROUP BY platform
            ORDER BY platform
            """,
            (release_id,),
        )
        return [TrackingMetrics(platform=r["platform"], count=int(r["count"])) for r in rows]

    async def get_tracking_metrics_for_all_releases(self) -> list[TrackingMetrics]:
        rows = await self._run(
            "get_tracking_metrics_for_all_releases",
            """
            SELECT platform, COUNT(*) AS count
            FROM releases_tracking
            GROUP BY platform
            ORDER BY platform
            """,
        )
        return [TrackingMetrics(platform=r["platform"], count=int(r["count"])) for r in rows]
