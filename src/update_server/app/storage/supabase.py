"""Supabase Storage backend over its REST API.

Supabase Storage models folders implicitly: ``object/list`` returns files
(entries with an ``id``) and folders (entries whose ``id`` is null) for one
prefix. Empty folders created in the dashboard hold a
``.emptyFolderPlaceholder`` object, which never counts as content.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from ...observability import get_logger
from ..errors import BackendError, ConfigurationError, NotFoundError
from ..models import parse_timestamp
from .base import FileInfo, StorageBackend, guess_mime_type, normalize_key

logger = get_logger(__name__)

PLACEHOLDER_NAME = ".emptyFolderPlaceholder"


def _is_not_found(resp: httpx.Response) -> bool:
    if resp.status_code == 404:
        return True
    # The storage API reports missing objects as 400 with a nested 404.
    try:
        payload = resp.json()
    except ValueError:
        return False
    if not isinstance(payload, dict):
        return False
    return str(payload.get("statusCode")) == "404" or str(payload.get("error", "")).lower() in (
        "not_found",
        "not found",
    )


class SupabaseStorage(StorageBackend):
    """Objects live in one Supabase Storage bucket."""

    PAGE_SIZE = 1000

    def __init__(
        self,
        *,
        supabase_url: str,
        api_key: str,
        bucket: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not supabase_url:
            raise ConfigurationError("supabase_url is required")
        if not api_key:
            raise ConfigurationError("api_key is required")
        if not bucket:
            raise ConfigurationError("bucket is required")

        self._supabase_url = supabase_url.rstrip("/")
        self._api_key = api_key
        self.bucket = bucket
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or httpx.AsyncClient()
        logger.info("supabase_storage_initialized", bucket=bucket)

    @property
    def base_storage_url(self) -> str:
        return f"{self._supabase_url}/storage/v1"

    def _auth_headers(self) -> dict[str, str]:
        # Never log these headers.
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }

    def _object_url(self, key: str) -> str:
        return f"{self.base_storage_url}/object/{self.bucket}/{quote(key, safe='/')}"

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        try:
            resp = await self._client.request(
                method, url, headers=headers, timeout=self._timeout_seconds, **kwargs,
            )
        except httpx.HTTPError as err:
            logger.error("supabase_storage_error", operation=operation, error=str(err))
            raise BackendError(f"{operation} failed: {err}") from err

        if resp.status_code < 400:
            return resp
        if _is_not_found(resp):
            raise NotFoundError(f"{operation}: object not found")
        message = resp.text
        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message") or payload.get("error") or message
        except ValueError:
            pass
        logger.error(
            "supabase_storage_error",
            operation=operation,
            status=resp.status_code,
            error=message,
        )
        raise BackendError(f"{operation} failed (status={resp.status_code}): {message}")

    async def _list_page(self, prefix: str, *, limit: int, offset: int) -> list[dict[str, Any]]:
        resp = await self._request(
            "list",
            "POST",
            f"{self.base_storage_url}/object/list/{self.bucket}",
            json={
                "prefix": prefix,
                "limit": limit,
                "offset": offset,
                "sortBy": {"column": "name", "order": "asc"},
            },
        )
        payload = resp.json()
        if not isinstance(payload, list):
            raise BackendError("list failed: expected list response")
        return payload

    async def _list_all(self, prefix: str) -> list[dict[str, Any]]:
        entries: list[dict[str, Any]] = []
        offset = 0
        while True:
            page = await self._list_page(prefix, limit=self.PAGE_SIZE, offset=offset)
            entries.extend(e for e in page if e.get("name") != PLACEHOLDER_NAME)
            if len(page) < self.PAGE_SIZE:
                return entries
            offset += self.PAGE_SIZE

    async def exists(self, path: str) -> bool:
        key = normalize_key(path)
        # Fetch two entries: a lone placeholder would otherwise hide real content.
        entries = await self._list_page(key, limit=2, offset=0)
        return any(entry.get("name") != PLACEHOLDER_NAME for entry in entries)

    async def upload(self, path: str, data: bytes) -> str:
        key = normalize_key(path)
        await self._request(
            "upload",
            "POST",
            self._object_url(key),
            content=data,
            headers={"Content-Type": guess_mime_type(key), "x-upsert": "true"},
        )
        logger.info("object_uploaded", path=path, size=len(data))
        return path

    async def download(self, path: str) -> bytes:
        resp = await self._request("download", "GET", self._object_url(normalize_key(path)))
        return resp.content

    async def list_files(self, directory: str) -> list[FileInfo]:
        entries = await self._list_all(normalize_key(directory))
        files = []
        for entry in entries:
            if entry.get("id") is None:
                continue
            metadata = entry.get("metadata") or {}
            files.append(
                FileInfo(
                    name=entry["name"],
                    size=int(metadata.get("size") or 0),
                    created_at=parse_timestamp(entry.get("created_at")),
                    updated_at=parse_timestamp(entry.get("updated_at")),
                    mime_type=metadata.get("mimetype") or guess_mime_type(entry["name"]),
                )
            )
        return files

    async def list_directories(self, directory: str) -> list[str]:
        entries = await self._list_all(normalize_key(directory))
        return sorted(entry["name"] for entry in entries if entry.get("id") is None)

    async def copy(self, source_path: str, destination_path: str) -> None:
        await self._request(
            "copy",
            "POST",
            f"{self.base_storage_url}/object/copy",
            json={
                "bucketId": self.bucket,
                "sourceKey": normalize_key(source_path),
                "destinationKey": normalize_key(destination_path),
            },
        )
        logger.info("object_copied", source=source_path, destination=destination_path)
