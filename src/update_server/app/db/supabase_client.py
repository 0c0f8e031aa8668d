"""Async PostgREST client wrapper for Supabase.

This is the single point of Supabase database HTTP interaction for the
release store. The httpx client is owned by the app factory and shared with
the Supabase storage adapter.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import httpx

from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)


def _encode_filter_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _filters_to_params(filters: Mapping[str, tuple[str, Any] | Any] | None) -> dict[str, str]:
    """``{"path": ("eq", "x")}`` or ``{"path": "x"}`` -> ``{"path": "eq.x"}``."""
    params: dict[str, str] = {}
    for col, spec in (filters or {}).items():
        if isinstance(spec, tuple) and len(spec) == 2:
            op, val = spec
        else:
            op, val = "eq", spec
        if val is None and op != "is":
            raise ValueError(f"{op} does not support None; use op='is' with value=None")
        params[str(col)] = f"{op}.{_encode_filter_value(val)}"
    return params


class SupabaseClient:
    """Minimal async PostgREST client (service role) with typed results."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._supabase_url = supabase_url.rstrip("/")
        self._service_role_key = service_role_key
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or httpx.AsyncClient()

    @property
    def base_rest_url(self) -> str:
        return f"{self._supabase_url}/rest/v1"

    def _auth_headers(self) -> dict[str, str]:
        # Never log these headers.
        return {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
        }

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        message = resp.text
        code = details = hint = None

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message") or message
                code = payload.get("code")
                details = payload.get("details")
                hint = payload.get("hint")
        except ValueError:
            pass

        err_cls: type[SupabaseError]
        if resp.status_code in (401, 403):
            err_cls = SupabaseAuthError
        elif resp.status_code == 404:
            err_cls = SupabaseNotFoundError
        elif resp.status_code == 409:
            err_cls = SupabaseConflictError
        else:
            err_cls = SupabaseError

        # Avoid including secrets in the exception string.
        raise err_cls(
            status_code=resp.status_code,
            message=message,
            code=code,
            details=details,
            hint=hint,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        resp = await self._client.request(
            method, url, headers=headers, timeout=self._timeout_seconds, **kwargs,
        )
        self._raise_for_error(resp)
        return resp.json()

    async def select(
        self,
        table: str,
        filters: Mapping[str, tuple[str, Any] | Any] | None = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = _filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order

        payload = await self._request("GET", f"{self.base_rest_url}/{table}", params=params)
        if not isinstance(payload, list):
            raise SupabaseError(status_code=500, message="expected list response from select")
        return payload

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        payload = await self._request(
            "POST",
            f"{self.base_rest_url}/{table}",
            json=data,
            headers={"Prefer": "return=representation"},
        )
        if not isinstance(payload, list):
            raise SupabaseError(status_code=500, message="expected list response from insert")
        return payload

    async def rpc(self, function_name: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self._request(
            "POST", f"{self.base_rest_url}/rpc/{function_name}", json=params or {},
        )
