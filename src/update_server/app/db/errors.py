"""Supabase PostgREST error hierarchy.

These stay free of httpx.Response objects (and secrets). Release stores
translate them into :class:`~update_server.app.errors.BackendError` at the
adapter edge.
"""

from __future__ import annotations


class SupabaseError(Exception):
    """Base Supabase error for PostgREST requests."""

    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: str | None = None,
        details: str | None = None,
        hint: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        super().__init__(str(self))

    def __str__(self) -> str:
        bits: list[str] = [f"{type(self).__name__}(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class SupabaseAuthError(SupabaseError):
    """401/403 auth errors (bad key, RLS, expired session, etc.)."""


class SupabaseNotFoundError(SupabaseError):
    """404 errors (missing table/view/route)."""


class SupabaseConflictError(SupabaseError):
    """409 conflicts (unique violations, foreign keys)."""
