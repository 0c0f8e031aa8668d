"""Content digests and identities derived from them.

Clients cache by these values, so every derivation here is fixed:

- asset ``hash``: base64url (no padding) of the SHA-256 digest
- asset ``key``: hex MD5 digest (cache-busting only, not security)
- manifest fingerprint: hex SHA-256 digest
- ``update_id``: the hex SHA-256 digest reshaped into a UUID
"""

from __future__ import annotations

import base64
import hashlib
import re

_HEX_RE = re.compile(r"^[0-9a-fA-F]{32,}$")


def sha256_hex(data: bytes) -> str:
    """Return the hex SHA-256 digest of *data*."""
    return hashlib.sha256(data).hexdigest()


def md5_hex(data: bytes) -> str:
    """Return the hex MD5 digest of *data*."""
    return hashlib.md5(data).hexdigest()


def to_base64url(value: str) -> str:
    """Convert standard base64 text to the URL-safe alphabet and drop padding."""
    return value.replace("+", "-").replace("/", "_").rstrip("=")


def sha256_base64url(data: bytes) -> str:
    """Return the base64url-encoded SHA-256 digest of *data*."""
    encoded = base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")
    return to_base64url(encoded)


def sha256_hex_to_uuid(hex_digest: str) -> str:
    """Reshape the first 128 bits of a hex digest as ``8-4-4-4-12``.

    The mapping is positional, so equal digests always give equal ids.

    Raises:
        ValueError: If *hex_digest* is not at least 32 hex characters.
    """
    if not _HEX_RE.match(hex_digest):
        raise ValueError("expected a hex digest of at least 32 characters")
    value = hex_digest.lower()
    return (
        f"{value[0:8]}-{value[8:12]}-{value[12:16]}-"
        f"{value[16:20]}-{value[20:32]}"
    )


def update_id_for(metadata: bytes) -> str:
    """Deterministic update id for the raw ``metadata.json`` bytes of a bundle."""
    return sha256_hex_to_uuid(sha256_hex(metadata))
