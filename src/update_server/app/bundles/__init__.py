"""Bundle archive access and content identities."""

from .archive import (
    EXPO_CONFIG_ENTRY,
    METADATA_ENTRY,
    ROLLBACK_ENTRY,
    BundleArchive,
)
from .hashing import (
    md5_hex,
    sha256_base64url,
    sha256_hex,
    sha256_hex_to_uuid,
    update_id_for,
)

__all__ = [
    "BundleArchive",
    "EXPO_CONFIG_ENTRY",
    "METADATA_ENTRY",
    "ROLLBACK_ENTRY",
    "md5_hex",
    "sha256_base64url",
    "sha256_hex",
    "sha256_hex_to_uuid",
    "update_id_for",
]
