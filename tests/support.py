"""Bundle archives and clocks shared by the test modules."""

from __future__ import annotations

import copy
import io
import json
import zipfile
from datetime import datetime, timedelta, timezone
from typing import Any

IOS_BUNDLE_PATH = "_expo/static/js/ios/index-abc.hbc"
ANDROID_BUNDLE_PATH = "_expo/static/js/android/index-def.hbc"
ICON_PATH = "assets/4f1cb2cac2370cd5050681232e8575a8"

IOS_BUNDLE = b"ios launch bundle"
ANDROID_BUNDLE = b"android launch bundle"
ICON = b"\x89PNG\r\n\x1a\nicon-bytes"

METADATA: dict[str, Any] = {
    "version": 0,
    "bundler": "metro",
    "fileMetadata": {
        "ios": {
            "bundle": IOS_BUNDLE_PATH,
            "assets": [{"path": ICON_PATH, "ext": "png"}],
        },
        "android": {
            "bundle": ANDROID_BUNDLE_PATH,
            "assets": [{"path": ICON_PATH, "ext": "png"}],
        },
    },
}

EXPO_CONFIG = {"name": "demo", "slug": "demo", "runtimeVersion": "1.0.0"}


def metadata_bytes(metadata: dict[str, Any] | None = None) -> bytes:
    return json.dumps(metadata if metadata is not None else METADATA).encode("utf-8")


def build_bundle(
    metadata: bytes | None = None,
    *,
    include_metadata: bool = True,
    rollback: bool = False,
    expo_config: dict[str, Any] | None = None,
    extra_entries: dict[str, bytes] | None = None,
) -> bytes:
    """Zip a bundle laid out the way ``expo export`` produces it."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        if include_metadata:
            zf.writestr("metadata.json", metadata if metadata is not None else metadata_bytes())
        zf.writestr(IOS_BUNDLE_PATH, IOS_BUNDLE)
        zf.writestr(ANDROID_BUNDLE_PATH, ANDROID_BUNDLE)
        zf.writestr(ICON_PATH, ICON)
        if rollback:
            zf.writestr("rollback", b"")
        if expo_config is not None:
            zf.writestr("expoConfig.json", json.dumps(expo_config))
        for name, data in (extra_entries or {}).items():
            zf.writestr(name, data)
    return buffer.getvalue()


def metadata_copy() -> dict[str, Any]:
    return copy.deepcopy(METADATA)


class StepClock:
    """Returns a new instant, one step later, on every call."""

    def __init__(
        self,
        start: datetime = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc),
        step: timedelta = timedelta(seconds=1),
    ) -> None:
        self.current = start
        self.step = step
        self.calls = 0

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        self.calls += 1
        return value
