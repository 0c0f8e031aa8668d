"""HTTP tests for the update, asset, upload and release routes."""

import logging
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio
from prometheus_client import REGISTRY

from support import (
    ANDROID_BUNDLE,
    EXPO_CONFIG,
    ICON,
    ICON_PATH,
    IOS_BUNDLE_PATH,
    METADATA,
    StepClock,
    build_bundle,
    metadata_bytes,
)
from update_server.app.bundles import md5_hex, sha256_base64url, update_id_for
from update_server.app.inmemory import InMemoryReleaseStore
from update_server.app.main import create_app
from update_server.app.settings import ServerSettings
from update_server.app.storage import LocalStorage

UPDATE_ID = update_id_for(metadata_bytes())


@pytest.fixture
def app(tmp_path):
    return create_app(
        ServerSettings(public_url="https://updates.example.com", log_format="console"),
        storage=LocalStorage(tmp_path / "objects"),
        release_store=InMemoryReleaseStore(),
        clock=StepClock(),
    )


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _upload(client, archive=None, **fields):
    data = {"runtimeVersion": "1.0.0", "version": "1.2.0", "commitHash": "abc123", "commitMessage": "Fix crash"}
    data.update(fields)
    data = {k: v for k, v in data.items() if v is not None}
    bundle = archive if archive is not None else build_bundle(expo_config=EXPO_CONFIG)
    return await client.post(
        "/api/upload",
        files={"file": ("bundle.zip", bundle, "application/zip")},
        data=data,
    )


def _manifest_headers(protocol="1", platform="ios", runtime_version="1.0.0", **extra):
    headers = {
        "expo-protocol-version": protocol,
        "expo-platform": platform,
        "expo-runtime-version": runtime_version,
    }
    headers.update(extra)
    return headers


def _checks(platform, outcome):
    value = REGISTRY.get_sample_value(
        "update_server_update_checks_total", {"platform": platform, "outcome": outcome},
    )
    return value or 0.0


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "environment": "local", "storage": "local", "database": "memory"}
        assert resp.headers["x-request-id"]

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client):
        await client.get("/health")
        resp = await client.get("/metrics")
        assert resp.status_code == 200
        assert "update_server_http_requests_total" in resp.text

    @pytest.mark.asyncio
    async def test_request_metrics_use_route_template(self, client):
        labels = {"method": "GET", "route": "/api/assets", "status": "400"}
        before = REGISTRY.get_sample_value("update_server_http_requests_total", labels) or 0.0

        await client.get("/api/assets", params={"asset": "a", "runtimeVersion": "1.0.0"})
        await client.get("/api/assets", params={"asset": "b", "platform": "ios"})

        assert REGISTRY.get_sample_value("update_server_http_requests_total", labels) == before + 2

    @pytest.mark.asyncio
    async def test_unknown_urls_share_one_metric_label(self, client):
        labels = {"method": "GET", "route": "unmatched", "status": "404"}
        before = REGISTRY.get_sample_value("update_server_http_requests_total", labels) or 0.0

        await client.get("/wp-admin/setup.php")
        await client.get("/.env")

        assert REGISTRY.get_sample_value("update_server_http_requests_total", labels) == before + 2
        assert REGISTRY.get_sample_value(
            "update_server_http_requests_total", {"method": "GET", "route": "/.env", "status": "404"},
        ) is None

    @pytest.mark.asyncio
    async def test_valid_request_id_is_echoed(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "device-req-0001"})
        assert resp.headers["x-request-id"] == "device-req-0001"

    @pytest.mark.asyncio
    async def test_malformed_request_id_is_replaced(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "bad id!"})
        assert resp.headers["x-request-id"] != "bad id!"
        assert len(resp.headers["x-request-id"]) == 36


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_success(self, client):
        resp = await _upload(client)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["path"] == "updates/1.0.0/20240601120000.zip"
        assert body["release"]["path"] == "updates/1.0.0/20240601120000"
        assert body["release"]["updateId"] == UPDATE_ID
        assert body["release"]["commitMessage"] == "Fix crash"

    @pytest.mark.asyncio
    async def test_upload_missing_fields(self, client):
        resp = await _upload(client, version=None, commitHash=None)
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
        assert resp.json()["fields"] == ["version", "commitHash"]

    @pytest.mark.asyncio
    async def test_upload_without_file(self, client):
        resp = await client.post(
            "/api/upload",
            data={"runtimeVersion": "1.0.0", "version": "1.2.0", "commitHash": "abc123"},
        )
        assert resp.status_code == 400
        assert resp.json()["fields"] == ["file"]

    @pytest.mark.asyncio
    async def test_upload_not_a_zip(self, client):
        resp = await _upload(client, archive=b"nope")
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_archive"

    @pytest.mark.asyncio
    async def test_upload_without_metadata(self, client):
        resp = await _upload(client, archive=build_bundle(include_metadata=False))
        assert resp.status_code == 404
        assert resp.json()["code"] == "metadata_missing"


class TestManifest:
    @pytest.mark.asyncio
    async def test_manifest_protocol_1(self, client):
        await _upload(client)
        before = _checks("ios", "manifest")

        resp = await client.get("/api/manifest", headers=_manifest_headers())

        assert resp.status_code == 200
        assert resp.headers["expo-protocol-version"] == "1"
        assert resp.headers["expo-sfv-version"] == "0"
        assert resp.headers["cache-control"] == "private, max-age=0"
        manifest = resp.json()["manifest"]
        assert manifest["id"] == UPDATE_ID
        assert manifest["runtimeVersion"] == "1.0.0"
        assert manifest["metadata"] == {}
        assert manifest["extra"] == {"expoClient": EXPO_CONFIG}
        assert manifest["launchAsset"]["fileExtension"] == ".bundle"
        assert manifest["launchAsset"]["contentType"] == "application/javascript"
        assert manifest["launchAsset"]["url"].startswith("https://updates.example.com/api/assets?")
        assert IOS_BUNDLE_PATH in manifest["launchAsset"]["url"]
        assert manifest["assets"] == [{
            "hash": sha256_base64url(ICON),
            "key": md5_hex(ICON),
            "fileExtension": ".png",
            "contentType": "image/png",
            "url": (
                "https://updates.example.com/api/assets?"
                f"asset={ICON_PATH}&runtimeVersion=1.0.0&platform=ios"
            ),
        }]
        assert _checks("ios", "manifest") == before + 1

    @pytest.mark.asyncio
    async def test_query_parameter_fallback(self, client):
        await _upload(client)
        resp = await client.get("/api/manifest", params={"platform": "android", "runtime-version": "1.0.0"})
        assert resp.status_code == 200
        assert resp.headers["expo-protocol-version"] == "0"
        assert resp.json()["manifest"]["launchAsset"]["hash"] == sha256_base64url(ANDROID_BUNDLE)

    @pytest.mark.asyncio
    async def test_manifest_records_tracking(self, client, app):
        upload = await _upload(client)
        release_id = upload.json()["release"]["id"]

        await client.get("/api/manifest", headers=_manifest_headers(platform="ios"))
        await client.get("/api/manifest", headers=_manifest_headers(platform="android"))
        await client.get("/api/manifest", headers=_manifest_headers(platform="ios"))

        resp = await client.get("/api/tracking", params={"releaseId": release_id})
        assert resp.json() == {"trackings": [
            {"platform": "android", "count": 1},
            {"platform": "ios", "count": 2},
        ]}
        overall = await client.get("/api/tracking")
        assert overall.json()["trackings"] == resp.json()["trackings"]

    @pytest.mark.asyncio
    async def test_already_running_latest_update(self, client, app):
        await _upload(client)

        resp = await client.get(
            "/api/manifest",
            headers=_manifest_headers(**{"expo-current-update-id": UPDATE_ID.upper()}),
        )

        assert resp.status_code == 200
        assert resp.json() == {"directive": {"type": "noUpdateAvailable"}}
        assert await app.state.deps.release_store.get_tracking_metrics_for_all_releases() == []

    @pytest.mark.asyncio
    async def test_no_update_protocol_1(self, client):
        before = _checks("android", "no_update")
        resp = await client.get("/api/manifest", headers=_manifest_headers(platform="android", runtime_version="9.9.9"))
        assert resp.status_code == 200
        assert resp.json() == {"directive": {"type": "noUpdateAvailable"}}
        assert _checks("android", "no_update") == before + 1

    @pytest.mark.asyncio
    async def test_no_update_protocol_0(self, client):
        resp = await client.get("/api/manifest", headers=_manifest_headers(protocol="0", runtime_version="9.9.9"))
        assert resp.status_code == 404
        assert resp.json()["code"] == "no_update_available"

    @pytest.mark.asyncio
    async def test_rollback_directive(self, client):
        await _upload(client, archive=build_bundle(rollback=True))

        resp = await client.get("/api/manifest", headers=_manifest_headers())

        assert resp.status_code == 200
        directive = resp.json()["directive"]
        assert directive["type"] == "rollBackToEmbedded"
        assert directive["parameters"]["commitTime"]

    @pytest.mark.asyncio
    async def test_rollback_unsupported_on_protocol_0(self, client):
        await _upload(client, archive=build_bundle(rollback=True))
        resp = await client.get("/api/manifest", headers=_manifest_headers(protocol="0"))
        assert resp.status_code == 404
        assert resp.json()["code"] == "rollback_not_supported"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "headers, field",
        [
            ({"expo-runtime-version": "1.0.0"}, "platform"),
            ({"expo-platform": "ios"}, "runtimeVersion"),
            ({"expo-platform": "web", "expo-runtime-version": "1.0.0"}, "platform"),
            ({"expo-platform": "ios", "expo-runtime-version": "1.0.0", "expo-protocol-version": "2"},
             "expo-protocol-version"),
        ],
    )
    async def test_invalid_requests(self, client, headers, field):
        resp = await client.get("/api/manifest", headers=headers)
        assert resp.status_code == 400
        assert field in resp.json()["fields"]

    @pytest.mark.asyncio
    async def test_platform_missing_from_metadata(self, client):
        metadata = {"fileMetadata": {"ios": {"bundle": IOS_BUNDLE_PATH, "assets": []}}}
        await _upload(client, archive=build_bundle(metadata=metadata_bytes(metadata)))
        resp = await client.get("/api/manifest", headers=_manifest_headers(platform="android"))
        assert resp.status_code == 404
        assert resp.json()["code"] == "metadata_missing"


class TestAssets:
    @pytest.mark.asyncio
    async def test_serves_launch_asset(self, client):
        await _upload(client)
        resp = await client.get(
            "/api/assets",
            params={"asset": IOS_BUNDLE_PATH, "runtimeVersion": "1.0.0", "platform": "ios"},
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/javascript")

    @pytest.mark.asyncio
    async def test_serves_image_asset(self, client):
        await _upload(client)
        resp = await client.get(
            "/api/assets",
            params={"asset": ICON_PATH, "runtimeVersion": "1.0.0", "platform": "android"},
        )
        assert resp.status_code == 200
        assert resp.content == ICON
        assert resp.headers["content-type"] == "image/png"

    @pytest.mark.asyncio
    async def test_missing_asset(self, client):
        await _upload(client)
        resp = await client.get(
            "/api/assets",
            params={"asset": "assets/nope", "runtimeVersion": "1.0.0", "platform": "ios"},
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "asset_not_found"

    @pytest.mark.asyncio
    async def test_missing_parameters(self, client):
        resp = await client.get("/api/assets", params={"asset": ICON_PATH})
        assert resp.status_code == 400
        assert resp.json()["fields"] == ["runtimeVersion", "platform"]

    @pytest.mark.asyncio
    async def test_unknown_runtime_version(self, client):
        resp = await client.get(
            "/api/assets",
            params={"asset": ICON_PATH, "runtimeVersion": "9.9.9", "platform": "ios"},
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "no_update_available"


class TestReleases:
    @pytest.mark.asyncio
    async def test_list_releases(self, client):
        await _upload(client)
        resp = await client.get("/api/releases")
        assert resp.status_code == 200
        releases = resp.json()["releases"]
        assert len(releases) == 1
        assert releases[0]["path"] == "updates/1.0.0/20240601120000"
        assert releases[0]["commitHash"] == "abc123"
        assert releases[0]["version"] == "1.2.0"

    @pytest.mark.asyncio
    async def test_rollback_republishes(self, client):
        first = await _upload(client, commitHash="aaa111")
        second = await _upload(
            client,
            archive=build_bundle(metadata=metadata_bytes({**METADATA, "version": 1})),
            commitHash="bbb222",
        )
        assert second.json()["release"]["updateId"] != first.json()["release"]["updateId"]

        resp = await client.post("/api/rollback", json={"path": first.json()["path"]})

        assert resp.status_code == 200
        release = resp.json()["release"]
        assert release["commitMessage"] == "Rollback to aaa111"
        assert release["updateId"] == first.json()["release"]["updateId"]

        manifest = await client.get("/api/manifest", headers=_manifest_headers())
        assert manifest.json()["manifest"]["id"] == first.json()["release"]["updateId"]

    @pytest.mark.asyncio
    async def test_rollback_unknown_path(self, client):
        resp = await client.post("/api/rollback", json={"path": "updates/1.0.0/19990101000000"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_rollback_requires_path(self, client):
        resp = await client.post("/api/rollback", json={})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
        assert resp.json()["fields"] == ["path"]

    @pytest.mark.asyncio
    async def test_tracking_rejects_malformed_release_id(self, client):
        resp = await client.get("/api/tracking", params={"releaseId": "not-a-uuid"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
        assert resp.json()["fields"] == ["releaseId"]

    @pytest.mark.asyncio
    async def test_tracking_for_unknown_release_is_empty(self, client):
        resp = await client.get("/api/tracking", params={"releaseId": "6f1c2a9e-3b7d-4e2f-9a51-0c8d7e6b5a43"})
        assert resp.status_code == 200
        assert resp.json() == {"trackings": []}


class TestSameSecondPublish:
    @pytest_asyncio.fixture
    async def frozen_client(self, tmp_path):
        app = create_app(
            ServerSettings(log_format="console"),
            storage=LocalStorage(tmp_path / "objects"),
            release_store=InMemoryReleaseStore(),
            clock=lambda: datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc),
        )
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c

    @pytest.mark.asyncio
    async def test_second_upload_in_same_second_conflicts(self, frozen_client):
        first = await _upload(frozen_client)
        second = await _upload(frozen_client, version="1.3.0")

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["code"] == "bundle_conflict"
        releases = (await frozen_client.get("/api/releases")).json()["releases"]
        assert [r["version"] for r in releases] == ["1.2.0"]


class TestRequestLogging:
    @pytest.mark.asyncio
    async def test_manifest_logs_carry_request_and_update_context(self, client, caplog):
        await _upload(client)
        caplog.set_level(logging.INFO)

        await client.get("/api/manifest", headers=_manifest_headers(**{"X-Request-ID": "device-req-0002"}))

        events = {r.msg["event"]: r.msg for r in caplog.records if isinstance(r.msg, dict)}
        served = events["manifest_served"]
        assert served["request_id"] == "device-req-0002"
        assert served["runtime_version"] == "1.0.0"
        assert served["platform"] == "ios"
        completed = events["request_completed"]
        assert completed["route"] == "/api/manifest"
        assert completed["request_id"] == "device-req-0002"
        assert "runtime_version" not in completed
