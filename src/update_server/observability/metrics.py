"""Prometheus metrics for the update server.

Usage::

    from update_server.observability.metrics import UPDATE_CHECKS_TOTAL

    UPDATE_CHECKS_TOTAL.labels(platform="ios", outcome="manifest").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "update_server_http_requests_total",
    "HTTP requests by method, route template and status code.",
    labelnames=["method", "route", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "update_server_http_request_duration_seconds",
    "HTTP request latency in seconds by route template.",
    labelnames=["method", "route"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "update_server_http_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Update distribution metrics
# ---------------------------------------------------------------------------

UPDATE_CHECKS_TOTAL = Counter(
    "update_server_update_checks_total",
    "Update checks by platform and outcome (manifest, rollback, no_update).",
    labelnames=["platform", "outcome"],
    registry=REGISTRY,
)

BUNDLE_UPLOADS_TOTAL = Counter(
    "update_server_bundle_uploads_total",
    "Bundle ingestion attempts by outcome.",
    labelnames=["outcome"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
