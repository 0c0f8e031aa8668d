"""HTTP middleware for request correlation, metrics and access logs.

``RequestContextMiddleware`` must wrap ``RequestTelemetryMiddleware`` so the
access log line carries the request id.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from structlog.contextvars import bound_contextvars

from .logging import get_logger
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
UNMATCHED_ROUTE = "unmatched"

# Accepted incoming ids; anything else is replaced.
_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")


def route_label(request: Request) -> str:
    """Path template of the route that served *request*.

    Unknown URLs share a single label so scanners cannot grow the metric
    series without bound.
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Accept or mint a request id and bind it to every log line of the request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())

        with bound_contextvars(request_id=request_id, method=request.method):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestTelemetryMiddleware(BaseHTTPMiddleware):
    """Prometheus request metrics plus one ``request_completed`` log line.

    Both are keyed by the route template, not the raw path.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        method = request.method
        HTTP_REQUESTS_IN_FLIGHT.inc()
        start = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            elapsed = time.perf_counter() - start
            HTTP_REQUESTS_IN_FLIGHT.dec()
            route = route_label(request)
            HTTP_REQUESTS_TOTAL.labels(method=method, route=route, status=status).inc()
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, route=route).observe(elapsed)
            logger.info(
                "request_completed",
                route=route,
                path=request.url.path,
                status=int(status),
                duration_ms=round(elapsed * 1000, 2),
            )
