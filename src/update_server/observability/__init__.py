"""Observability for the update server: structlog logging, Prometheus metrics
and the request middleware that ties them to each HTTP request.

Wiring::

    configure_logging(level=settings.log_level, json_output=True)
    app.add_middleware(RequestTelemetryMiddleware)
    app.add_middleware(RequestContextMiddleware)  # outermost
"""

from .logging import bind_update_context, configure_logging, get_logger
from .metrics import metrics_text

__all__ = [
    "bind_update_context",
    "configure_logging",
    "get_logger",
    "metrics_text",
]
