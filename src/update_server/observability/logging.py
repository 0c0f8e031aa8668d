"""Structured logging for the update server.

Log entries are structlog events rendered through the stdlib root logger.
Request-scoped fields live in structlog's context variables:

- ``request_id``, ``method`` and ``route`` are bound by
  :class:`~update_server.observability.middleware.RequestContextMiddleware`
  for the whole request.
- ``runtime_version`` and ``platform`` are bound by the manifest and asset
  handlers through :func:`bind_update_context`, so the lines written while
  resolving one device's update can be filtered together.

Usage::

    configure_logging(level=settings.log_level, json_output=True)
    logger = get_logger(__name__)
    with bind_update_context(runtime_version="1.0.0", platform="ios"):
        logger.info("manifest_served", update_id=update_id)
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.contextvars import bound_contextvars

# Client libraries that log every HTTP call at INFO.
NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "botocore",
    "s3fs",
    "google.auth",
    "urllib3",
)

_SHARED_PROCESSORS: list = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


class _UpdateServerHandler(logging.StreamHandler):
    """Marks the handler installed by :func:`configure_logging`."""


def configure_logging(*, level: str = "INFO", json_output: bool = True) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Safe to call once per app instance: an earlier handler installed here is
    replaced, handlers added by others (pytest, uvicorn) are left in place.
    """
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = _UpdateServerHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    for existing in [h for h in root.handlers if isinstance(h, _UpdateServerHandler)]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_update_context(
    *,
    runtime_version: str | None = None,
    platform: str | None = None,
    protocol_version: int | None = None,
):
    """Context manager binding the device's update request to every log line.

    Fields that are ``None`` are not bound.
    """
    fields = {
        "runtime_version": runtime_version,
        "platform": platform,
        "protocol_version": protocol_version,
    }
    return bound_contextvars(**{k: v for k, v in fields.items() if v is not None})


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given name."""
    return structlog.get_logger(name)
