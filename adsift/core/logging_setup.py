"""structlog bootstrap for the adsift API.

Events are dotted names (``pipeline.stage``, ``retry.attempt``) with the
query, upstream and counts as key/value pairs. Upstream error bodies and ad
copy end up in ``error=`` fields, so long string values are clipped before
rendering; a single HTML error page must not turn into a multi-kilobyte line.
"""

import logging
import logging.config
import sys

import structlog
from structlog.dev import ConsoleRenderer

_CONFIGURED = False

LOCAL_ENVIRONMENTS = frozenset({"", "local", "development", "dev", "test"})
MAX_VALUE_LENGTH = 300


def clip_long_values(_logger, _method_name: str, event_dict: dict) -> dict:
    """Shorten string values over MAX_VALUE_LENGTH, keeping the event name intact."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_VALUE_LENGTH:
            event_dict[key] = f"{value[:MAX_VALUE_LENGTH]}...(+{len(value) - MAX_VALUE_LENGTH})"
    return event_dict


_SHARED_PROCESSORS: list = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    clip_long_values,
]


def configure_logging(log_level: str, environment: str = "local") -> None:
    """Configure structlog and route stdlib logging (uvicorn, httpx) through it.

    Local environments get coloured console output; anything else gets one
    JSON object per line.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    # Ad copy is frequently non-ASCII; never let a console codec drop a log line.
    for stream in (sys.stdout, sys.stderr):
        if hasattr(stream, "reconfigure"):
            stream.reconfigure(encoding="utf-8", errors="backslashreplace")

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if environment.lower() in LOCAL_ENVIRONMENTS:
        renderer = ConsoleRenderer(colors=True, pad_event=40)
    else:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                    "foreign_pre_chain": _SHARED_PROCESSORS,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "structured",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": log_level,
            },
            "loggers": {
                "uvicorn.access": {"level": "INFO"},
                "uvicorn.error": {"level": "INFO"},
                # Every upstream request is already logged as fetcher.request / http.*
                "httpx": {"level": "WARNING"},
                "httpcore": {"level": "WARNING"},
            },
        }
    )

    _CONFIGURED = True
