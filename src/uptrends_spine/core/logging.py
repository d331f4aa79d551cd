"""
Structured logging for uptrends-spine.

Manifesto:
    A poller that runs unattended for weeks is only debuggable through its
    logs. Every cycle gets a ``cycle_id`` bound into the logging context so
    the request, response and record lines of one tick can be correlated.

    - **Structures:** JSON output for log aggregation
    - **Correlates:** cycle_id propagation through contextvars
    - **Never leaks:** passwords and Authorization headers are masked

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="uptrends-spine")
             ↓
        structlog processor chain:
          1. TimeStamper (iso)
          2. merge_contextvars (cycle_id, operation)
          3. add_log_level / add_logger_name
          4. service metadata
          5. redact secrets
          6. ECS field names (JSON only)
          7. JSONRenderer | ConsoleRenderer
             ↓
        stdlib logging on stderr (stdout carries the records)

    httpx, httpcore and apscheduler log every request and job run at INFO;
    they are raised to WARNING unless the level is DEBUG.

Examples:
    >>> from uptrends_spine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("cycle.complete", records=3)

Tags:
    logging, structlog, observability, json-logging, uptrends-spine
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

REDACTED = "***"
SECRET_KEYS = frozenset({"password", "authorization", "auth", "credentials"})
NOISY_LIBRARIES = ("httpx", "httpcore", "apscheduler")


def _service_metadata(service: str) -> Processor:
    def processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service.name", service)
        return event_dict

    return processor


def _mask(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in SECRET_KEYS else v for k, v in value.items()
        }
    return value


def redact_secrets(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask secret keys at the top level and one level down (e.g. headers)."""
    for key in list(event_dict):
        if key.lower() in SECRET_KEYS:
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _mask(event_dict[key])
    return event_dict


def _ecs_field_names(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "uptrends-spine",
    add_timestamp: bool = True,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: True for JSON, False for console, None for JSON unless stderr is a tty
        service: Reported as ``service.name`` on every line
        add_timestamp: Include an ISO timestamp
    """
    numeric_level = getattr(logging, level.upper())
    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _service_metadata(service),
        redact_secrets,
    ]
    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            _ecs_field_names,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level, force=True)
    library_level = numeric_level if numeric_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind keys for the duration of a block, restoring any outer values on exit.

    Example:
        with LogContext(cycle_id="abc123"):
            logger.info("cycle.started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._tokens: Mapping[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *args) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "redact_secrets",
    "LogContext",
]
