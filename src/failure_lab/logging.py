"""Structured logging shared by the API, simulator and background jobs.

structlog renders every event. Records emitted through the standard library
(uvicorn, SQLAlchemy, OpenTelemetry) pass through the same processor chain
via :class:`structlog.stdlib.ProcessorFormatter`, so a log collector sees
one consistent format per line.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from .config import get_settings

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.TimeStamper(fmt="iso", key="ts"),
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.StackInfoRenderer(),
]


def configure_logging(level: int | str | None = None, *, json: bool | None = None) -> None:
    """Initialise stdlib logging and structlog once per process.

    Args:
        level: Log level override. Defaults to the configured level.
        json: Render JSON lines instead of console output. Defaults to the
            ``log_json`` setting.

    """
    if getattr(configure_logging, "_configured", False):
        return

    settings = get_settings()
    configured_level = _resolve_level(level or settings.log_level_value)
    render_json = settings.log_json if json is None else json
    renderer: Any = (
        structlog.processors.JSONRenderer() if render_json else structlog.dev.ConsoleRenderer(colors=False)
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        ),
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(configured_level)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(configured_level),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    configure_logging._configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a configured structlog logger.

    Args:
        name: The logger name.

    Returns:
        A configured structlog logger.

    """
    configure_logging()
    return structlog.get_logger(name)


def _resolve_level(raw_level: Any) -> int:
    if isinstance(raw_level, int):
        return raw_level
    level_names = logging.getLevelNamesMapping()
    return level_names.get(str(raw_level).upper(), logging.INFO)
