"""
structlog setup for strata.

Modules log dotted event names with key/value fields::

    logger = get_logger(__name__)
    logger.info("backup.created", table="team", filename="team-1700000000000", rows=3)

Output goes to stderr; stdout is left to the CLI. When stderr is not a
terminal the renderer is JSON with ECS field names (``@timestamp``,
``log.level``, ``service.name``), otherwise a coloured console line.

Processor chain::

    TimeStamper(iso) -> merge_contextvars -> add_log_level -> set_exc_info
        -> service name -> [ECS renames] -> JSONRenderer | ConsoleRenderer

Tags:
    logging, structlog, ecs, strata-core

Doc-Types:
    api-reference
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_ECS_RENAMES = {"timestamp": "@timestamp", "level": "log.level"}


def _service_name(service: str) -> Processor:
    def add(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service.name", service)
        return event_dict

    return add


def _ecs_renames(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    for key, ecs_key in _ECS_RENAMES.items():
        if key in event_dict:
            event_dict[ecs_key] = event_dict.pop(key)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "strata",
) -> None:
    """(Re)configure structlog for the whole process.

    Args:
        level: Minimum level name, e.g. ``"DEBUG"`` or ``"WARNING"``
        json_format: Force JSON (True) or console (False); ``None`` picks JSON off a TTY
        service: Value of the ``service.name`` field
    """
    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.dev.set_exc_info,
        _service_name(service),
    ]
    if json_format:
        processors += [_ecs_renames, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every later event in this task/thread."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Fields bound for the duration of a ``with`` / ``async with`` block.

    Example:
        async with LogContext(migration="1.2.0"):
            logger.info("migration.started")
    """

    def __init__(self, **fields: Any):
        self._fields = fields

    def __enter__(self) -> LogContext:
        bind_context(**self._fields)
        return self

    def __exit__(self, *exc: object) -> None:
        unbind_context(*self._fields)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc: object) -> None:
        self.__exit__(*exc)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "LogContext",
]
