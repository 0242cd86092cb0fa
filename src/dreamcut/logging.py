"""Structured logging for the API, the Celery worker and the CLI."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import UUID

import structlog

from dreamcut.config import settings

_HANDLER_MARK = "_dreamcut_handler"

# Third-party loggers that drown out pipeline events at INFO
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "celery": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
}


def _stamp_role(role: str) -> Any:
    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("role", role)
        return event_dict

    return processor


def setup_logging(role: str = "api", level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        role: Process role stamped on every event (api, worker, cli).
        level: Log level override; defaults to ``settings.log_level``.
        fmt: ``json`` or ``console``; defaults to ``settings.log_format``.
    """
    fmt = fmt or settings.log_format
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _stamp_role(role),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    setattr(handler, _HANDLER_MARK, True)

    root_logger = logging.getLogger()
    # Repeated calls replace our handler instead of stacking another one
    for existing in list(root_logger.handlers):
        if getattr(existing, _HANDLER_MARK, False):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel((level or settings.log_level).upper())

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance for a module."""
    return structlog.get_logger(name)


@contextmanager
def query_log_context(query_id: UUID | str, **extra: Any) -> Iterator[None]:
    """Bind ``query_id`` (and any extra keys) to every log event in the block."""
    with structlog.contextvars.bound_contextvars(query_id=str(query_id), **extra):
        yield
