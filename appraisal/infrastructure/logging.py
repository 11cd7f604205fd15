"""
Logging for the performance appraisal service.

Handlers are built from :class:`~appraisal.infrastructure.config.LoggingConfig`
(``LOG_*`` variables, with per-environment defaults picked by
``APP_ENVIRONMENT``). Records can carry the workflow context of the current
call (assessment, actor, grader role, operation, request) so a transition can
be followed across the service, repository and notification layers.
"""

from __future__ import annotations

import json
import logging
import logging.config
import time
from collections.abc import Callable
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from types import TracebackType
from typing import Any, ParamSpec, TypeVar

from .config import LoggingConfig, get_settings

P = ParamSpec("P")
R = TypeVar("R")

ROOT_LOGGER = "appraisal"
CONTEXT_KEYS = ("assessment_id", "actor", "role", "operation", "request_id")

# Third-party loggers kept at WARNING whatever the service level is.
QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")

_context: ContextVar[dict[str, Any]] = ContextVar("appraisal_log_context", default={})


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with any workflow context attached."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(
            {key: getattr(record, key) for key in CONTEXT_KEYS if hasattr(record, key)}
        )
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, ensure_ascii=False, default=str)


class ContextFilter(logging.Filter):
    """
    Copies the current workflow context onto every record.

    The context lives in a ``ContextVar``, so concurrent requests served on
    different threads or tasks never see each other's values.
    """

    @property
    def context(self) -> dict[str, Any]:
        return dict(_context.get())

    def set_context(self, **kwargs: Any) -> Token:
        return _context.set({**_context.get(), **kwargs})

    def clear_context(self) -> None:
        _context.set({})

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _context.get().items():
            setattr(record, key, value)
        return True


context_filter = ContextFilter()


def _handlers(config: LoggingConfig) -> dict[str, dict[str, Any]]:
    formatter = "structured" if config.structured else "plain"
    handlers: dict[str, dict[str, Any]] = {}
    if config.console_enabled:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "formatter": formatter,
            "filters": ["context"],
            "stream": "ext://sys.stdout",
        }
    if config.file_path:
        Path(config.file_path).parent.mkdir(parents=True, exist_ok=True)
        # Files are always JSON so they can be shipped and queried.
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "structured",
            "filters": ["context"],
            "filename": config.file_path,
            "maxBytes": config.max_bytes,
            "backupCount": config.backup_count,
            "encoding": "utf-8",
        }
    return handlers or {"null": {"class": "logging.NullHandler"}}


def setup_logging(config: LoggingConfig | None = None) -> None:
    """
    Install handlers for the ``appraisal`` logger tree.

    Args:
        config: logging section to apply; defaults to ``get_settings().logging``

    Example:
        >>> setup_logging(LoggingConfig(level="DEBUG", file_path="./logs/appraisal.log"))
    """
    config = config or get_settings().logging
    handlers = _handlers(config)
    names = list(handlers)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {"()": StructuredFormatter},
                "plain": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "filters": {"context": {"()": lambda: context_filter}},
            "handlers": handlers,
            "loggers": {
                ROOT_LOGGER: {"level": config.level, "handlers": names, "propagate": False},
                **{
                    name: {"level": "WARNING", "handlers": names, "propagate": False}
                    for name in QUIET_LOGGERS
                },
            },
        }
    )


def auto_configure_logging() -> None:
    """Apply the logging section of the current settings."""
    settings = get_settings()
    setup_logging(settings.logging)
    get_logger(__name__).info(
        f"Logging configured for {settings.app.environment} at {settings.logging.level}"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Logger under the ``appraisal`` namespace.

    Example:
        >>> get_logger("domain.workflow").name
        'appraisal.domain.workflow'
    """
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def set_context(**kwargs: Any) -> None:
    """
    Attach values to every record logged from the current context.

    Example:
        >>> set_context(assessment_id=12, actor="E001")
    """
    context_filter.set_context(**kwargs)


def clear_context() -> None:
    context_filter.clear_context()


class LogContext:
    """Adds context for the duration of a ``with`` block, then restores the previous one."""

    def __init__(self, **kwargs: Any):
        self.values = kwargs
        self._token: Token | None = None

    def __enter__(self) -> LogContext:
        self._token = context_filter.set_context(**self.values)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


def _traced(
    operation: str,
    logger_name: str | None,
    level: int,
    context_value: str,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            log = get_logger(logger_name or func.__module__)
            started = time.perf_counter()
            with LogContext(operation=context_value):
                log.log(level, f"Starting {operation}")
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    elapsed = time.perf_counter() - started
                    log.error(f"{operation} failed after {elapsed:.3f}s: {e}", exc_info=True)
                    raise
                elapsed = time.perf_counter() - started
                log.log(level, f"Finished {operation} in {elapsed:.3f}s")
                return result

        return wrapper

    return decorator


def log_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log start, completion and failure of a service-level operation at INFO.

    Example:
        >>> @log_operation("approve_assessment")
        ... def approve(...):
        ...     pass
    """
    return _traced(operation, None, logging.INFO, operation)


def log_database_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Same as :func:`log_operation` for repository calls, at DEBUG under ``appraisal.database``."""
    return _traced(operation, "database", logging.DEBUG, f"db_{operation}")


if not logging.getLogger(ROOT_LOGGER).handlers:
    auto_configure_logging()
