"""Logging helpers for context-cache.

Thin layer over the standard library ``logging`` module:

- ``configure_logging()`` installs a human or JSON formatter on the
  ``context_cache`` logger.
- ``get_logger()`` returns a :class:`StructuredLogger` that accepts keyword
  fields and forwards them as ``extra`` attributes.

Example:
    >>> from context_cache.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", format="json")
    >>> log = get_logger("context_cache.cache")
    >>> log.info("Cache hit", store="strict", similarity=1.0)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Literal

ROOT_LOGGER_NAME = "context_cache"

# Attributes every LogRecord has; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
    | {"message", "asctime", "taskName"}
)


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}


class JSONFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.levelno >= logging.ERROR:
            data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        data.update(_extra_fields(record))
        return json.dumps(data, default=str)


class HumanFormatter(logging.Formatter):
    """Readable single-line format with trailing key=value fields."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _extra_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


class StructuredLogger:
    """Logger wrapper that turns keyword arguments into record fields.

    Example:
        >>> log = StructuredLogger("context_cache.coordinator")
        >>> log.info("Recorded entry", key="madrid|2025-09-20", store="strict")
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._logger = logging.getLogger(name)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _log(self, level: int, msg: str, exc_info: Any = None, **fields: Any) -> None:
        self._logger.log(level, msg, exc_info=exc_info, extra=fields or None)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, exc_info: Any = None, **fields: Any) -> None:
        self._log(logging.ERROR, msg, exc_info=exc_info, **fields)

    def child(self, suffix: str) -> StructuredLogger:
        """Return a logger named ``<name>.<suffix>``."""
        return StructuredLogger(f"{self.name}.{suffix}")

    def __repr__(self) -> str:
        return f"StructuredLogger({self.name!r})"


def configure_logging(
    level: str | int = "INFO",
    format: Literal["human", "json"] = "human",
    stream: Any = None,
) -> logging.Logger:
    """Configure the package logger.

    Replaces any handler previously installed by this function so it can be
    called repeatedly (tests, reloads).

    Args:
        level: Log level name or number.
        format: ``"human"`` for readable lines, ``"json"`` for log shippers.
        stream: Output stream, defaults to stderr.

    Returns:
        The configured ``context_cache`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_context_cache_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter() if format == "json" else HumanFormatter())
    handler._context_cache_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger


def get_logger(name: str) -> StructuredLogger:
    """Get a :class:`StructuredLogger` for ``name``."""
    return StructuredLogger(name)


__all__ = [
    "HumanFormatter",
    "JSONFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
