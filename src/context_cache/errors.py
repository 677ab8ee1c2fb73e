"""Error hierarchy for context-cache.

All errors raised by this package derive from :class:`ContextCacheError`,
which carries a message, optional structured details and an optional hint
for the operator.

Only request-invalidating errors ever reach a caller:

- :class:`IncompleteContextError` - the request cannot be keyed.
- :class:`ConfigurationError` - raised at startup, never at request time.

:class:`MalformedEntryError` is contained inside the stores: the offending
entry is logged and skipped.
"""

from __future__ import annotations

import logging
from typing import Any, Literal


class ContextCacheError(Exception):
    """Base exception for all context-cache errors.

    Attributes:
        message: Human readable description.
        details: Structured data about the failure.
        hint: Suggested fix, rendered after the message.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.details:
            rendered = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            parts.append(f"({rendered})")
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ConfigurationError(ContextCacheError):
    """Invalid engine configuration (weights, thresholds, capacities)."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        value: Any = None,
        hint: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if config_key is not None:
            details["config_key"] = config_key
            details["value"] = value
        self.config_key = config_key
        super().__init__(message, details=details, hint=hint)


class IncompleteContextError(ContextCacheError):
    """A search context lacks the identity fields needed to build a key."""

    def __init__(self, message: str, *, missing: list[str] | None = None) -> None:
        self.missing = list(missing or [])
        super().__init__(
            message,
            details={"missing": self.missing} if self.missing else None,
            hint="Provide a non-empty location and a date before using the cache.",
        )


class MalformedEntryError(ContextCacheError):
    """A persisted entry could not be deserialized into a usable form."""

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        field: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if key is not None:
            details["key"] = key
        if field is not None:
            details["field"] = field
        self.key = key
        self.field = field
        super().__init__(message, details=details)


def log_exception(
    logger: logging.Logger,
    msg: str,
    exc: BaseException,
    *,
    level: Literal["debug", "info", "warning", "error"] = "warning",
    include_traceback: bool = True,
) -> None:
    """Log an exception with a consistent format.

    Args:
        logger: Logger to write to.
        msg: Context message describing what failed.
        exc: The exception being logged.
        level: Log level name.
        include_traceback: Attach the traceback to the record.
    """
    log = getattr(logger, level)
    log(
        f"{msg}: {type(exc).__name__}: {exc}",
        exc_info=exc if include_traceback else None,
    )


__all__ = [
    "ConfigurationError",
    "ContextCacheError",
    "IncompleteContextError",
    "MalformedEntryError",
    "log_exception",
]
