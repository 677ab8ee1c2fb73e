"""Numeric sanitization for entries read back from persistence.

Backing stores do not agree on how numbers come back: SQLite returns
``int``/``float``, JSON documents may hold numeric strings, some drivers
return ``Decimal`` and graph databases hand out 64-bit integers split into
``{"low": ..., "high": ...}`` halves. Every numeric field of a persisted
record passes through :func:`sanitize_number` before it reaches scoring
code, so arithmetic only ever sees ``float``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from context_cache.cache.persistence.base import UndecodableValue
from context_cache.errors import MalformedEntryError

_UINT32 = 2**32


def _from_split_int(value: Mapping[str, Any], field: str) -> float:
    low = value.get("low")
    high = value.get("high")
    if not isinstance(low, int) or not isinstance(high, int) or isinstance(low, bool):
        raise MalformedEntryError(f"Invalid split integer for {field}: {value!r}", field=field)
    return float(high * _UINT32 + (low % _UINT32))


def sanitize_number(value: Any, field: str = "value") -> float:
    """Normalize a persisted numeric value to a finite ``float``.

    Args:
        value: Raw value from the backing store.
        field: Field name, used in the error.

    Raises:
        MalformedEntryError: If the value is missing, boolean, non-numeric
            or not finite.

    Example:
        >>> sanitize_number("21.5")
        21.5
        >>> sanitize_number({"low": 42, "high": 0})
        42.0
    """
    if value is None or isinstance(value, bool):
        raise MalformedEntryError(f"Expected a number for {field}, got {value!r}", field=field)

    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, Decimal):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(Decimal(value.strip()))
        except (InvalidOperation, ValueError) as e:
            raise MalformedEntryError(
                f"Expected a numeric string for {field}, got {value!r}", field=field
            ) from e
    elif isinstance(value, Mapping):
        result = _from_split_int(value, field)
    elif hasattr(value, "to_number"):
        # driver-specific integer wrappers
        return sanitize_number(value.to_number(), field)
    else:
        raise MalformedEntryError(
            f"Unsupported numeric type {type(value).__name__} for {field}", field=field
        )

    if not math.isfinite(result):
        raise MalformedEntryError(f"Non-finite value for {field}: {value!r}", field=field)
    return result


def sanitize_optional_number(value: Any, field: str = "value") -> float | None:
    """Like :func:`sanitize_number` but lets ``None`` through."""
    if value is None:
        return None
    return sanitize_number(value, field)


def sanitize_int(value: Any, field: str = "value") -> int:
    """Sanitize a value that must be a whole number."""
    number = sanitize_number(value, field)
    if not number.is_integer():
        raise MalformedEntryError(f"Expected an integer for {field}, got {value!r}", field=field)
    return int(number)


def sanitize_record(record: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of a persisted record with bookkeeping fields normalized.

    Raises:
        MalformedEntryError: If the key or any bookkeeping field is unusable,
            or the backend could not decode a column.
    """
    key = record.get("key")
    if not isinstance(key, str) or not key:
        raise MalformedEntryError(f"Persisted record has no usable key: {key!r}", field="key")

    for value in record.values():
        if isinstance(value, UndecodableValue):
            raise MalformedEntryError(
                f"Persisted {value.column} could not be decoded: {value.error}",
                key=key,
                field=value.column,
            )

    clean = dict(record)
    try:
        clean["created_at"] = sanitize_number(record.get("created_at"), "created_at")
        clean["last_accessed"] = sanitize_number(
            record.get("last_accessed", record.get("created_at")), "last_accessed"
        )
        clean["access_count"] = sanitize_int(record.get("access_count", 0), "access_count")
    except MalformedEntryError as e:
        e.key = key
        e.details["key"] = key
        raise
    return clean


__all__ = [
    "sanitize_int",
    "sanitize_number",
    "sanitize_optional_number",
    "sanitize_record",
]
