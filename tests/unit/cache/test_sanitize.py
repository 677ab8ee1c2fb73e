"""Tests for numeric sanitization of persisted data."""

from __future__ import annotations

from decimal import Decimal

import pytest

from context_cache.cache.persistence import UndecodableValue
from context_cache.cache.sanitize import (
    sanitize_int,
    sanitize_number,
    sanitize_optional_number,
    sanitize_record,
)
from context_cache.errors import MalformedEntryError


class DriverInteger:
    """Mimics a graph driver's 64-bit integer wrapper."""

    def __init__(self, value: int) -> None:
        self.value = value

    def to_number(self) -> int:
        return self.value


class TestSanitizeNumber:
    """Tests for sanitize_number."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (3, 3.0),
            (2.5, 2.5),
            (Decimal("21.5"), 21.5),
            (" 21.5 ", 21.5),
            ({"low": 42, "high": 0}, 42.0),
            ({"low": 0, "high": 1}, float(2**32)),
            (DriverInteger(7), 7.0),
        ],
    )
    def test_accepted_representations(self, value, expected):
        result = sanitize_number(value, "field")
        assert result == expected
        assert isinstance(result, float)

    @pytest.mark.parametrize(
        "value",
        [None, True, "abc", float("nan"), float("inf"), "Infinity", {"low": "1", "high": 0}, [1]],
    )
    def test_rejected_values(self, value):
        with pytest.raises(MalformedEntryError) as exc_info:
            sanitize_number(value, "weather.temperature_mid")
        assert exc_info.value.field == "weather.temperature_mid"

    def test_optional_passes_none(self):
        assert sanitize_optional_number(None) is None
        assert sanitize_optional_number("1") == 1.0

    def test_int(self):
        assert sanitize_int("12") == 12
        with pytest.raises(MalformedEntryError):
            sanitize_int(12.5)


class TestSanitizeRecord:
    """Tests for sanitize_record."""

    def test_normalizes_bookkeeping(self):
        clean = sanitize_record(
            {"key": "k", "created_at": "100", "access_count": {"low": 2, "high": 0}}
        )

        assert clean["created_at"] == 100.0
        assert clean["last_accessed"] == 100.0
        assert clean["access_count"] == 2

    def test_missing_key(self):
        with pytest.raises(MalformedEntryError):
            sanitize_record({"created_at": 1.0})

    def test_error_names_the_key(self):
        with pytest.raises(MalformedEntryError) as exc_info:
            sanitize_record({"key": "k1", "created_at": None})

        assert exc_info.value.key == "k1"
        assert "k1" in str(exc_info.value)

    def test_undecodable_column_rejected(self):
        record = {
            "key": "k1",
            "payload": UndecodableValue("payload", "{not json", "Expecting property name"),
            "created_at": 1.0,
        }

        with pytest.raises(MalformedEntryError) as exc_info:
            sanitize_record(record)

        assert exc_info.value.key == "k1"
        assert exc_info.value.field == "payload"
