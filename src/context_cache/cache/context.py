"""Search context: the caller-owned input to the cache engine.

A :class:`SearchContext` describes one inbound activity search. Everything
except the location and date is optional; missing weather, holiday or age
data simply produces absent feature-vector fields later on.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from context_cache.errors import IncompleteContextError

logger = logging.getLogger(__name__)


def parse_date(value: Any) -> date | None:
    """Parse a ``date``, ``datetime`` or ISO ``YYYY-MM-DD`` string.

    Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            logger.debug(f"Ignoring unparseable date {value!r}")
    return None


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class WeatherSummary:
    """Forecast summary for the target date. Every field is nullable.

    Attributes:
        temperature_min_c: Daily minimum temperature.
        temperature_max_c: Daily maximum temperature.
        precipitation_probability: Chance of precipitation in percent (0-100).
        wind_speed_kmh: Maximum wind speed.
    """

    temperature_min_c: float | None = None
    temperature_max_c: float | None = None
    precipitation_probability: float | None = None
    wind_speed_kmh: float | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WeatherSummary:
        return cls(
            temperature_min_c=_optional_float(data.get("temperature_min_c")),
            temperature_max_c=_optional_float(data.get("temperature_max_c")),
            precipitation_probability=_optional_float(
                data.get(
                    "precipitation_probability",
                    data.get("precipitation_probability_percent"),
                )
            ),
            wind_speed_kmh=_optional_float(
                data.get("wind_speed_kmh", data.get("wind_speed_max_kmh"))
            ),
        )


@dataclass(frozen=True)
class Holiday:
    """A public holiday or festival near the target date.

    Multi-day festivals carry an ``end_date``; single days leave it unset.
    """

    name: str
    date: date
    end_date: date | None = None

    @property
    def span(self) -> tuple[date, date]:
        """Inclusive ``(first, last)`` days of the holiday."""
        end = self.end_date or self.date
        return (min(self.date, end), max(self.date, end))

    @classmethod
    def from_value(cls, value: Any) -> Holiday | None:
        if isinstance(value, Holiday):
            return value
        if isinstance(value, Mapping):
            day = parse_date(value.get("date") or value.get("start_date"))
            if day is None:
                return None
            end = parse_date(value.get("end_date"))
            if end == day:
                end = None
            return cls(name=str(value.get("name", "")), date=day, end_date=end)
        return None


@dataclass(frozen=True)
class ContextSummary:
    """The part of a cached context shown to a user to explain a match."""

    location: str
    date: date | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "date": self.date.isoformat() if self.date else None,
        }


@dataclass(frozen=True)
class SearchContext:
    """One activity search request.

    Attributes:
        location: Free-text place name, e.g. ``"Madrid, Spain"``.
        latitude: Geocoded latitude, if known.
        longitude: Geocoded longitude, if known.
        date: Target date of the outing.
        duration_hours: Requested outing length.
        ages: Ages of the participating children.
        weather: Forecast for the target date.
        holidays: Holidays/festivals near the date. ``None`` means unknown,
            an empty tuple means none are known to occur.
        modifiers: Free-text instructions that change the result.

    Example:
        >>> ctx = SearchContext(
        ...     location="Madrid, Spain",
        ...     latitude=40.4168,
        ...     longitude=-3.7038,
        ...     date=date(2025, 9, 20),
        ...     ages=(6, 8),
        ... )
    """

    location: str
    latitude: float | None = None
    longitude: float | None = None
    date: date | None = None
    duration_hours: float | None = None
    ages: tuple[int, ...] = ()
    weather: WeatherSummary | None = None
    holidays: tuple[Holiday, ...] | None = None
    modifiers: tuple[str, ...] = field(default=())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SearchContext:
        """Build a context from the request layer's loose mapping.

        Unknown keys are ignored and unparseable optional values become
        absent. Identity fields are not checked here; see
        :meth:`require_identity`.
        """
        ages_raw = data.get("ages", data.get("kids_ages")) or ()
        ages: list[int] = []
        for age in ages_raw:
            value = _optional_float(age)
            if value is not None and value >= 0:
                ages.append(int(value))

        weather_raw = data.get("weather")
        weather = None
        if isinstance(weather_raw, WeatherSummary):
            weather = weather_raw
        elif isinstance(weather_raw, Mapping):
            weather = WeatherSummary.from_dict(weather_raw)

        holidays: tuple[Holiday, ...] | None = None
        holidays_raw = data.get("holidays", data.get("nearby_festivals"))
        if holidays_raw is not None:
            parsed = (Holiday.from_value(h) for h in holidays_raw)
            holidays = tuple(h for h in parsed if h is not None)

        modifiers = list(data.get("modifiers") or ())
        extra = data.get("extra_instructions")
        if extra:
            modifiers.append(str(extra))

        return cls(
            location=str(data.get("location") or ""),
            latitude=_optional_float(data.get("latitude")),
            longitude=_optional_float(data.get("longitude")),
            date=parse_date(data.get("date")),
            duration_hours=_optional_float(data.get("duration_hours")),
            ages=tuple(ages),
            weather=weather,
            holidays=holidays,
            modifiers=tuple(str(m) for m in modifiers if str(m).strip()),
        )

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def require_identity(self) -> None:
        """Raise :class:`IncompleteContextError` if the request cannot be keyed."""
        missing = []
        if not self.location or not self.location.strip():
            missing.append("location")
        if self.date is None:
            missing.append("date")
        if missing:
            raise IncompleteContextError(
                f"Search context is missing {', '.join(missing)}",
                missing=missing,
            )

    def summary(self) -> ContextSummary:
        return ContextSummary(location=self.location, date=self.date)

    def holiday_spans(self) -> Iterable[tuple[date, date]]:
        return (h.span for h in self.holidays or ())
