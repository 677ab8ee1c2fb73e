"""Feature vectors: the comparable form of a search context.

:class:`FeatureVectorBuilder` turns a :class:`SearchContext` into a
:class:`FeatureVector` made of four independent sub-vectors (location,
weather, temporal, demographic). Any leaf may be ``None`` when the source
data was unavailable; the scorer skips absent leaves instead of treating
them as a mismatch.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import MAXYEAR, MINYEAR, date, timedelta
from typing import Any

from context_cache.cache.context import SearchContext
from context_cache.cache.sanitize import sanitize_int, sanitize_optional_number
from context_cache.config import DEFAULT_CONFIG, CacheConfig
from context_cache.errors import MalformedEntryError

logger = logging.getLogger(__name__)

DRY = "dry"
LIGHT = "light"
HEAVY = "heavy"
PRECIPITATION_BUCKETS = (DRY, LIGHT, HEAVY)

SEASONS = ("winter", "spring", "summer", "autumn")
_MONTH_TO_SEASON = {
    12: "winter", 1: "winter", 2: "winter",
    3: "spring", 4: "spring", 5: "spring",
    6: "summer", 7: "summer", 8: "summer",
    9: "autumn", 10: "autumn", 11: "autumn",
}

# (name, min_age, max_age), inclusive
AGE_BRACKETS = (
    ("toddler", 0, 2),
    ("preschool", 3, 5),
    ("school_age", 6, 12),
    ("teen", 13, 17),
)

SHORT = "short"
HALF_DAY = "half_day"
FULL_DAY = "full_day"
DURATION_BUCKETS = (SHORT, HALF_DAY, FULL_DAY)

# (name, max |latitude|), first match wins
PLACE_CLASS_RULES = (
    ("tropical", 23.5),
    ("temperate", 66.5),
    ("polar", 90.0),
)


# -----------------------------------------------------------------------------
# Sub-vectors
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LocationFeatures:
    latitude: float | None = None
    longitude: float | None = None
    place_class: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class WeatherFeatures:
    temperature_mid: float | None = None
    temperature_spread: float | None = None
    precipitation_bucket: str | None = None
    outdoor_suitability: float | None = None
    wind_speed_kmh: float | None = None


@dataclass(frozen=True)
class TemporalFeatures:
    day_of_year: int | None = None
    season: str | None = None
    holiday_proximity: float | None = None
    is_weekend: bool | None = None
    year: int | None = None

    @property
    def calendar_date(self) -> date | None:
        """The target date, when both the year and the day of year are known."""
        if self.year is None or self.day_of_year is None:
            return None
        return date(self.year, 1, 1) + timedelta(days=self.day_of_year - 1)


@dataclass(frozen=True)
class DemographicFeatures:
    age_brackets: frozenset[str] | None = None
    duration_bucket: str | None = None


@dataclass(frozen=True)
class FeatureVector:
    """Immutable, comparable representation of a search context.

    Example:
        >>> vector = FeatureVectorBuilder().build(context)
        >>> vector.temporal.season
        'autumn'
    """

    location: LocationFeatures = field(default_factory=LocationFeatures)
    weather: WeatherFeatures = field(default_factory=WeatherFeatures)
    temporal: TemporalFeatures = field(default_factory=TemporalFeatures)
    demographic: DemographicFeatures = field(default_factory=DemographicFeatures)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        data = asdict(self)
        brackets = self.demographic.age_brackets
        data["demographic"]["age_brackets"] = sorted(brackets) if brackets is not None else None
        return data

    @classmethod
    def from_dict(cls, data: Any, key: str | None = None) -> FeatureVector:
        """Rebuild a vector from :meth:`to_dict` output read back from storage.

        All numeric leaves go through the sanitizer.

        Raises:
            MalformedEntryError: If the structure or any field is unusable.
        """
        if not isinstance(data, dict):
            raise MalformedEntryError(
                f"Feature vector must be a mapping, got {type(data).__name__}", key=key
            )
        try:
            loc = data.get("location") or {}
            wea = data.get("weather") or {}
            tem = data.get("temporal") or {}
            dem = data.get("demographic") or {}

            day = tem.get("day_of_year")
            year = tem.get("year")
            brackets = dem.get("age_brackets")

            vector = cls(
                location=LocationFeatures(
                    latitude=sanitize_optional_number(loc.get("latitude"), "location.latitude"),
                    longitude=sanitize_optional_number(loc.get("longitude"), "location.longitude"),
                    place_class=_optional_choice(
                        loc.get("place_class"), None, "location.place_class"
                    ),
                ),
                weather=WeatherFeatures(
                    temperature_mid=sanitize_optional_number(
                        wea.get("temperature_mid"), "weather.temperature_mid"
                    ),
                    temperature_spread=sanitize_optional_number(
                        wea.get("temperature_spread"), "weather.temperature_spread"
                    ),
                    precipitation_bucket=_optional_choice(
                        wea.get("precipitation_bucket"),
                        PRECIPITATION_BUCKETS,
                        "weather.precipitation_bucket",
                    ),
                    outdoor_suitability=sanitize_optional_number(
                        wea.get("outdoor_suitability"), "weather.outdoor_suitability"
                    ),
                    wind_speed_kmh=sanitize_optional_number(
                        wea.get("wind_speed_kmh"), "weather.wind_speed_kmh"
                    ),
                ),
                temporal=TemporalFeatures(
                    day_of_year=None if day is None else sanitize_int(day, "temporal.day_of_year"),
                    season=_optional_choice(tem.get("season"), SEASONS, "temporal.season"),
                    holiday_proximity=sanitize_optional_number(
                        tem.get("holiday_proximity"), "temporal.holiday_proximity"
                    ),
                    is_weekend=_optional_bool(tem.get("is_weekend"), "temporal.is_weekend"),
                    year=None if year is None else sanitize_int(year, "temporal.year"),
                ),
                demographic=DemographicFeatures(
                    age_brackets=None if brackets is None else frozenset(
                        _optional_choice(b, _BRACKET_NAMES, "demographic.age_brackets")
                        for b in brackets
                    ),
                    duration_bucket=_optional_choice(
                        dem.get("duration_bucket"), DURATION_BUCKETS, "demographic.duration_bucket"
                    ),
                ),
            )
            _check_calendar(vector.temporal)
            return vector
        except MalformedEntryError as e:
            if key is not None:
                e.key = key
                e.details["key"] = key
            raise
        except (AttributeError, TypeError) as e:
            raise MalformedEntryError(f"Malformed feature vector: {e}", key=key) from e


_BRACKET_NAMES = tuple(name for name, _, _ in AGE_BRACKETS)


def _optional_choice(value: Any, choices: tuple[str, ...] | None, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or (choices is not None and value not in choices):
        raise MalformedEntryError(f"Unexpected value for {field}: {value!r}", field=field)
    return value


def _check_calendar(temporal: TemporalFeatures) -> None:
    day = temporal.day_of_year
    if day is None:
        return
    days_in_year = 366
    if temporal.year is not None:
        if not MINYEAR < temporal.year < MAXYEAR:
            raise MalformedEntryError(
                f"Year out of range: {temporal.year}", field="temporal.year"
            )
        days_in_year = (date(temporal.year + 1, 1, 1) - date(temporal.year, 1, 1)).days
    if not 1 <= day <= days_in_year:
        raise MalformedEntryError(
            f"Day of year out of range: {day}", field="temporal.day_of_year"
        )


def _optional_bool(value: Any, field: str) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    if value in (0, 1):
        return bool(value)
    raise MalformedEntryError(f"Expected a boolean for {field}, got {value!r}", field=field)


# -----------------------------------------------------------------------------
# Derivation rules
# -----------------------------------------------------------------------------


def classify_place(latitude: float | None, longitude: float | None) -> str | None:
    """Deterministic coarse place class from the latitude band."""
    if latitude is None or longitude is None:
        return None
    for name, max_abs_latitude in PLACE_CLASS_RULES:
        if abs(latitude) <= max_abs_latitude:
            return name
    return "unknown"


def precipitation_bucket(probability: float | None) -> str | None:
    """Map a precipitation probability (percent) to dry/light/heavy."""
    if probability is None:
        return None
    if probability < 20:
        return DRY
    if probability <= 60:
        return LIGHT
    return HEAVY


def outdoor_suitability(temperature_mid: float | None, bucket: str | None) -> float | None:
    """Score how suitable the weather is for outdoor family activities."""
    if temperature_mid is None:
        return None

    score = 0.5
    if 15 <= temperature_mid <= 25:
        score += 0.3
    elif 10 <= temperature_mid <= 30:
        score += 0.1
    elif temperature_mid < 5 or temperature_mid > 35:
        score -= 0.2

    if bucket == DRY:
        score += 0.2
    elif bucket == HEAVY:
        score -= 0.3

    return max(0.0, min(1.0, score))


def season_of(day: date) -> str:
    return _MONTH_TO_SEASON[day.month]


def holiday_proximity(
    day: date, holidays: tuple[tuple[date, date], ...], window_days: int
) -> float:
    """1.0 on any day of a holiday span, decaying linearly to 0 at ``window_days`` away.

    Args:
        day: Target date.
        holidays: Inclusive ``(first, last)`` day spans.
        window_days: Distance at which proximity reaches 0.
    """
    if not holidays:
        return 0.0
    nearest = min(_days_outside(day, first, last) for first, last in holidays)
    if nearest == 0:
        return 1.0
    if window_days <= 0 or nearest >= window_days:
        return 0.0
    return 1.0 - nearest / window_days


def _days_outside(day: date, first: date, last: date) -> int:
    if day < first:
        return (first - day).days
    if day > last:
        return (day - last).days
    return 0


def age_brackets(ages: tuple[int, ...]) -> frozenset[str] | None:
    if not ages:
        return None
    return frozenset(
        name for name, low, high in AGE_BRACKETS if any(low <= age <= high for age in ages)
    )


def duration_bucket(hours: float | None) -> str | None:
    if hours is None or hours <= 0:
        return None
    if hours < 3:
        return SHORT
    if hours <= 5:
        return HALF_DAY
    return FULL_DAY


# -----------------------------------------------------------------------------
# Builder
# -----------------------------------------------------------------------------


class FeatureVectorBuilder:
    """Builds :class:`FeatureVector` instances from search contexts.

    ``build()`` never raises: missing or unusable inputs leave the
    corresponding leaves absent.

    Example:
        >>> builder = FeatureVectorBuilder(CacheConfig(holiday_window_days=5))
        >>> vector = builder.build(context)
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    def build(self, context: SearchContext) -> FeatureVector:
        return FeatureVector(
            location=self._location(context),
            weather=self._weather(context),
            temporal=self._temporal(context),
            demographic=self._demographic(context),
        )

    def _location(self, context: SearchContext) -> LocationFeatures:
        if not context.has_coordinates:
            return LocationFeatures()
        return LocationFeatures(
            latitude=context.latitude,
            longitude=context.longitude,
            place_class=classify_place(context.latitude, context.longitude),
        )

    def _weather(self, context: SearchContext) -> WeatherFeatures:
        weather = context.weather
        if weather is None:
            return WeatherFeatures()

        mid = spread = None
        if weather.temperature_min_c is not None and weather.temperature_max_c is not None:
            low = min(weather.temperature_min_c, weather.temperature_max_c)
            high = max(weather.temperature_min_c, weather.temperature_max_c)
            mid = (low + high) / 2
            spread = high - low

        bucket = precipitation_bucket(weather.precipitation_probability)
        return WeatherFeatures(
            temperature_mid=mid,
            temperature_spread=spread,
            precipitation_bucket=bucket,
            outdoor_suitability=outdoor_suitability(mid, bucket),
            wind_speed_kmh=weather.wind_speed_kmh,
        )

    def _temporal(self, context: SearchContext) -> TemporalFeatures:
        day = context.date
        if day is None:
            return TemporalFeatures()

        proximity = None
        if context.holidays is not None:
            proximity = holiday_proximity(
                day, tuple(context.holiday_spans()), self.config.holiday_window_days
            )

        return TemporalFeatures(
            day_of_year=day.timetuple().tm_yday,
            year=day.year,
            season=season_of(day),
            holiday_proximity=proximity,
            is_weekend=day.weekday() >= 5,
        )

    def _demographic(self, context: SearchContext) -> DemographicFeatures:
        return DemographicFeatures(
            age_brackets=age_brackets(context.ages),
            duration_bucket=duration_bucket(context.duration_hours),
        )


__all__ = [
    "DemographicFeatures",
    "FeatureVector",
    "FeatureVectorBuilder",
    "LocationFeatures",
    "TemporalFeatures",
    "WeatherFeatures",
    "age_brackets",
    "classify_place",
    "duration_bucket",
    "holiday_proximity",
    "outdoor_suitability",
    "precipitation_bucket",
]
