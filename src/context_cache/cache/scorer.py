"""Weighted multi-dimensional similarity between feature vectors.

Scoring runs in two phases:

1. Hard disqualification: locations further apart than ``max_distance_km``
   or dates further apart than ``max_day_distance`` (circular day-of-year
   distance) are rejected outright. A check is skipped when its data is
   absent on either side.
2. Soft scoring: each dimension produces a score in [0, 1]; dimensions with
   absent data drop out and the remaining weights are renormalized.

``score(a, b)`` is symmetric and ``score(v, v) == 1.0``, including for a
vector with no data at all.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date

from context_cache.cache.features import (
    DRY,
    FULL_DAY,
    HALF_DAY,
    HEAVY,
    LIGHT,
    SHORT,
    DemographicFeatures,
    FeatureVector,
    LocationFeatures,
    TemporalFeatures,
    WeatherFeatures,
)
from context_cache.config import DEFAULT_CONFIG, CacheConfig

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DAYS_PER_YEAR = 365

DISQUALIFIED_DISTANCE = "distance"
DISQUALIFIED_TIME = "time"

# Internal weights of the weather dimension, renormalized over present leaves.
_WEATHER_LEAF_WEIGHTS = (
    ("temperature", 0.4),
    ("precipitation", 0.25),
    ("suitability", 0.15),
    ("spread", 0.1),
    ("wind", 0.1),
)

# Differences at which the spread and wind leaves reach 0.
SPREAD_SCALE_C = 30.0
WIND_SCALE_KMH = 50.0

_DURATION_COMPATIBILITY = {
    frozenset((SHORT, HALF_DAY)): 0.8,
    frozenset((HALF_DAY, FULL_DAY)): 0.6,
    frozenset((SHORT, FULL_DAY)): 0.4,
}


def haversine_km(a: LocationFeatures, b: LocationFeatures) -> float:
    """Great-circle distance between two located feature sets in km."""
    lat1, lon1 = math.radians(a.latitude), math.radians(a.longitude)
    lat2, lon2 = math.radians(b.latitude), math.radians(b.longitude)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def circular_day_distance(a: int, b: int) -> int:
    """Day-of-year distance with year wraparound, assuming a 365-day year.

    Only used when the year of either side is unknown; see
    :func:`seasonal_day_distance`.
    """
    diff = abs(a - b)
    return max(0, min(diff, DAYS_PER_YEAR - diff))


def seasonal_day_distance(a: date, b: date) -> int:
    """Days between two dates on the calendar, ignoring which year they fall in.

    Each date is moved into the years around the other and the smallest gap
    wins, so Dec 31 2024 and Jan 1 2025 are 1 day apart and leap days count.
    """
    return min(_nearest_anniversary(a, b), _nearest_anniversary(b, a))


def _nearest_anniversary(anchor: date, other: date) -> int:
    best = None
    for year in (anchor.year - 1, anchor.year, anchor.year + 1):
        try:
            shifted = other.replace(year=year)
        except ValueError:
            # Feb 29 outside a leap year
            shifted = other.replace(year=year, day=28)
        days = abs((anchor - shifted).days)
        if best is None or days < best:
            best = days
    return best


def day_distance(a: TemporalFeatures, b: TemporalFeatures) -> int | None:
    """Calendar distance between two temporal sub-vectors, None if either lacks a day."""
    if a.day_of_year is None or b.day_of_year is None:
        return None
    date_a, date_b = a.calendar_date, b.calendar_date
    if date_a is not None and date_b is not None:
        return seasonal_day_distance(date_a, date_b)
    return circular_day_distance(a.day_of_year, b.day_of_year)


@dataclass
class SimilarityScore:
    """Result of comparing two feature vectors.

    Attributes:
        score: Weighted similarity in [0, 1]. 0.0 when disqualified.
        disqualified: True when a hard check failed.
        reason: Which hard check failed (``"distance"`` or ``"time"``).
        components: Per-dimension soft scores of the dimensions that took part.
    """

    score: float
    disqualified: bool = False
    reason: str | None = None
    components: dict[str, float] = field(default_factory=dict)


class SimilarityScorer:
    """Computes similarity between feature vectors.

    Example:
        >>> scorer = SimilarityScorer()
        >>> scorer.score(vector, vector)
        1.0
        >>> result = scorer.compare(query_vector, cached_vector)
        >>> result.disqualified, result.components
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG
        self._weights = self.config.weights

    # -------------------------------------------------------------------------
    # Hard disqualification
    # -------------------------------------------------------------------------

    def disqualifies(self, a: FeatureVector, b: FeatureVector) -> str | None:
        """Return the failed hard check, or None if the pair is eligible."""
        if a.location.has_coordinates and b.location.has_coordinates:
            if haversine_km(a.location, b.location) > self.config.max_distance_km:
                return DISQUALIFIED_DISTANCE

        days = day_distance(a.temporal, b.temporal)
        if days is not None and days > self.config.max_day_distance:
            return DISQUALIFIED_TIME

        return None

    # -------------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------------

    def score(self, a: FeatureVector, b: FeatureVector) -> float:
        """Symmetric similarity in [0, 1]; 0.0 for disqualified pairs."""
        return self.compare(a, b).score

    def compare(
        self,
        query: FeatureVector,
        cached: FeatureVector,
        directed: bool = False,
    ) -> SimilarityScore:
        """Compare two vectors and report the per-dimension breakdown.

        Args:
            query: Vector of the incoming request.
            cached: Vector of the stored candidate.
            directed: Apply the reverse-substitution penalty when the cached
                result was produced for wetter weather than requested. The
                result is then no longer symmetric.
        """
        reason = self.disqualifies(query, cached)
        if reason is not None:
            return SimilarityScore(score=0.0, disqualified=True, reason=reason)

        components: dict[str, float] = {}
        location = self._location_score(query.location, cached.location)
        if location is not None:
            components["location"] = location
        weather = self._weather_score(query.weather, cached.weather, directed)
        if weather is not None:
            components["weather"] = weather
        temporal = self._temporal_score(query.temporal, cached.temporal)
        if temporal is not None:
            components["temporal"] = temporal
        demographic = self._demographic_score(query.demographic, cached.demographic)
        if demographic is not None:
            components["demographic"] = demographic

        if not components:
            # Nothing comparable: only an identical vector is a match.
            return SimilarityScore(score=1.0 if query == cached else 0.0)
        return SimilarityScore(score=_weighted_mean(components, self._weights), components=components)

    def _location_score(self, a: LocationFeatures, b: LocationFeatures) -> float | None:
        if not (a.has_coordinates and b.has_coordinates):
            return None
        distance = haversine_km(a, b)
        return _clamp(1.0 - distance / self.config.max_distance_km)

    def _weather_score(
        self, query: WeatherFeatures, cached: WeatherFeatures, directed: bool
    ) -> float | None:
        leaves: dict[str, float] = {}

        if query.temperature_mid is not None and cached.temperature_mid is not None:
            diff = abs(query.temperature_mid - cached.temperature_mid)
            ratio = diff / self.config.temperature_tolerance_c
            leaves["temperature"] = math.exp(-math.log(2) * ratio * ratio)

        if query.precipitation_bucket is not None and cached.precipitation_bucket is not None:
            leaves["precipitation"] = self.precipitation_compatibility(
                query.precipitation_bucket, cached.precipitation_bucket, directed
            )

        if query.outdoor_suitability is not None and cached.outdoor_suitability is not None:
            leaves["suitability"] = _clamp(
                1.0 - abs(query.outdoor_suitability - cached.outdoor_suitability)
            )

        if query.temperature_spread is not None and cached.temperature_spread is not None:
            diff = abs(query.temperature_spread - cached.temperature_spread)
            leaves["spread"] = _clamp(1.0 - diff / SPREAD_SCALE_C)

        if query.wind_speed_kmh is not None and cached.wind_speed_kmh is not None:
            diff = abs(query.wind_speed_kmh - cached.wind_speed_kmh)
            leaves["wind"] = _clamp(1.0 - diff / WIND_SCALE_KMH)

        if not leaves:
            return None
        return _weighted_mean(leaves, dict(_WEATHER_LEAF_WEIGHTS))

    def precipitation_compatibility(self, requested: str, cached: str, directed: bool = False) -> float:
        """Bucket compatibility table.

        Dry and light substitute for each other at a reduced score. With
        ``directed`` a light-rain result offered for a dry request scores
        ``reverse_substitution`` instead, since a plan made for rain rarely
        fits a dry day as well as the opposite.
        """
        if requested == cached:
            return 1.0
        pair = {requested, cached}
        if pair == {DRY, LIGHT}:
            if directed and requested == DRY and cached == LIGHT:
                return self.config.reverse_substitution
            return self.config.dry_light_substitution
        if pair == {LIGHT, HEAVY}:
            return 0.4
        return 0.0

    def _temporal_score(self, a: TemporalFeatures, b: TemporalFeatures) -> float | None:
        distance = day_distance(a, b)
        if distance is None:
            return None

        score = _clamp(1.0 - distance / self.config.max_day_distance)

        if a.is_weekend is not None and b.is_weekend is not None and a.is_weekend != b.is_weekend:
            score *= self.config.weekend_mismatch_factor

        pa, pb = a.holiday_proximity, b.holiday_proximity
        if pa is not None and pb is not None and pa > 0 and pb > 0:
            score += self.config.holiday_bonus * (1.0 - abs(pa - pb))

        return _clamp(score)

    def _demographic_score(self, a: DemographicFeatures, b: DemographicFeatures) -> float | None:
        parts: list[float] = []

        if a.age_brackets is not None and b.age_brackets is not None:
            union = a.age_brackets | b.age_brackets
            if union:
                parts.append(len(a.age_brackets & b.age_brackets) / len(union))
            else:
                parts.append(1.0)

        if a.duration_bucket is not None and b.duration_bucket is not None:
            if a.duration_bucket == b.duration_bucket:
                parts.append(1.0)
            else:
                parts.append(
                    _DURATION_COMPATIBILITY.get(frozenset((a.duration_bucket, b.duration_bucket)), 0.0)
                )

        if not parts:
            return None
        return math.prod(parts)


def _weighted_mean(scores: dict[str, float], weights: dict[str, float]) -> float:
    total_weight = 0.0
    total = 0.0
    for name, value in scores.items():
        weight = weights[name]
        total += weight * value
        total_weight += weight
    if total_weight <= 0:
        return 0.0
    return _clamp(total / total_weight)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


__all__ = [
    "SimilarityScore",
    "SimilarityScorer",
    "circular_day_distance",
    "day_distance",
    "haversine_km",
    "seasonal_day_distance",
]
