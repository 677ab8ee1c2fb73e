"""Tests for the similarity scorer."""

from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from context_cache.cache import FeatureVectorBuilder, SimilarityScorer
from context_cache.cache.features import FeatureVector, WeatherFeatures
from context_cache.cache.scorer import (
    circular_day_distance,
    haversine_km,
    seasonal_day_distance,
)
from context_cache.config import CacheConfig

# -----------------------------------------------------------------------------
# Test Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def builder():
    return FeatureVectorBuilder()


@pytest.fixture
def scorer():
    return SimilarityScorer()


# -----------------------------------------------------------------------------
# Geometry helpers
# -----------------------------------------------------------------------------


class TestDistances:
    """Tests for haversine and circular day distance."""

    def test_haversine_known_distance(self, builder, context_factory):
        madrid = builder.build(context_factory()).location
        barcelona = builder.build(context_factory(coords=(41.3874, 2.1686))).location
        assert haversine_km(madrid, barcelona) == pytest.approx(505, abs=5)

    def test_circular_day_distance_wraps_year_end(self):
        assert circular_day_distance(365, 1) == 1
        assert circular_day_distance(10, 20) == 10
        assert circular_day_distance(79, 263) == 181

    @pytest.mark.parametrize(
        "a,b,expected",
        [
            (date(2024, 12, 31), date(2025, 1, 1), 1),
            (date(2024, 12, 30), date(2025, 1, 1), 2),
            (date(2023, 12, 31), date(2024, 1, 1), 1),
            (date(2024, 2, 28), date(2024, 3, 1), 2),
            (date(2024, 9, 20), date(2025, 9, 20), 0),
        ],
    )
    def test_seasonal_day_distance_across_leap_years(self, a, b, expected):
        assert seasonal_day_distance(a, b) == expected
        assert seasonal_day_distance(b, a) == expected


# -----------------------------------------------------------------------------
# Core properties
# -----------------------------------------------------------------------------


class TestScoreProperties:
    """Identity, symmetry and bounds."""

    def test_identity(self, builder, scorer, madrid_context):
        vector = builder.build(madrid_context)
        assert scorer.score(vector, vector) == pytest.approx(1.0)

    def test_identity_with_holiday_and_duration(self, builder, scorer, context_factory):
        from context_cache.cache import Holiday

        context = context_factory(
            date(2025, 12, 24),
            duration_hours=4,
            holidays=(Holiday("Christmas", date(2025, 12, 25)),),
        )
        vector = builder.build(context)
        assert scorer.score(vector, vector) == pytest.approx(1.0)

    def test_symmetry(self, builder, scorer, context_factory):
        a = builder.build(context_factory(precipitation=10, ages=(4,)))
        b = builder.build(
            context_factory(
                date(2025, 9, 24),
                coords=(40.45, -3.69),
                temp=(14.0, 22.0),
                precipitation=40,
                ages=(4, 9),
                duration_hours=6,
            )
        )
        assert scorer.score(a, b) == pytest.approx(scorer.score(b, a))

    def test_score_in_unit_interval(self, builder, scorer, context_factory):
        a = builder.build(context_factory(temp=(35.0, 40.0), precipitation=90))
        b = builder.build(context_factory(date(2025, 9, 30), temp=(-5.0, 0.0), precipitation=0))
        assert 0.0 <= scorer.score(a, b) <= 1.0


# -----------------------------------------------------------------------------
# Hard disqualification
# -----------------------------------------------------------------------------


class TestDisqualification:
    """Distance and time bounds short-circuit the score."""

    def test_distance_beyond_bound(self, builder, scorer, context_factory):
        a = builder.build(context_factory())
        # ~25 km north
        b = builder.build(context_factory(coords=(40.4168 + 0.225, -3.7038)))

        result = scorer.compare(a, b)

        assert result.disqualified is True
        assert result.reason == "distance"
        assert result.score == 0.0

    def test_location_decays_monotonically(self, builder, scorer, context_factory):
        base = builder.build(context_factory())
        # 0, ~2, ~5, ~10, ~15, ~19.5 km north
        offsets = (0.0, 0.018, 0.045, 0.09, 0.135, 0.175)
        scores = [
            scorer.compare(
                base, builder.build(context_factory(coords=(40.4168 + offset, -3.7038)))
            ).components["location"]
            for offset in offsets
        ]

        assert scores[0] == 1.0
        assert all(a > b for a, b in zip(scores, scores[1:]))
        assert scores[-1] > 0.0

    def test_distance_within_bound(self, builder, scorer, context_factory):
        a = builder.build(context_factory())
        # ~10 km north
        b = builder.build(context_factory(coords=(40.4168 + 0.09, -3.7038)))

        result = scorer.compare(a, b)

        assert result.disqualified is False
        assert result.components["location"] == pytest.approx(0.5, abs=0.02)

    def test_opposite_season(self, builder, scorer, context_factory):
        a = builder.build(context_factory())
        b = builder.build(context_factory(date(2025, 3, 20)))

        result = scorer.compare(a, b)

        assert result.disqualified is True
        assert result.reason == "time"

    def test_skipped_without_coordinates(self, builder, scorer, context_factory):
        a = builder.build(context_factory(coords=None))
        b = builder.build(context_factory(coords=(48.85, 2.35)))

        result = scorer.compare(a, b)

        assert result.disqualified is False
        assert "location" not in result.components

    def test_year_wraparound_not_disqualified(self, builder, scorer, context_factory):
        a = builder.build(context_factory(date(2025, 12, 30)))
        b = builder.build(context_factory(date(2026, 1, 3)))
        assert scorer.disqualifies(a, b) is None


# -----------------------------------------------------------------------------
# Soft scoring
# -----------------------------------------------------------------------------


class TestSoftScoring:
    """Per-dimension behavior."""

    def test_temporal_decays_monotonically(self, builder, scorer, context_factory):
        base = builder.build(context_factory())
        # same weekday so only the day distance changes
        scores = [
            scorer.compare(base, builder.build(context_factory(day))).components["temporal"]
            for day in (date(2025, 9, 20), date(2025, 9, 27), date(2025, 10, 4))
        ]
        assert scores[0] > scores[1] > scores[2]
        assert scores[1] == pytest.approx(0.5)

    def test_weekend_mismatch_penalty(self, builder, scorer, context_factory):
        saturday = builder.build(context_factory(date(2025, 9, 20)))
        friday = builder.build(context_factory(date(2025, 9, 19)))
        temporal = scorer.compare(saturday, friday).components["temporal"]
        assert temporal == pytest.approx((1 - 1 / 14) * 0.9)

    def test_temperature_half_similarity_at_tolerance(self, scorer):
        a = FeatureVector(weather=WeatherFeatures(temperature_mid=20.0))
        b = FeatureVector(weather=WeatherFeatures(temperature_mid=30.0))
        assert scorer.compare(a, b).components["weather"] == pytest.approx(0.5)

    def test_precipitation_table(self, scorer):
        assert scorer.precipitation_compatibility("dry", "dry") == 1.0
        assert scorer.precipitation_compatibility("dry", "light") == 0.8
        assert scorer.precipitation_compatibility("light", "heavy") == 0.4
        assert scorer.precipitation_compatibility("dry", "heavy") == 0.0

    def test_directed_reverse_substitution(self, scorer):
        assert scorer.precipitation_compatibility("dry", "light", directed=True) == 0.5
        assert scorer.precipitation_compatibility("light", "dry", directed=True) == 0.8

    def test_demographic_jaccard_times_duration(self, builder, scorer, context_factory):
        a = builder.build(context_factory(ages=(4, 8), duration_hours=2))
        b = builder.build(context_factory(ages=(8,), duration_hours=4))
        assert scorer.compare(a, b).components["demographic"] == pytest.approx(0.5 * 0.8)

    def test_holiday_bonus(self, builder, scorer, context_factory):
        from context_cache.cache import Holiday

        holidays = (Holiday("Fiesta", date(2025, 9, 21)),)
        a = builder.build(context_factory(date(2025, 9, 20), holidays=holidays))
        b = builder.build(context_factory(date(2025, 9, 22), holidays=holidays))
        a_plain = replace(a, temporal=replace(a.temporal, holiday_proximity=0.0))

        with_bonus = scorer.compare(a, b).components["temporal"]
        without_bonus = scorer.compare(a_plain, b).components["temporal"]

        assert with_bonus > without_bonus

    def test_empty_vector_identity(self, builder, scorer):
        from context_cache.cache import SearchContext

        empty = builder.build(SearchContext(location="Madrid"))

        assert empty == FeatureVector()
        assert scorer.score(empty, empty) == 1.0

    def test_no_comparable_dimensions_scores_zero(self, scorer):
        with_wind = FeatureVector(weather=WeatherFeatures(wind_speed_kmh=10.0))
        assert scorer.score(FeatureVector(), with_wind) == 0.0

    def test_leap_year_end_is_one_day(self, builder, scorer, context_factory):
        new_year = builder.build(context_factory(date(2025, 1, 1)))
        same_day = scorer.compare(new_year, new_year).components["temporal"]
        day_before = scorer.compare(
            new_year, builder.build(context_factory(date(2024, 12, 31)))
        ).components["temporal"]

        assert same_day == 1.0
        assert day_before == pytest.approx(1 - 1 / 14)

    def test_wind_and_spread_take_part(self, scorer):
        calm = FeatureVector(weather=WeatherFeatures(temperature_spread=8.0, wind_speed_kmh=5.0))
        windy = FeatureVector(weather=WeatherFeatures(temperature_spread=8.0, wind_speed_kmh=30.0))
        swing = FeatureVector(weather=WeatherFeatures(temperature_spread=23.0, wind_speed_kmh=5.0))

        assert scorer.compare(calm, windy).components["weather"] == pytest.approx(0.75)
        assert scorer.compare(calm, swing).components["weather"] == pytest.approx(0.75)


# -----------------------------------------------------------------------------
# Renormalization
# -----------------------------------------------------------------------------


class TestRenormalization:
    """Absent dimensions drop out and weights are redistributed."""

    def test_missing_weather_redistributes_weight(self, builder, scorer, context_factory):
        a = builder.build(context_factory())
        b_full = builder.build(context_factory(date(2025, 9, 22), coords=(40.45, -3.70)))
        b_no_weather = replace(b_full, weather=WeatherFeatures())

        full = scorer.compare(a, b_full)
        partial = scorer.compare(a, b_no_weather)

        assert "weather" not in partial.components
        for name in ("location", "temporal", "demographic"):
            assert partial.components[name] == pytest.approx(full.components[name])

        weights = CacheConfig().weights
        expected = sum(weights[n] * partial.components[n] for n in partial.components) / (
            1.0 - weights["weather"]
        )
        assert partial.score == pytest.approx(expected)

    def test_absent_equals_neutral_not_mismatch(self, builder, scorer, context_factory):
        a = builder.build(context_factory())
        b = builder.build(context_factory(temp=None, precipitation=None))
        assert scorer.score(a, b) == pytest.approx(1.0)
