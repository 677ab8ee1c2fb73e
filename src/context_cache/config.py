"""Engine configuration.

:class:`CacheConfig` holds every tunable of the cache engine: similarity
weights, hard-disqualification bounds, the acceptance threshold and the
per-store capacities. It is validated once at construction and is
immutable afterwards, so a single instance can be shared by all request
handlers.

Example:
    >>> from context_cache.config import CacheConfig
    >>> config = CacheConfig(similarity_threshold=0.85, similarity_capacity=50)
    >>> config = CacheConfig.from_env()  # CONTEXT_CACHE_* variables
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from context_cache.errors import ConfigurationError

ENV_PREFIX = "CONTEXT_CACHE_"

# Allowed drift of the weight sum from 1.0.
WEIGHT_SUM_TOLERANCE = 0.01


class CacheConfig(BaseModel):
    """Read-only configuration shared by the builder, scorer and stores."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Dimension weights
    location_weight: float = 0.2
    weather_weight: float = 0.4
    temporal_weight: float = 0.3
    demographic_weight: float = 0.1

    # Hard disqualification
    max_distance_km: float = 20.0
    max_day_distance: int = 14

    # Soft scoring
    temperature_tolerance_c: float = 10.0
    holiday_window_days: int = 3
    holiday_bonus: float = 0.1
    weekend_mismatch_factor: float = 0.9
    dry_light_substitution: float = 0.8
    reverse_substitution: float = 0.5
    similarity_threshold: float = 0.90

    # Capacities
    strict_capacity: int = 100
    similarity_capacity: int = 30
    range_capacity: int = 50
    weather_capacity: int = 100

    @property
    def weights(self) -> dict[str, float]:
        return {
            "location": self.location_weight,
            "weather": self.weather_weight,
            "temporal": self.temporal_weight,
            "demographic": self.demographic_weight,
        }

    @model_validator(mode="after")
    def _validate(self) -> CacheConfig:
        for name, weight in self.weights.items():
            if weight < 0:
                raise ConfigurationError(
                    "Dimension weights must be non-negative",
                    config_key=f"{name}_weight",
                    value=weight,
                )
        total = sum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ConfigurationError(
                f"Dimension weights must sum to 1.0, got {total:.3f}",
                config_key="weights",
                value=self.weights,
                hint="Adjust location/weather/temporal/demographic weights.",
            )

        for key in (
            "strict_capacity",
            "similarity_capacity",
            "range_capacity",
            "weather_capacity",
            "max_distance_km",
            "max_day_distance",
            "temperature_tolerance_c",
        ):
            value = getattr(self, key)
            if value <= 0:
                raise ConfigurationError(f"{key} must be positive", config_key=key, value=value)

        if self.holiday_window_days < 0:
            raise ConfigurationError(
                "holiday_window_days must not be negative",
                config_key="holiday_window_days",
                value=self.holiday_window_days,
            )

        if not 0.0 < self.similarity_threshold <= 1.0:
            raise ConfigurationError(
                "similarity_threshold must be in (0.0, 1.0]",
                config_key="similarity_threshold",
                value=self.similarity_threshold,
            )

        for key in (
            "holiday_bonus",
            "weekend_mismatch_factor",
            "dry_light_substitution",
            "reverse_substitution",
        ):
            value = getattr(self, key)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(
                    f"{key} must be between 0.0 and 1.0", config_key=key, value=value
                )
        return self

    @classmethod
    def create(cls, **overrides: Any) -> CacheConfig:
        """Build a config, reporting every failure as :class:`ConfigurationError`."""
        try:
            return cls(**overrides)
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(p) for p in first.get("loc", ())) or None
            raise ConfigurationError(
                f"Invalid cache configuration: {first.get('msg')}",
                config_key=key,
                value=first.get("input"),
            ) from e

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> CacheConfig:
        """Build a config from ``CONTEXT_CACHE_<FIELD>`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            **overrides: Values that take precedence over the environment.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw.strip():
                values[name] = raw.strip()
        values.update(overrides)
        return cls.create(**values)


DEFAULT_CONFIG = CacheConfig()

__all__ = ["DEFAULT_CONFIG", "ENV_PREFIX", "CacheConfig"]
