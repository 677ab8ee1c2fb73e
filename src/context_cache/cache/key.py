"""Cache key generation utilities.

Keys are deterministic strings built from normalized context fields, so
the same request always maps to the same key regardless of whitespace,
letter case or the order ages and modifiers were given in.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import date

from context_cache.cache.context import SearchContext

logger = logging.getLogger(__name__)


class CacheKeyGenerator:
    """Generates cache keys for the three kinds of cached data.

    Example:
        >>> gen = CacheKeyGenerator()
        >>> gen.generate(SearchContext(location=" Madrid,  Spain ", date=date(2025, 9, 20)))
        'madrid, spain|2025-09-20|||'
        >>> gen.weather_key("London, UK", date(2025, 9, 21))
        'weather-london, uk-2025-09-21'
    """

    def __init__(self, separator: str = "|") -> None:
        """Initialize the key generator.

        Args:
            separator: Joins the fields of a strict key.
        """
        self.separator = separator

    @staticmethod
    def normalize_location(location: str) -> str:
        """Lowercase, trim and collapse whitespace."""
        return " ".join(location.split()).lower()

    @staticmethod
    def normalize_modifier(text: str) -> str:
        return " ".join(text.split()).lower()

    def generate(self, context: SearchContext) -> str:
        """Generate the strict key of a search context.

        The key covers location, date, duration, sorted ages and sorted,
        normalized modifiers. The context must have passed
        :meth:`SearchContext.require_identity`.
        """
        duration = ""
        if context.duration_hours is not None:
            duration = f"{context.duration_hours:g}"
        ages = ",".join(str(a) for a in sorted(context.ages))
        modifiers = ";".join(
            sorted(m for m in (self.normalize_modifier(m) for m in context.modifiers) if m)
        )
        return self.separator.join(
            (
                self.normalize_location(context.location),
                context.date.isoformat(),
                duration,
                ages,
                modifiers,
            )
        )

    def weather_key(self, location: str, day: date) -> str:
        """Key for weather data: location plus exact date."""
        return f"weather-{self.normalize_location(location)}-{day.isoformat()}"

    def range_key(self, location: str, start: date, end: date) -> str:
        """Key for range data: location plus covered interval."""
        return f"events-{self.normalize_location(location)}-{start.isoformat()}-{end.isoformat()}"

    @staticmethod
    def generate_hash(key: str) -> str:
        """SHA-256 of a key, for backends with key length limits."""
        return hashlib.sha256(key.encode()).hexdigest()
