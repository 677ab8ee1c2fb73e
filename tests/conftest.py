"""
Root conftest.py for context-cache tests.

This file provides:
1. Common pytest markers for test categorization
2. Shared fixtures: search contexts for the reference scenarios, configs,
   persistence backends and a coordinator wired to them

Fixtures are organized by category:
- Context fixtures (Madrid / London requests)
- Engine fixtures (config, coordinator)
- Storage/Backend fixtures
"""

from __future__ import annotations

import logging
from datetime import date

import pytest

from context_cache.cache import CacheCoordinator, SearchContext, WeatherSummary
from context_cache.cache.persistence import MemoryPersistence, SQLitePersistence
from context_cache.config import CacheConfig
from context_cache.logging import ROOT_LOGGER_NAME

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        norm = str(item.fspath).replace("\\", "/")

        if "/cache/" in norm:
            item.add_marker(pytest.mark.cache)
        if "persistence" in norm:
            item.add_marker(pytest.mark.persistence)
        if "scorer" in norm or "features" in norm:
            item.add_marker(pytest.mark.scoring)


def pytest_configure(config):
    """Register custom markers."""
    for name, desc in [
        ("cache", "Cache engine tests"),
        ("persistence", "Persistence backend tests"),
        ("scoring", "Feature vector and similarity scoring tests"),
        ("slow", "Slow-running tests"),
    ]:
        config.addinivalue_line("markers", f"{name}: {desc}")


# =============================================================================
# LOGGING
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo configure_logging() calls made by individual tests."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = logger.level
    handlers = list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.handlers[:] = handlers


# =============================================================================
# CONTEXT FIXTURES
# =============================================================================

MADRID = (40.4168, -3.7038)


def make_context(
    day: date = date(2025, 9, 20),
    *,
    location: str = "Madrid, Spain",
    coords: tuple[float, float] | None = MADRID,
    temp: tuple[float, float] | None = (20.0, 30.0),
    precipitation: float | None = 10.0,
    ages: tuple[int, ...] = (6, 8),
    duration_hours: float | None = None,
    holidays=None,
    modifiers: tuple[str, ...] = (),
) -> SearchContext:
    """Build a search context with Madrid defaults."""
    weather = None
    if temp is not None or precipitation is not None:
        low, high = temp if temp is not None else (None, None)
        weather = WeatherSummary(
            temperature_min_c=low,
            temperature_max_c=high,
            precipitation_probability=precipitation,
        )
    return SearchContext(
        location=location,
        latitude=coords[0] if coords else None,
        longitude=coords[1] if coords else None,
        date=day,
        duration_hours=duration_hours,
        ages=ages,
        weather=weather,
        holidays=holidays,
        modifiers=modifiers,
    )


@pytest.fixture
def madrid_context() -> SearchContext:
    """Madrid, 2025-09-20, dry, 25 C mid, ages 6 and 8."""
    return make_context()


@pytest.fixture
def madrid_next_day() -> SearchContext:
    """Madrid, 2025-09-21, dry, 24 C mid, ages 6 and 8."""
    return make_context(date(2025, 9, 21), temp=(19.0, 29.0))


# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def config() -> CacheConfig:
    return CacheConfig()


@pytest.fixture
def memory_persistence() -> MemoryPersistence:
    """Create a clean memory persistence backend."""
    return MemoryPersistence()


@pytest.fixture
def sqlite_persistence(tmp_path):
    """SQLite persistence in a temporary directory."""
    backend = SQLitePersistence(tmp_path / "cache.db")
    yield backend
    backend.close()


@pytest.fixture
def coordinator() -> CacheCoordinator:
    """Purely in-memory coordinator."""
    return CacheCoordinator()


@pytest.fixture
def persistent_coordinator(memory_persistence):
    """Coordinator mirrored to a memory persistence backend."""
    coord = CacheCoordinator(persistence=memory_persistence)
    yield coord
    coord.close()


@pytest.fixture
def context_factory():
    """Return the make_context() helper for tests that need variations."""
    return make_context
