"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime

import pytest

from src.core.cache_client import cache_client


# Wednesday inside the weekly cycle that starts Sunday 2026-10-18
NOW = datetime(2026, 10, 21, 9, 30, tzinfo=UTC)

_CLOCK_MODULES = (
    "src.modules.rotation.cycles",
    "src.modules.rotation.assignments",
    "src.modules.rotation.cancellation",
    "src.modules.rotation.completion",
    "src.modules.rotation.homes",
    "src.modules.rotation.exchanges",
    "src.modules.rotation.steps",
    "src.modules.gamification.challenges",
    "src.modules.gamification.progression",
)


@pytest.fixture(autouse=True)
def clear_cache():
    """Start every test with an empty metrics and job tracker cache."""
    cache_client.clear()
    yield
    cache_client.clear()


@pytest.fixture
def frozen_now(monkeypatch):
    """Pin utc_now() in every module that imported it to NOW."""
    for module in _CLOCK_MODULES:
        monkeypatch.setattr(f"{module}.utc_now", lambda: NOW)
    return NOW
