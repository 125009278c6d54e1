"""Tests for configuration validation."""

import pytest
from pydantic import ValidationError

from src.core.config import Constants, Settings


def test_defaults() -> None:
    """Test settings fall back to the documented defaults."""
    settings = Settings(_env_file=None)

    assert settings.default_goal_percentage == 80
    assert settings.reclaim_due_days == 7
    assert settings.enable_scheduler is True
    assert settings.sqlite_db_path.endswith("chorecycle.db")


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test values are read from the environment, case-insensitively."""
    monkeypatch.setenv("RECLAIM_DUE_DAYS", "3")
    monkeypatch.setenv("enable_scheduler", "false")

    settings = Settings(_env_file=None)

    assert settings.reclaim_due_days == 3
    assert settings.enable_scheduler is False


@pytest.mark.parametrize("goal", [0, 101])
def test_goal_percentage_bounds(goal: int) -> None:
    """Test the default goal must be a percentage between 1 and 100."""
    with pytest.raises(ValidationError, match="default_goal_percentage"):
        Settings(_env_file=None, default_goal_percentage=goal)


def test_reclaim_due_days_must_be_positive() -> None:
    with pytest.raises(ValidationError, match="reclaim_due_days"):
        Settings(_env_file=None, reclaim_due_days=0)


def test_level_thresholds_are_ascending() -> None:
    """Test both mastery threshold tables rise with the level order."""
    for thresholds in (Constants.XP_LEVEL_THRESHOLDS, Constants.POINTS_LEVEL_THRESHOLDS):
        values = list(thresholds.values())
        assert values == sorted(values)
        assert values[0] == 0


def test_every_policy_has_a_lookback() -> None:
    assert set(Constants.CONSECUTIVE_CYCLE_LOOKBACK) == set(Constants.CYCLE_LENGTH_DAYS)
