"""Configuration management for chorecycle."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="./data/chorecycle.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Rotation defaults
    default_goal_percentage: int = Field(
        default=80, ge=1, le=100, description="Completion goal used when a home has none configured"
    )
    reclaim_due_days: int = Field(
        default=7, ge=1, description="Days until due for reclaimed unassigned tasks and reassigned work"
    )

    # Cache
    metrics_cache_ttl_seconds: int = Field(default=60, ge=0, description="TTL for cached home metrics")

    # Scheduled jobs
    auto_rotation_check_cron: str = Field(
        default="5 0 * * *", description="Crontab for the automatic cycle rollover check"
    )
    challenge_expiry_cron: str = Field(default="0 * * * *", description="Crontab for the challenge expiry sweep")
    enable_scheduler: bool = Field(default=True, description="Start the background job scheduler on app startup")


# Application Constants
class Constants:
    """Application-wide constants."""

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_FORBIDDEN: int = 403
    HTTP_NOT_FOUND: int = 404
    HTTP_CONFLICT: int = 409
    HTTP_UNPROCESSABLE: int = 422
    HTTP_SERVER_ERROR: int = 500
    HTTP_SERVICE_UNAVAILABLE: int = 503

    # Mastery thresholds by cumulative XP
    XP_LEVEL_THRESHOLDS: dict[str, int] = {  # noqa: RUF012
        "novice": 0,
        "solver": 100,
        "expert": 400,
        "master": 1000,
        "visionary": 2000,
    }

    # Legacy mastery thresholds by cumulative task points
    POINTS_LEVEL_THRESHOLDS: dict[str, int] = {  # noqa: RUF012
        "novice": 0,
        "solver": 50,
        "expert": 200,
        "master": 500,
        "visionary": 1000,
    }

    # Challenge XP
    XP_PER_EFFORT_POINT: int = 10
    CHALLENGE_TYPE_MULTIPLIERS: dict[str, float] = {"individual": 1.5, "group": 2.0}  # noqa: RUF012
    CHALLENGE_DURATION_MULTIPLIERS: dict[str, float] = {  # noqa: RUF012
        "daily": 1.0,
        "quarter_cycle": 1.1,
        "half_cycle": 1.2,
        "full_cycle": 1.3,
        "multi_cycle": 1.5,
    }
    DAILY_CHALLENGE_COUNT: int = 2

    # Approximate cycle length in days, used for challenge durations
    CYCLE_LENGTH_DAYS: dict[str, int] = {  # noqa: RUF012
        "daily": 1,
        "weekly": 7,
        "biweekly": 14,
        "monthly": 30,
    }

    # How many past cycles the consecutive-goal streak may look at
    CONSECUTIVE_CYCLE_LOOKBACK: dict[str, int] = {  # noqa: RUF012
        "daily": 30,
        "weekly": 12,
        "biweekly": 6,
        "monthly": 3,
    }

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 500
    RECENT_COMPLETIONS_LIMIT: int = 30
    XP_TRANSACTIONS_LIMIT: int = 50

    # Job Tracker Configuration
    TRACKER_DEAD_LETTER_QUEUE_MAXLEN: int = 100
    TRACKER_TTL_SECONDS: int = 86400 * 7

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
