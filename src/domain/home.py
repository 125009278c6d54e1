"""Home and zone domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class RotationPolicy(StrEnum):
    """Length of the repeating assignment cycle for a home."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class Home(BaseModel):
    """Home data transfer object."""

    id: str = Field(..., description="Unique home ID from database")
    name: str = Field(..., description="Display name of the home")
    created_by: str | None = Field(default=None, description="User id of the creator")
    rotation_policy: RotationPolicy = Field(default=RotationPolicy.WEEKLY, description="Cycle length")
    goal_percentage: int = Field(default=80, ge=0, le=100, description="Completion target per cycle")
    auto_rotation: bool = Field(default=True, description="Roll cycles over automatically")
    created: str | None = None
    updated: str | None = None


class Zone(BaseModel):
    """Area of the home that groups tasks (kitchen, bathroom, ...)."""

    id: str
    home_id: str
    name: str
    icon: str | None = None
