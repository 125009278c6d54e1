"""Update models for database operations."""

from pydantic import BaseModel, Field

from src.domain.home import RotationPolicy


class HomeSettingsUpdate(BaseModel):
    """Partial update of a home's rotation settings; unset fields are left alone."""

    name: str | None = Field(default=None, min_length=1, max_length=80)
    rotation_policy: RotationPolicy | None = None
    goal_percentage: int | None = Field(default=None, ge=1, le=100)
    auto_rotation: bool | None = None
