"""Pydantic models for creating records in database."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.domain.assignment import ExchangeRequestType
from src.domain.challenge import ChallengeCategory, ChallengeType, DurationType
from src.domain.home import RotationPolicy
from src.domain.member import MasteryLevel, MemberRole
from src.domain.progression import RequirementType
from src.domain.task import TaskFrequency


MAX_NAME_LENGTH = 80


class HomeCreate(BaseModel):
    """Pydantic model for creating a home record."""

    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    created_by: str | None = Field(default=None, description="User id of the creator")
    rotation_policy: RotationPolicy = RotationPolicy.WEEKLY
    goal_percentage: int = Field(default=80, ge=1, le=100)
    auto_rotation: bool = True


class ZoneCreate(BaseModel):
    """Pydantic model for creating a zone record."""

    home_id: str
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    icon: str | None = None


class MemberCreate(BaseModel):
    """Pydantic model for adding a member to a home."""

    home_id: str
    name: str = Field(..., max_length=MAX_NAME_LENGTH)
    user_id: str | None = None
    role: MemberRole = MemberRole.MEMBER

    @field_validator("name")
    @classmethod
    def validate_name_usable(cls, v: str) -> str:
        """Reject blank names."""
        v = v.strip()
        if not v:
            msg = "Name cannot be empty"
            raise ValueError(msg)
        return v


class TaskCreate(BaseModel):
    """Pydantic model for creating a task record."""

    home_id: str
    title: str = Field(..., min_length=1, max_length=120)
    frequency: TaskFrequency = TaskFrequency.WEEKLY
    effort_points: int = Field(default=1, ge=0)
    zone_id: str | None = None
    icon: str | None = None
    description: str = ""


class TaskStepCreate(BaseModel):
    """Pydantic model for adding a step to a task's checklist."""

    task_id: str
    title: str = Field(..., min_length=1, max_length=120)
    description: str = ""
    is_optional: bool = False
    estimated_minutes: int | None = Field(default=None, ge=1)
    step_order: int | None = Field(default=None, ge=1, description="Defaults to after the last step")


class ExchangeRequestCreate(BaseModel):
    """Pydantic model for asking a housemate to take over an assignment."""

    assignment_id: str
    requester_id: str
    request_type: ExchangeRequestType = ExchangeRequestType.SWAP
    target_member_id: str | None = None
    message: str = Field(default="", max_length=280)


class ChallengeTemplateCreate(BaseModel):
    """Pydantic model for adding a challenge template to the catalog."""

    name: str
    title: str
    description: str = ""
    challenge_type: ChallengeType
    category: ChallengeCategory
    requirements: dict[str, Any] = Field(default_factory=dict)
    duration_type: DurationType = DurationType.DAILY
    duration_multiplier: float = Field(default=1.0, gt=0)
    base_xp: int = Field(default=10, gt=0)
    difficulty_multiplier: float = Field(default=1.0, gt=0)
    min_mastery_level: MasteryLevel | None = None
    requires_min_tasks: int = Field(default=0, ge=0)


class AchievementCreate(BaseModel):
    """Pydantic model for adding an achievement to the catalog."""

    name: str
    description: str = ""
    icon: str | None = None
    requirement_type: RequirementType
    requirement_value: int = Field(default=0, ge=0)
