"""Member domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class MemberRole(StrEnum):
    """Member role in the home."""

    ADMIN = "admin"
    MEMBER = "member"


class MemberStatus(StrEnum):
    """Membership status. Removed members are deactivated, never deleted."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class MasteryLevel(StrEnum):
    """Five-tier progression, ordered from lowest to highest."""

    NOVICE = "novice"
    SOLVER = "solver"
    EXPERT = "expert"
    MASTER = "master"
    VISIONARY = "visionary"

    @property
    def rank(self) -> int:
        """Zero-based position in the progression (novice is 0)."""
        return list(MasteryLevel).index(self)


class Member(BaseModel):
    """Member data transfer object with aggregate counters."""

    id: str = Field(..., description="Unique member ID from database")
    home_id: str = Field(..., description="Home the member belongs to")
    user_id: str | None = Field(default=None, description="Identity from the auth collaborator")
    name: str = Field(..., description="Display name")
    role: MemberRole = Field(default=MemberRole.MEMBER)
    status: MemberStatus = Field(default=MemberStatus.ACTIVE)
    total_points: int = Field(default=0, description="Sum of effort points from completed tasks")
    tasks_completed: int = Field(default=0)
    current_streak: int = Field(default=0, description="Consecutive days with at least one completion")
    weeks_active: int = Field(default=0, description="Whole weeks elapsed since joining")
    mastery_level: MasteryLevel = Field(default=MasteryLevel.NOVICE)
    total_xp: int = Field(default=0)
    challenges_completed: int = Field(default=0)
    group_challenges_completed: int = Field(default=0)
    speed_challenges_completed: int = Field(default=0)
    perfect_challenges: int = Field(default=0)
    joined_at: str | None = Field(default=None, description="Join timestamp (ISO format)")
    created: str | None = None
    updated: str | None = None
