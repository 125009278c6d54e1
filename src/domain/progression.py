"""Achievement and XP ledger domain models."""

from enum import StrEnum

from pydantic import BaseModel, Field


class RequirementType(StrEnum):
    """Member counter an achievement threshold is checked against."""

    ONBOARDING = "onboarding"
    TASKS_COMPLETED = "tasks_completed"
    COLLABORATIONS = "collaborations"
    WEEKS_ACTIVE = "weeks_active"
    STREAK_DAYS = "streak_days"
    TOTAL_XP = "total_xp"
    CHALLENGES_COMPLETED = "challenges_completed"
    GROUP_CHALLENGES_COMPLETED = "group_challenges_completed"
    SPEED_CHALLENGES_COMPLETED = "speed_challenges_completed"
    PERFECT_CHALLENGES = "perfect_challenges"
    LEVEL_REACHED = "level_reached"


class XPSource(StrEnum):
    """Why an XP ledger entry was written."""

    TASK_COMPLETION = "task_completion"
    CHALLENGE_COMPLETION = "challenge_completion"
    ACHIEVEMENT_UNLOCK = "achievement_unlock"
    BONUS = "bonus"
    LEVEL_UP = "level_up"
    STREAK_BONUS = "streak_bonus"


class Achievement(BaseModel):
    """Static catalog entry."""

    id: str
    name: str
    description: str = ""
    icon: str | None = None
    requirement_type: RequirementType
    requirement_value: int = Field(default=0, ge=0)


class MemberAchievement(BaseModel):
    """Unlock record; at most one per (member, achievement)."""

    id: str
    member_id: str
    achievement_id: str
    unlocked_at: str


class XPTransaction(BaseModel):
    """Append-only XP ledger entry."""

    id: str
    member_id: str
    amount: int
    source: XPSource
    reference_type: str | None = None
    reference_id: str | None = None
    description: str | None = None
    created: str | None = None
