"""Challenge domain models, enums and the per-category progress variants.

Progress is stored as a JSON document tagged with its category. Each category
has its own model with its own completion predicate; callers never switch on
the category string themselves.
"""

from abc import ABC, abstractmethod
from datetime import date, timedelta
from enum import StrEnum
from typing import Annotated, Any, Literal, Self

from pydantic import BaseModel, Field, TypeAdapter


class ChallengeType(StrEnum):
    """Who a challenge is tracked for."""

    INDIVIDUAL = "individual"
    GROUP = "group"


class ChallengeCategory(StrEnum):
    """Progress-tracking shape of a challenge."""

    TASK_COMPLETION = "task_completion"
    STREAK = "streak"
    VARIETY = "variety"
    MASTERY = "mastery"
    COLLECTIVE = "collective"
    TEAM_GOAL = "team_goal"


class DurationType(StrEnum):
    """Challenge length relative to the home's rotation cycle."""

    DAILY = "daily"
    QUARTER_CYCLE = "quarter_cycle"
    HALF_CYCLE = "half_cycle"
    FULL_CYCLE = "full_cycle"
    MULTI_CYCLE = "multi_cycle"


class ChallengeStatus(StrEnum):
    """Lifecycle of an instantiated challenge."""

    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ChallengeTemplate(BaseModel):
    """Reusable challenge definition."""

    id: str
    name: str
    title: str
    description: str = ""
    challenge_type: ChallengeType
    category: ChallengeCategory
    requirements: dict[str, Any] = Field(default_factory=dict)
    duration_type: DurationType = DurationType.DAILY
    duration_multiplier: float = Field(default=1.0, gt=0)
    base_xp: int = Field(default=10, ge=0)
    difficulty_multiplier: float = Field(default=1.0, gt=0)
    min_mastery_level: str | None = None
    requires_min_tasks: int = Field(default=0, ge=0)
    is_active: bool = True


class ActiveChallenge(BaseModel):
    """A template instantiated for a home over a concrete [start_date, end_date) window."""

    id: str
    template_id: str | None = None
    home_id: str
    title: str
    description: str = ""
    challenge_type: ChallengeType
    category: ChallengeCategory
    requirements: dict[str, Any] = Field(default_factory=dict)
    start_date: str
    end_date: str
    cycle_aligned: bool = False
    xp_reward: int
    status: ChallengeStatus = ChallengeStatus.ACTIVE
    assigned_to: str | None = None


class _ProgressBase(BaseModel, ABC):
    @abstractmethod
    def record_task(self, *, task_id: str, zone_id: str | None, completed_on: date, steps_done: bool = True) -> Self:
        """Return the progress after the member completed a task."""

    @property
    @abstractmethod
    def is_complete(self) -> bool:
        """Whether the category's target has been reached."""


class TaskCompletionProgress(_ProgressBase):
    category: Literal["task_completion"] = "task_completion"
    completed_tasks: list[str] = Field(default_factory=list)
    target: int = 1

    @classmethod
    def from_requirements(cls, requirements: dict[str, Any]) -> Self:
        return cls(target=requirements.get("task_count") or 1)

    def record_task(self, *, task_id: str, zone_id: str | None, completed_on: date, steps_done: bool = True) -> Self:  # noqa: ARG002
        if task_id in self.completed_tasks:
            return self.model_copy()
        return self.model_copy(update={"completed_tasks": [*self.completed_tasks, task_id]})

    @property
    def is_complete(self) -> bool:
        return len(self.completed_tasks) >= self.target


class StreakProgress(_ProgressBase):
    category: Literal["streak"] = "streak"
    current_streak: int = 0
    target: int = 3
    last_completion: date | None = None

    @classmethod
    def from_requirements(cls, requirements: dict[str, Any]) -> Self:
        return cls(target=requirements.get("days") or 3)

    def record_task(self, *, task_id: str, zone_id: str | None, completed_on: date, steps_done: bool = True) -> Self:  # noqa: ARG002
        if self.last_completion == completed_on:
            return self.model_copy()
        if self.last_completion == completed_on - timedelta(days=1):
            streak = self.current_streak + 1
        else:
            streak = 1
        return self.model_copy(update={"current_streak": streak, "last_completion": completed_on})

    @property
    def is_complete(self) -> bool:
        return self.current_streak >= self.target


class VarietyProgress(_ProgressBase):
    category: Literal["variety"] = "variety"
    completed_zones: list[str] = Field(default_factory=list)
    completed_tasks: list[str] = Field(default_factory=list)
    target_zones: int = 3
    target_tasks: int = 3

    @classmethod
    def from_requirements(cls, requirements: dict[str, Any]) -> Self:
        return cls(
            target_zones=requirements.get("zone_count") or 3,
            target_tasks=requirements.get("task_count") or 3,
        )

    def record_task(self, *, task_id: str, zone_id: str | None, completed_on: date, steps_done: bool = True) -> Self:  # noqa: ARG002
        zones = self.completed_zones
        if zone_id and zone_id not in zones:
            zones = [*zones, zone_id]
        tasks = self.completed_tasks if task_id in self.completed_tasks else [*self.completed_tasks, task_id]
        return self.model_copy(update={"completed_zones": zones, "completed_tasks": tasks})

    @property
    def is_complete(self) -> bool:
        return len(self.completed_zones) >= self.target_zones and len(self.completed_tasks) >= self.target_tasks


class MasteryProgress(_ProgressBase):
    """Counts distinct tasks; with `all_steps_required` only tasks whose required steps were all ticked off."""

    category: Literal["mastery"] = "mastery"
    completed_tasks: list[str] = Field(default_factory=list)
    target: int = 1
    all_steps_required: bool = False

    @classmethod
    def from_requirements(cls, requirements: dict[str, Any]) -> Self:
        return cls(
            target=requirements.get("task_count") or 1,
            all_steps_required=bool(requirements.get("all_steps", False)),
        )

    def record_task(self, *, task_id: str, zone_id: str | None, completed_on: date, steps_done: bool = True) -> Self:  # noqa: ARG002
        if task_id in self.completed_tasks or (self.all_steps_required and not steps_done):
            return self.model_copy()
        return self.model_copy(update={"completed_tasks": [*self.completed_tasks, task_id]})

    @property
    def is_complete(self) -> bool:
        return len(self.completed_tasks) >= self.target


class CollectiveProgress(_ProgressBase):
    """Team total is shared by every participant and rebuilt from all contributions."""

    category: Literal["collective"] = "collective"
    member_contribution: int = 0
    team_total: int = 0
    target: int = 10

    @classmethod
    def from_requirements(cls, requirements: dict[str, Any]) -> Self:
        return cls(target=requirements.get("total_tasks") or 10)

    def record_task(self, *, task_id: str, zone_id: str | None, completed_on: date, steps_done: bool = True) -> Self:  # noqa: ARG002
        return self.model_copy(
            update={"member_contribution": self.member_contribution + 1, "team_total": self.team_total + 1}
        )

    def with_team_total(self, team_total: int) -> Self:
        return self.model_copy(update={"team_total": team_total})

    @property
    def is_complete(self) -> bool:
        return self.team_total >= self.target


class TeamGoalProgress(_ProgressBase):
    category: Literal["team_goal"] = "team_goal"
    member_completed: int = 0
    target_per_member: int = 1

    @classmethod
    def from_requirements(cls, requirements: dict[str, Any]) -> Self:
        return cls(target_per_member=requirements.get("min_tasks_per_member") or 1)

    def record_task(self, *, task_id: str, zone_id: str | None, completed_on: date, steps_done: bool = True) -> Self:  # noqa: ARG002
        return self.model_copy(update={"member_completed": self.member_completed + 1})

    @property
    def is_complete(self) -> bool:
        return self.member_completed >= self.target_per_member


ProgressData = Annotated[
    TaskCompletionProgress
    | StreakProgress
    | VarietyProgress
    | MasteryProgress
    | CollectiveProgress
    | TeamGoalProgress,
    Field(discriminator="category"),
]

progress_adapter: TypeAdapter[ProgressData] = TypeAdapter(ProgressData)

_PROGRESS_TYPES: dict[ChallengeCategory, type[_ProgressBase]] = {
    ChallengeCategory.TASK_COMPLETION: TaskCompletionProgress,
    ChallengeCategory.STREAK: StreakProgress,
    ChallengeCategory.VARIETY: VarietyProgress,
    ChallengeCategory.MASTERY: MasteryProgress,
    ChallengeCategory.COLLECTIVE: CollectiveProgress,
    ChallengeCategory.TEAM_GOAL: TeamGoalProgress,
}


def initial_progress(category: ChallengeCategory, requirements: dict[str, Any]) -> ProgressData:
    """Build the starting progress payload for a category from template requirements."""
    progress_type = _PROGRESS_TYPES[ChallengeCategory(category)]
    return progress_type.from_requirements(requirements or {})  # type: ignore[attr-defined,return-value]


class ChallengeProgress(BaseModel):
    """Progress of one member on one challenge."""

    id: str
    challenge_id: str
    member_id: str
    progress_data: ProgressData
    is_completed: bool = False
    completed_at: str | None = None
    xp_awarded: int = 0

    @property
    def is_claimed(self) -> bool:
        return self.xp_awarded > 0
