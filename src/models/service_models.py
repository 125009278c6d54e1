"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from pydantic import BaseModel, Field

from src.domain.assignment import Assignment, TaskCompletion
from src.domain.challenge import ChallengeProgress
from src.domain.member import MasteryLevel, Member


class CycleRolloverResult(BaseModel):
    """Counts reported by a forced cycle rollover."""

    closed: int
    assigned: int


class CycleCheckResult(BaseModel):
    """Outcome of the guarded rollover entry point."""

    new_cycle_started: bool
    assignments: int = 0


class ReassignResult(BaseModel):
    """Number of pending assignments moved to another member."""

    reassigned: int


class CompletionResult(BaseModel):
    """Completion record plus the member and assignment as they stand afterwards."""

    completion: TaskCompletion
    assignment: Assignment
    member: Member
    task_id: str
    home_id: str


class HomeMetrics(BaseModel):
    """Fairness and completion figures for a home's current cycle."""

    home_id: str
    cycle_start: str
    cycle_end: str
    goal_percentage: int
    completion_percentage: int
    rotation_percentage: int
    consecutive_cycles: int
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    active_members: int
    total_points_earned: int


class ZoneStatus(BaseModel):
    """Completion figures for one zone in the current cycle."""

    zone_id: str
    zone_name: str
    total: int
    completed: int
    percentage: int


class RecentCompletion(BaseModel):
    completed_at: str
    points_earned: int


class MemberMetrics(BaseModel):
    """Counters and recent history for one member."""

    member_id: str
    total_points: int
    tasks_completed: int
    current_streak: int
    mastery_level: MasteryLevel
    weeks_active: int
    total_xp: int
    recent_completions: list[RecentCompletion] = Field(default_factory=list)


class LevelProgress(BaseModel):
    """Where a member stands between two XP thresholds."""

    current_level: MasteryLevel
    current_xp: int
    xp_for_current_level: int
    xp_for_next_level: int | None
    xp_progress: int
    progress_percentage: int


class AwardXPResult(BaseModel):
    """XP totals and levels before and after an award."""

    member_id: str
    old_xp: int
    new_xp: int
    old_level: MasteryLevel
    new_level: MasteryLevel
    leveled_up: bool


class ClaimRewardResult(BaseModel):
    """Outcome of claiming a completed challenge."""

    progress: ChallengeProgress
    xp: AwardXPResult
    counter: str


class ChallengeStats(BaseModel):
    """Aggregate challenge figures for a home."""

    total: int
    active: int
    completed: int
    expired: int
    completion_rate: int


class StepProgress(BaseModel):
    """Checklist state of one assignment."""

    assignment_id: str
    total_steps: int
    completed_step_ids: list[str] = Field(default_factory=list)
    missing_required_step_ids: list[str] = Field(default_factory=list)

    @property
    def all_required_done(self) -> bool:
        return not self.missing_required_step_ids
