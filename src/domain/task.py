"""Task domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class TaskFrequency(StrEnum):
    """How often a task recurs; drives the due-date offset of its assignments."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    home_id: str = Field(..., description="Home the task belongs to")
    zone_id: str | None = Field(default=None, description="Zone the task is done in")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    icon: str | None = Field(default=None)
    frequency: TaskFrequency = Field(default=TaskFrequency.WEEKLY)
    effort_points: int = Field(default=1, ge=0, description="Reward weight added to the member's total")
    is_active: bool = Field(default=True, description="Inactive tasks are skipped by auto-assignment")
    created: str | None = None
    updated: str | None = None


class TaskStep(BaseModel):
    """One item of a task's checklist."""

    id: str
    task_id: str
    step_order: int
    title: str
    description: str = ""
    is_optional: bool = False
    estimated_minutes: int | None = None


class TaskStepCompletion(BaseModel):
    """A step ticked off on one assignment."""

    id: str
    step_id: str
    assignment_id: str
    completed_by: str
    completed_at: str
