"""Assignment, cancellation and completion domain models."""

from enum import StrEnum

from pydantic import BaseModel, Field


class AssignmentStatus(StrEnum):
    """Assignment lifecycle state. Every state except PENDING is terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED_CANCELLED = "skipped_cancelled"
    SKIPPED_EXPIRED = "skipped_expired"
    SKIPPED_REASSIGNED = "skipped_reassigned"


class Assignment(BaseModel):
    """One task instance in one cycle for one member."""

    id: str = Field(..., description="Unique assignment ID from database")
    home_id: str = Field(..., description="Home of the task (denormalized for cycle queries)")
    task_id: str
    member_id: str
    assigned_date: str = Field(..., description="Date the work was handed out (YYYY-MM-DD)")
    due_date: str = Field(..., description="Date the work is due (YYYY-MM-DD)")
    status: AssignmentStatus = Field(default=AssignmentStatus.PENDING)
    completed_at: str | None = None
    created: str | None = None
    updated: str | None = None


class Cancellation(BaseModel):
    """A released pending assignment, available for another member to take."""

    id: str
    assignment_id: str
    cancelled_by: str
    reason: str = ""
    is_available: bool = True
    cancelled_at: str
    taken_by: str | None = None
    taken_at: str | None = None


class TaskCompletion(BaseModel):
    """Completion record written when a member finishes an assignment."""

    id: str
    assignment_id: str
    member_id: str
    points_earned: int
    notes: str | None = None
    evidence_url: str | None = None
    completed_at: str


# Identifier shared by every synthetic "never assigned this cycle" entry
UNASSIGNED_CANCELLATION_ID = "0"
SYSTEM_CANCELLER = "system"


class AvailableTask(BaseModel):
    """Entry in the list of work a member can take over this cycle.

    Released assignments carry their real cancellation id. Tasks nobody holds
    this cycle are listed with cancellation_id UNASSIGNED_CANCELLATION_ID and
    cancelled_by_name SYSTEM_CANCELLER.
    """

    cancellation_id: str
    assignment_id: str
    task_id: str
    task_title: str
    task_icon: str | None = None
    task_effort: int
    zone_id: str | None = None
    zone_name: str
    cancelled_by_id: str
    cancelled_by_name: str
    cancellation_reason: str
    cancelled_at: str
    assigned_date: str
    due_date: str

    @property
    def is_unassigned(self) -> bool:
        """True for synthetic entries that have no persisted cancellation."""
        return self.cancellation_id == UNASSIGNED_CANCELLATION_ID


class ExchangeRequestType(StrEnum):
    """Swap hands the work over; help asks someone to do it instead."""

    SWAP = "swap"
    HELP = "help"


class ExchangeRequestStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ExchangeRequest(BaseModel):
    """A member asking a housemate to take over one of their pending assignments.

    Requests without a target are open to every active member of the home.
    """

    id: str
    home_id: str
    assignment_id: str
    requester_id: str
    target_member_id: str | None = None
    responder_id: str | None = None
    request_type: ExchangeRequestType
    status: ExchangeRequestStatus = ExchangeRequestStatus.PENDING
    message: str = ""
    responded_at: str | None = None
    created: str | None = None
