"""JSON API over the rotation and gamification operations.

Authentication is handled outside this service; callers pass member ids
explicitly.
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.core.config import Constants
from src.core.errors import DomainError, ErrorCategory, classify_error_with_response
from src.domain.assignment import (
    Assignment,
    AssignmentStatus,
    AvailableTask,
    Cancellation,
    ExchangeRequest,
    ExchangeRequestType,
)
from src.domain.challenge import ActiveChallenge, ChallengeProgress, ChallengeTemplate, ChallengeType
from src.domain.create_models import AchievementCreate, ChallengeTemplateCreate
from src.domain.home import Home, RotationPolicy, Zone
from src.domain.member import Member, MemberRole
from src.domain.progression import Achievement, MemberAchievement, XPTransaction
from src.domain.task import Task, TaskFrequency, TaskStep, TaskStepCompletion
from src.models.service_models import (
    AwardXPResult,
    ChallengeStats,
    ClaimRewardResult,
    CompletionResult,
    CycleCheckResult,
    CycleRolloverResult,
    HomeMetrics,
    LevelProgress,
    MemberMetrics,
    ReassignResult,
    StepProgress,
    ZoneStatus,
)
from src.modules.gamification import challenges, progression
from src.modules.rotation import analytics, assignments, cancellation, completion, exchanges, homes, steps


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

STATUS_BY_CATEGORY: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: Constants.HTTP_UNPROCESSABLE,
    ErrorCategory.STATE_CONFLICT: Constants.HTTP_CONFLICT,
    ErrorCategory.NOT_ELIGIBLE: Constants.HTTP_FORBIDDEN,
    ErrorCategory.NOT_FOUND: Constants.HTTP_NOT_FOUND,
    ErrorCategory.DEPENDENCY_UNAVAILABLE: Constants.HTTP_SERVICE_UNAVAILABLE,
}


async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a domain error as an ErrorResponse with the category's status code."""
    response = classify_error_with_response(exc)
    category = exc.category if isinstance(exc, DomainError) else ErrorCategory.UNKNOWN
    status_code = STATUS_BY_CATEGORY.get(category, Constants.HTTP_SERVER_ERROR)
    logger.warning(
        "api_request_failed",
        extra={"path": request.url.path, "code": response.code, "status_code": status_code},
    )
    return JSONResponse(content=response.model_dump(mode="json"), status_code=status_code)


# Request bodies


class HomeRequest(BaseModel):
    name: str
    created_by: str | None = None
    rotation_policy: RotationPolicy = RotationPolicy.WEEKLY
    goal_percentage: int = 80
    auto_rotation: bool = True


class ZoneRequest(BaseModel):
    name: str
    icon: str | None = None


class MemberRequest(BaseModel):
    name: str
    user_id: str | None = None
    role: MemberRole = MemberRole.MEMBER


class TaskRequest(BaseModel):
    title: str
    frequency: TaskFrequency = TaskFrequency.WEEKLY
    effort_points: int = 1
    zone_id: str | None = None
    icon: str | None = None
    description: str = ""


class TaskActiveRequest(BaseModel):
    is_active: bool


class AutoAssignRequest(BaseModel):
    start_date: datetime | None = None


class CancelRequest(BaseModel):
    member_id: str
    reason: str = ""


class TakeRequest(BaseModel):
    member_id: str
    task_id: str | None = None


class CompleteRequest(BaseModel):
    member_id: str
    notes: str | None = None
    evidence_url: str | None = None


class StepRequest(BaseModel):
    title: str
    description: str = ""
    is_optional: bool = False
    estimated_minutes: int | None = None
    step_order: int | None = None


class StepTickRequest(BaseModel):
    member_id: str


class ExchangeRequestBody(BaseModel):
    requester_id: str
    request_type: ExchangeRequestType = ExchangeRequestType.SWAP
    target_member_id: str | None = None
    message: str = ""


class ExchangeResponseBody(BaseModel):
    responder_id: str
    accept: bool


class InstantiateChallengeRequest(BaseModel):
    template_id: str
    home_id: str
    member_id: str | None = None


class ChallengeProgressRequest(BaseModel):
    task_id: str
    member_id: str
    assignment_id: str | None = None


class ChallengeMemberRequest(BaseModel):
    member_id: str


class AwardXPRequest(BaseModel):
    amount: int
    source: str
    reference_type: str | None = None
    reference_id: str | None = None
    description: str | None = None


class DailyChallengesRequest(BaseModel):
    member_id: str
    count: int = Field(default=Constants.DAILY_CHALLENGE_COUNT, ge=1)


# Homes, members and tasks


@router.post("/homes", status_code=status.HTTP_201_CREATED)
async def create_home(body: HomeRequest) -> Home:
    return await homes.create_home(**body.model_dump())


@router.get("/homes/{home_id}")
async def get_home(home_id: str) -> Home:
    return await homes.get_home(home_id)


@router.patch("/homes/{home_id}/settings")
async def update_home_settings(home_id: str, body: dict[str, Any]) -> Home:
    """Partial settings update; validated before anything is written."""
    return await homes.update_home_settings(home_id=home_id, update=body)


@router.post("/homes/{home_id}/zones", status_code=status.HTTP_201_CREATED)
async def create_zone(home_id: str, body: ZoneRequest) -> Zone:
    return await homes.create_zone(home_id=home_id, name=body.name, icon=body.icon)


@router.get("/homes/{home_id}/zones")
async def list_zones(home_id: str) -> list[Zone]:
    return await homes.list_zones(home_id)


@router.post("/homes/{home_id}/members", status_code=status.HTTP_201_CREATED)
async def add_member(home_id: str, body: MemberRequest) -> Member:
    return await homes.add_member(home_id=home_id, **body.model_dump())


@router.get("/homes/{home_id}/members")
async def list_members(home_id: str, active_only: bool = True) -> list[Member]:
    if active_only:
        return await homes.list_active_members(home_id)
    return await homes.list_members(home_id)


@router.get("/members/{member_id}")
async def get_member(member_id: str) -> Member:
    return await homes.get_member(member_id)


@router.delete("/members/{member_id}")
async def remove_member(member_id: str) -> Member:
    return await homes.remove_member(member_id)


@router.post("/homes/{home_id}/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(home_id: str, body: TaskRequest) -> Task:
    return await homes.create_task(home_id=home_id, **body.model_dump())


@router.get("/homes/{home_id}/tasks")
async def list_tasks(home_id: str, active_only: bool = False) -> list[Task]:
    return await homes.list_tasks(home_id, active_only=active_only)


@router.patch("/tasks/{task_id}/active")
async def set_task_active(task_id: str, body: TaskActiveRequest) -> Task:
    return await homes.set_task_active(task_id=task_id, is_active=body.is_active)


# Rotation


@router.post("/homes/{home_id}/auto-assign")
async def auto_assign(home_id: str, body: AutoAssignRequest | None = None) -> list[Assignment]:
    start_date = body.start_date if body else None
    return await assignments.auto_assign_tasks(home_id=home_id, start_date=start_date)


@router.post("/homes/{home_id}/close-cycle")
async def close_cycle(home_id: str) -> CycleRolloverResult:
    return await assignments.close_cycle_and_reassign(home_id=home_id)


@router.post("/homes/{home_id}/check-cycle")
async def check_cycle(home_id: str) -> CycleCheckResult:
    return await assignments.check_and_start_cycle_if_needed(home_id=home_id)


@router.post("/homes/{home_id}/reassign")
async def reassign_pending(home_id: str) -> ReassignResult:
    return await assignments.reassign_pending_tasks(home_id=home_id)


@router.get("/members/{member_id}/assignments")
async def list_member_assignments(
    member_id: str,
    assignment_status: AssignmentStatus | None = Query(default=None, alias="status"),
) -> list[Assignment]:
    return await assignments.list_member_assignments(member_id=member_id, status=assignment_status)


@router.post("/assignments/{assignment_id}/cancel", status_code=status.HTTP_201_CREATED)
async def cancel_assignment(assignment_id: str, body: CancelRequest) -> Cancellation:
    return await cancellation.cancel_task(assignment_id=assignment_id, member_id=body.member_id, reason=body.reason)


@router.get("/homes/{home_id}/available")
async def list_available(home_id: str) -> list[AvailableTask]:
    return await cancellation.list_available_tasks(home_id=home_id)


@router.post("/cancellations/{cancellation_id}/take", status_code=status.HTTP_201_CREATED)
async def take_cancelled(cancellation_id: str, body: TakeRequest) -> Assignment:
    """Take released work; cancellation id `0` takes an unassigned task named by task_id."""
    return await cancellation.take_cancelled_task(
        cancellation_id=cancellation_id,
        member_id=body.member_id,
        task_id=body.task_id,
    )


@router.post("/assignments/{assignment_id}/complete")
async def complete_assignment(assignment_id: str, body: CompleteRequest) -> CompletionResult:
    return await completion.complete_task(
        assignment_id=assignment_id,
        member_id=body.member_id,
        notes=body.notes,
        evidence_url=body.evidence_url,
    )


# Steps


@router.post("/tasks/{task_id}/steps", status_code=status.HTTP_201_CREATED)
async def create_task_step(task_id: str, body: StepRequest) -> TaskStep:
    return await steps.create_task_step(task_id=task_id, **body.model_dump())


@router.get("/tasks/{task_id}/steps")
async def list_task_steps(task_id: str) -> list[TaskStep]:
    return await steps.list_task_steps(task_id)


@router.delete("/tasks/{task_id}/steps")
async def delete_task_steps(task_id: str) -> dict[str, int]:
    return {"deleted": await steps.delete_task_steps(task_id)}


@router.delete("/steps/{step_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task_step(step_id: str) -> None:
    await steps.delete_task_step(step_id)


@router.get("/assignments/{assignment_id}/steps")
async def get_step_progress(assignment_id: str) -> StepProgress:
    return await steps.get_step_progress(assignment_id)


@router.post("/assignments/{assignment_id}/steps/{step_id}", status_code=status.HTTP_201_CREATED)
async def complete_task_step(assignment_id: str, step_id: str, body: StepTickRequest) -> TaskStepCompletion:
    return await steps.complete_task_step(step_id=step_id, assignment_id=assignment_id, member_id=body.member_id)


@router.delete("/assignments/{assignment_id}/steps/{step_id}")
async def uncomplete_task_step(assignment_id: str, step_id: str, member_id: str) -> dict[str, bool]:
    removed = await steps.uncomplete_task_step(step_id=step_id, assignment_id=assignment_id, member_id=member_id)
    return {"removed": removed}


# Exchanges


@router.post("/assignments/{assignment_id}/exchange", status_code=status.HTTP_201_CREATED)
async def request_task_exchange(assignment_id: str, body: ExchangeRequestBody) -> ExchangeRequest:
    return await exchanges.request_task_exchange(assignment_id=assignment_id, **body.model_dump())


@router.post("/exchange-requests/{request_id}/respond")
async def respond_to_exchange_request(request_id: str, body: ExchangeResponseBody) -> ExchangeRequest:
    return await exchanges.respond_to_exchange_request(
        request_id=request_id,
        responder_id=body.responder_id,
        accept=body.accept,
    )


@router.get("/members/{member_id}/exchange-requests")
async def list_exchange_requests(member_id: str, include_answered: bool = False) -> list[ExchangeRequest]:
    return await exchanges.list_exchange_requests(member_id, include_answered=include_answered)


# Metrics


@router.get("/homes/{home_id}/metrics")
async def get_home_metrics(home_id: str) -> HomeMetrics:
    return await analytics.get_home_metrics(home_id=home_id)


@router.get("/homes/{home_id}/zone-status")
async def get_zone_status(home_id: str) -> list[ZoneStatus]:
    return await analytics.get_zone_status(home_id=home_id)


@router.get("/members/{member_id}/metrics")
async def get_member_metrics(member_id: str) -> MemberMetrics:
    return await completion.get_member_metrics(member_id)


# Challenges


@router.post("/challenge-templates", status_code=status.HTTP_201_CREATED)
async def create_challenge_template(body: ChallengeTemplateCreate) -> ChallengeTemplate:
    return await challenges.create_challenge_template(body)


@router.get("/challenge-templates")
async def list_challenge_templates(challenge_type: ChallengeType | None = None) -> list[ChallengeTemplate]:
    return await challenges.list_challenge_templates(challenge_type=challenge_type)


@router.get("/homes/{home_id}/challenge-templates")
async def list_available_templates(
    home_id: str,
    member_id: str | None = None,
    challenge_type: ChallengeType | None = None,
) -> list[ChallengeTemplate]:
    return await challenges.get_available_challenge_templates(
        home_id=home_id,
        member_id=member_id,
        challenge_type=challenge_type,
    )


@router.post("/challenges", status_code=status.HTTP_201_CREATED)
async def instantiate_challenge(body: InstantiateChallengeRequest) -> ActiveChallenge:
    return await challenges.instantiate_challenge(
        template_id=body.template_id,
        home_id=body.home_id,
        member_id=body.member_id,
    )


@router.post("/homes/{home_id}/challenges/daily", status_code=status.HTTP_201_CREATED)
async def generate_daily_challenges(home_id: str, body: DailyChallengesRequest) -> list[ActiveChallenge]:
    return await challenges.generate_daily_challenges(home_id=home_id, member_id=body.member_id, count=body.count)


@router.post("/homes/{home_id}/challenges/cycle")
async def generate_cycle_challenge(home_id: str) -> ActiveChallenge | None:
    return await challenges.generate_cycle_challenge(home_id=home_id)


@router.get("/homes/{home_id}/challenges")
async def list_active_challenges(home_id: str, member_id: str | None = None) -> list[ActiveChallenge]:
    return await challenges.get_active_challenges(home_id=home_id, member_id=member_id)


@router.get("/homes/{home_id}/challenge-stats")
async def get_challenge_stats(home_id: str) -> ChallengeStats:
    return await challenges.get_challenge_stats(home_id)


@router.post("/challenges/{challenge_id}/join", status_code=status.HTTP_201_CREATED)
async def join_challenge(challenge_id: str, body: ChallengeMemberRequest) -> ChallengeProgress:
    return await challenges.join_challenge(challenge_id=challenge_id, member_id=body.member_id)


@router.post("/challenges/{challenge_id}/progress")
async def update_challenge_progress(challenge_id: str, body: ChallengeProgressRequest) -> ChallengeProgress:
    return await challenges.update_challenge_progress(
        challenge_id=challenge_id,
        task_id=body.task_id,
        member_id=body.member_id,
        assignment_id=body.assignment_id,
    )


@router.get("/challenges/{challenge_id}/progress/{member_id}")
async def get_challenge_progress(challenge_id: str, member_id: str) -> ChallengeProgress:
    return await challenges.get_challenge_progress(challenge_id=challenge_id, member_id=member_id)


@router.post("/challenges/{challenge_id}/claim")
async def claim_reward(challenge_id: str, body: ChallengeMemberRequest) -> ClaimRewardResult:
    return await challenges.claim_reward(challenge_id=challenge_id, member_id=body.member_id)


# Progression


@router.post("/members/{member_id}/xp")
async def award_xp(member_id: str, body: AwardXPRequest) -> AwardXPResult:
    return await progression.award_xp(member_id=member_id, **body.model_dump())


@router.get("/members/{member_id}/xp")
async def get_xp_transactions(member_id: str, limit: int = 50) -> list[XPTransaction]:
    return await progression.get_xp_transactions(member_id, limit=limit)


@router.get("/members/{member_id}/level")
async def get_level_progress(member_id: str) -> LevelProgress:
    member = await homes.get_member(member_id)
    return progression.get_level_progress(member.total_xp)


@router.post("/achievements", status_code=status.HTTP_201_CREATED)
async def create_achievement(body: AchievementCreate) -> Achievement:
    return await progression.create_achievement(body)


@router.get("/achievements")
async def list_achievements() -> list[Achievement]:
    return await progression.list_achievements()


@router.post("/members/{member_id}/achievements/check")
async def check_achievements(member_id: str) -> list[Achievement]:
    return await progression.check_achievements(member_id=member_id)


@router.get("/members/{member_id}/achievements")
async def get_member_achievements(member_id: str) -> list[MemberAchievement]:
    return await progression.get_member_achievements(member_id)
