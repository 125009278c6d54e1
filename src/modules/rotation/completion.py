"""Completion recording with points, streaks and weeks active.

complete_task moves the assignment to completed first. A second attempt on the
same assignment is rejected before anything else is written. The counters
are then updated, and after that a best-effort chain runs: challenge progress,
legacy mastery level and achievements. Each step is isolated, so a failure
there is logged and the completion still stands.
"""

import logging
from datetime import UTC, datetime, timedelta

from dateutil import parser as dateutil_parser

from src.core import db_client
from src.core.config import Constants
from src.core.errors import NotEligibleError
from src.core.logging import log_with_context, span
from src.domain.assignment import Assignment, AssignmentStatus, TaskCompletion
from src.domain.member import Member
from src.models.service_models import CompletionResult, MemberMetrics, RecentCompletion
from src.modules.gamification import challenges, progression
from src.modules.rotation import homes, state_machine, steps
from src.modules.rotation.cycles import start_of_day, utc_now
from src.modules.rotation.metrics_cache import invalidate_home_metrics


logger = logging.getLogger(__name__)


def calculate_weeks_active(*, joined_at: str | None, now: datetime) -> int:
    """Whole weeks elapsed since the member joined (calendar time, not activity)."""
    if not joined_at:
        return 0
    joined = dateutil_parser.isoparse(joined_at)
    if joined.tzinfo is None:
        joined = joined.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return max(0, (now - joined) // timedelta(days=7))


async def calculate_streak(*, member: Member, now: datetime) -> int:
    """Streak after a completion at `now`, from the member's earlier completions.

    Another completion earlier today keeps the streak, one yesterday extends
    it, anything older restarts it at 1.
    """
    today_start = start_of_day(now)
    yesterday_start = today_start - timedelta(days=1)

    recent = await db_client.list_records(
        collection="task_completions",
        filter_query=(
            f'member_id = "{db_client.sanitize_param(member.id)}" && completed_at >= "{yesterday_start.isoformat()}"'
        ),
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    today_marker = today_start.isoformat()
    if any(record["completed_at"] >= today_marker for record in recent):
        return max(member.current_streak, 1)
    if recent:
        return member.current_streak + 1
    return 1


async def complete_task(
    *,
    assignment_id: str,
    member_id: str,
    notes: str | None = None,
    evidence_url: str | None = None,
    now: datetime | None = None,
) -> CompletionResult:
    """Complete a pending assignment and credit the member.

    Args:
        assignment_id: Assignment being completed
        member_id: Member completing it; must be the holder
        notes: Optional free-text note stored with the completion
        evidence_url: Optional link to a photo or other proof
        now: Completion time (defaults to now)

    Returns:
        The completion record, the completed assignment and the member's updated counters

    Raises:
        NotEligibleError: If the assignment belongs to another member
        ConflictError: If the assignment is not pending (e.g. already completed)
        db_client.RecordNotFoundError: For unknown assignment ids
    """
    with span("completion.complete_task"):
        assignment = Assignment(**await db_client.get_record(collection="task_assignments", record_id=assignment_id))
        if assignment.member_id != str(member_id):
            msg = f"Assignment {assignment_id} does not belong to member {member_id}"
            raise NotEligibleError(msg)

        task = await homes.get_task(assignment.task_id)
        member = await homes.get_member(assignment.member_id)
        moment = now or utc_now()

        completed_record = await state_machine.transition_assignment(
            assignment_id=assignment_id,
            to_status=AssignmentStatus.COMPLETED,
            extra={"completed_at": moment.isoformat()},
        )

        points = task.effort_points or 1
        streak = await calculate_streak(member=member, now=moment)

        completion_record = await db_client.create_record(
            collection="task_completions",
            data={
                "assignment_id": assignment_id,
                "member_id": member.id,
                "points_earned": points,
                "notes": notes,
                "evidence_url": evidence_url,
                "completed_at": moment.isoformat(),
            },
        )

        await db_client.increment_record(
            collection="members",
            record_id=member.id,
            increments={"total_points": points, "tasks_completed": 1},
        )
        member_record = await db_client.update_record(
            collection="members",
            record_id=member.id,
            data={
                "current_streak": streak,
                "weeks_active": calculate_weeks_active(joined_at=member.joined_at or member.created, now=moment),
            },
        )

        step_progress = await steps.get_step_progress(assignment_id)

        await invalidate_home_metrics(assignment.home_id)
        logger.info(
            "Member %s completed assignment %s (+%d points, streak %d)",
            member.id,
            assignment_id,
            points,
            streak,
        )

    await run_post_completion_hooks(
        member_id=member.id,
        home_id=assignment.home_id,
        task_id=task.id,
        zone_id=task.zone_id,
        completed_at=moment,
        steps_done=step_progress.all_required_done,
    )

    return CompletionResult(
        completion=TaskCompletion(**completion_record),
        assignment=Assignment(**completed_record),
        member=Member(**member_record),
        task_id=task.id,
        home_id=assignment.home_id,
    )


async def run_post_completion_hooks(
    *,
    member_id: str,
    home_id: str,
    task_id: str,
    zone_id: str | None,
    completed_at: datetime,
    steps_done: bool = True,
) -> None:
    """Best-effort side effects of a completion; failures are logged, never raised."""
    try:
        await challenges.record_task_completion(
            home_id=home_id,
            member_id=member_id,
            task_id=task_id,
            zone_id=zone_id,
            completed_at=completed_at,
            steps_done=steps_done,
        )
    except Exception:
        log_with_context(
            logger, "warning", "Challenge progress update failed", exc_info=True, member_id=member_id, task_id=task_id
        )

    try:
        await progression.update_mastery_from_points(member_id=member_id)
    except Exception:
        log_with_context(logger, "warning", "Mastery level update failed", exc_info=True, member_id=member_id)

    try:
        await progression.check_achievements(member_id=member_id)
    except Exception:
        log_with_context(logger, "warning", "Achievement check failed", exc_info=True, member_id=member_id)


async def get_member_metrics(member_id: str) -> MemberMetrics:
    """Counters plus the most recent completions of a member."""
    with span("completion.get_member_metrics"):
        member = await homes.get_member(member_id)
        records = await db_client.list_records(
            collection="task_completions",
            filter_query=f'member_id = "{db_client.sanitize_param(member_id)}"',
            sort="-completed_at",
            per_page=Constants.RECENT_COMPLETIONS_LIMIT,
        )
        return MemberMetrics(
            member_id=member.id,
            total_points=member.total_points,
            tasks_completed=member.tasks_completed,
            current_streak=member.current_streak,
            mastery_level=member.mastery_level,
            weeks_active=member.weeks_active,
            total_xp=member.total_xp,
            recent_completions=[
                RecentCompletion(completed_at=record["completed_at"], points_earned=record["points_earned"])
                for record in records
            ],
        )
