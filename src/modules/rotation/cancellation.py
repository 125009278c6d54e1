"""Cancellation and reclaim of pending work.

A member releases a pending assignment with cancel_task. Released work, plus
every active task nobody holds in the current cycle, is listed by
list_available_tasks. Another member picks an entry up with
take_cancelled_task.

Key Concepts:
- Persisted cancellations are keyed by assignment; re-cancelling overwrites.
- Tasks never assigned this cycle have no cancellation row. They are listed
  under the shared id UNASSIGNED_CANCELLATION_ID and taken by task id.
- Taking a persisted cancellation flips `is_available` with a conditional
  write. Only the caller that wins that write creates the new assignment.
"""

import logging
from datetime import date, datetime, timedelta

from src.core import db_client
from src.core.config import Constants, settings
from src.core.errors import ConflictError, InvalidInputError, NotEligibleError
from src.core.logging import span
from src.domain.assignment import (
    SYSTEM_CANCELLER,
    UNASSIGNED_CANCELLATION_ID,
    Assignment,
    AssignmentStatus,
    AvailableTask,
    Cancellation,
)
from src.domain.member import Member, MemberStatus
from src.domain.task import Task
from src.modules.rotation import homes, state_machine
from src.modules.rotation.cycles import cycle_window, utc_now
from src.modules.rotation.metrics_cache import invalidate_home_metrics


logger = logging.getLogger(__name__)

DEFAULT_ZONE_NAME = "General"

_RECLAIMABLE_STATUSES = frozenset({AssignmentStatus.SKIPPED_CANCELLED, AssignmentStatus.SKIPPED_EXPIRED})


async def cancel_task(*, assignment_id: str, member_id: str, reason: str = "") -> Cancellation:
    """Release a pending assignment so another member can take it.

    Args:
        assignment_id: Assignment to release
        member_id: Member releasing it; must be the holder
        reason: Free-text reason shown to other members

    Returns:
        The cancellation, available for taking

    Raises:
        NotEligibleError: If the assignment belongs to another member
        ConflictError: If the assignment is no longer pending
        db_client.RecordNotFoundError: If the assignment does not exist
    """
    with span("cancellation.cancel_task"):
        assignment = Assignment(**await db_client.get_record(collection="task_assignments", record_id=assignment_id))

        if assignment.member_id != str(member_id):
            msg = f"Assignment {assignment_id} does not belong to member {member_id}"
            raise NotEligibleError(msg)

        await state_machine.transition_assignment(
            assignment_id=assignment_id,
            to_status=AssignmentStatus.SKIPPED_CANCELLED,
        )

        record = await db_client.upsert_record(
            collection="task_cancellations",
            data={
                "assignment_id": assignment_id,
                "cancelled_by": str(member_id),
                "reason": reason,
                "is_available": True,
                "cancelled_at": utc_now().isoformat(),
                "taken_by": None,
                "taken_at": None,
            },
            conflict_fields=["assignment_id"],
        )

        await invalidate_home_metrics(assignment.home_id)
        logger.info("Member %s cancelled assignment %s", member_id, assignment_id)
        return Cancellation(**record)


async def _fetch_available_cancellations(assignment_ids: list[str]) -> list[Cancellation]:
    """Fetch available cancellations for the given assignments in chunks."""
    cancellations: list[Cancellation] = []
    unique_ids = sorted(set(assignment_ids))
    chunk_size = 50
    for i in range(0, len(unique_ids), chunk_size):
        chunk = unique_ids[i : i + chunk_size]
        or_clause = " || ".join(f'assignment_id = "{db_client.sanitize_param(aid)}"' for aid in chunk)
        records = await db_client.list_records(
            collection="task_cancellations",
            filter_query=f'is_available = "true" && ({or_clause})',
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )
        cancellations.extend(Cancellation(**record) for record in records)
    return cancellations


async def list_available_tasks(*, home_id: str, reference: datetime | None = None) -> list[AvailableTask]:
    """List work in the current cycle that any member of the home may take.

    Released assignments come first, in cancellation order. Active tasks with
    no assignment of any status in the cycle follow as unassigned entries
    due the day before the cycle ends.
    """
    with span("cancellation.list_available_tasks"):
        home = await homes.get_home(home_id)
        window = cycle_window(home.rotation_policy, reference)

        tasks = {task.id: task for task in await homes.list_tasks(home_id)}
        zones = {zone.id: zone.name for zone in await homes.list_zones(home_id)}
        members = {member.id: member.name for member in await homes.list_members(home_id)}

        records = await db_client.list_records(
            collection="task_assignments",
            filter_query=(
                f'home_id = "{db_client.sanitize_param(home_id)}" '
                f'&& assigned_date >= "{window.first_day}" && assigned_date <= "{window.last_day}"'
            ),
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )
        cycle_assignments = {record["id"]: Assignment(**record) for record in records}

        def zone_name(task: Task) -> str:
            return zones.get(task.zone_id or "", DEFAULT_ZONE_NAME)

        available: list[AvailableTask] = []
        reclaimable_ids = [a.id for a in cycle_assignments.values() if a.status in _RECLAIMABLE_STATUSES]
        for cancellation in await _fetch_available_cancellations(reclaimable_ids):
            assignment = cycle_assignments[cancellation.assignment_id]
            task = tasks.get(assignment.task_id)
            if task is None:
                continue
            available.append(
                AvailableTask(
                    cancellation_id=cancellation.id,
                    assignment_id=assignment.id,
                    task_id=task.id,
                    task_title=task.title,
                    task_icon=task.icon,
                    task_effort=task.effort_points,
                    zone_id=task.zone_id,
                    zone_name=zone_name(task),
                    cancelled_by_id=cancellation.cancelled_by,
                    cancelled_by_name=members.get(cancellation.cancelled_by, SYSTEM_CANCELLER),
                    cancellation_reason=cancellation.reason,
                    cancelled_at=cancellation.cancelled_at,
                    assigned_date=assignment.assigned_date,
                    due_date=assignment.due_date,
                )
            )

        covered_task_ids = {entry.task_id for entry in available}
        assigned_task_ids = {a.task_id for a in cycle_assignments.values()}
        unassigned_due = (window.end - timedelta(days=1)).date().isoformat()
        listed_at = utc_now().isoformat()

        for task in tasks.values():
            if not task.is_active or task.id in assigned_task_ids or task.id in covered_task_ids:
                continue
            available.append(
                AvailableTask(
                    cancellation_id=UNASSIGNED_CANCELLATION_ID,
                    assignment_id=UNASSIGNED_CANCELLATION_ID,
                    task_id=task.id,
                    task_title=task.title,
                    task_icon=task.icon,
                    task_effort=task.effort_points,
                    zone_id=task.zone_id,
                    zone_name=zone_name(task),
                    cancelled_by_id=UNASSIGNED_CANCELLATION_ID,
                    cancelled_by_name=SYSTEM_CANCELLER,
                    cancellation_reason="",
                    cancelled_at=listed_at,
                    assigned_date=window.first_day,
                    due_date=unassigned_due,
                )
            )

        return available


async def _ensure_not_assigned_today(*, task_id: str, member_id: str, today: date) -> None:
    existing = await db_client.get_first_record(
        collection="task_assignments",
        filter_query=(
            f'task_id = "{db_client.sanitize_param(task_id)}" '
            f'&& member_id = "{db_client.sanitize_param(member_id)}" '
            f'&& assigned_date = "{today.isoformat()}"'
        ),
    )
    if existing:
        msg = f"Member {member_id} already has task {task_id} assigned today"
        raise ConflictError(msg)


def _ensure_same_home(*, member: Member, task: Task) -> None:
    if member.status != MemberStatus.ACTIVE:
        msg = f"Member {member.id} is not active"
        raise NotEligibleError(msg)
    if member.home_id != task.home_id:
        msg = f"Member {member.id} is not in the home of task {task.id}"
        raise NotEligibleError(msg)


async def _create_taken_assignment(*, task: Task, member: Member, today: date, due_date: str) -> Assignment:
    record = await db_client.create_record(
        collection="task_assignments",
        data={
            "home_id": task.home_id,
            "task_id": task.id,
            "member_id": member.id,
            "assigned_date": today.isoformat(),
            "due_date": due_date,
            "status": AssignmentStatus.PENDING,
        },
    )
    return Assignment(**record)


async def take_cancelled_task(
    *,
    cancellation_id: str | int,
    member_id: str,
    task_id: str | None = None,
    today: datetime | None = None,
) -> Assignment:
    """Take released or unassigned work and create a pending assignment for the member.

    With cancellation_id UNASSIGNED_CANCELLATION_ID the task is named by
    `task_id` and the new work is due in `settings.reclaim_due_days`.
    Otherwise the cancellation is claimed and the new work keeps the
    original due date.

    Raises:
        InvalidInputError: If an unassigned entry is taken without a task id
        ConflictError: If the cancellation was already taken, the task is
            inactive or the member already has the task today
        NotEligibleError: If the member is inactive or in another home
        db_client.RecordNotFoundError: For unknown cancellation, task or member ids
    """
    with span("cancellation.take_cancelled_task"):
        cancellation_id = str(cancellation_id)
        member = await homes.get_member(member_id)
        moment = today or utc_now()
        today_date = moment.date()

        if cancellation_id == UNASSIGNED_CANCELLATION_ID:
            if not task_id:
                msg = "task_id is required to take unassigned work"
                raise InvalidInputError(msg)

            task = await homes.get_task(task_id)
            _ensure_same_home(member=member, task=task)
            if not task.is_active:
                msg = f"Task {task_id} is not active"
                raise ConflictError(msg)
            await _ensure_not_assigned_today(task_id=task.id, member_id=member.id, today=today_date)

            due_date = (today_date + timedelta(days=settings.reclaim_due_days)).isoformat()
            assignment = await _create_taken_assignment(task=task, member=member, today=today_date, due_date=due_date)
            await invalidate_home_metrics(task.home_id)
            logger.info("Member %s took unassigned task %s", member.id, task.id)
            return assignment

        cancellation = Cancellation(
            **await db_client.get_record(collection="task_cancellations", record_id=cancellation_id)
        )
        if not cancellation.is_available:
            msg = f"Cancellation {cancellation_id} was already taken"
            raise ConflictError(msg)

        original = Assignment(
            **await db_client.get_record(collection="task_assignments", record_id=cancellation.assignment_id)
        )
        task = await homes.get_task(original.task_id)
        _ensure_same_home(member=member, task=task)
        await _ensure_not_assigned_today(task_id=task.id, member_id=member.id, today=today_date)

        claimed = await db_client.update_record_if(
            collection="task_cancellations",
            record_id=cancellation_id,
            data={"is_available": False, "taken_by": member.id, "taken_at": moment.isoformat()},
            condition='is_available = "true"',
        )
        if claimed is None:
            msg = f"Cancellation {cancellation_id} was already taken"
            raise ConflictError(msg)

        try:
            assignment = await _create_taken_assignment(
                task=task,
                member=member,
                today=today_date,
                due_date=original.due_date,
            )
        except ConflictError:
            await db_client.update_record(
                collection="task_cancellations",
                record_id=cancellation_id,
                data={"is_available": True, "taken_by": None, "taken_at": None},
            )
            raise

        await invalidate_home_metrics(task.home_id)
        logger.info("Member %s took cancellation %s (task %s)", member.id, cancellation_id, task.id)
        return assignment
