"""Assignment scheduler: auto-assignment, cycle rollover and mid-cycle redistribution."""

import logging
import random
from datetime import datetime, timedelta

from src.core import db_client
from src.core.config import Constants, settings
from src.core.errors import ConflictError, InvalidInputError
from src.core.logging import span
from src.domain.assignment import Assignment, AssignmentStatus
from src.models.service_models import CycleCheckResult, CycleRolloverResult, ReassignResult
from src.modules.rotation import homes, state_machine
from src.modules.rotation.cycles import cycle_window, due_date_for, previous_cycle_cutoff, utc_now
from src.modules.rotation.metrics_cache import invalidate_home_metrics


logger = logging.getLogger(__name__)


async def auto_assign_tasks(*, home_id: str, start_date: datetime | None = None) -> list[Assignment]:
    """Hand out every active task of a home in one round-robin pass.

    Members are ordered by ascending total points, so the member with the
    fewest points is served first. Task i goes to member i mod M.

    Args:
        home_id: Home to assign work in
        start_date: Assigned date of the new work (defaults to now)

    Returns:
        Created assignments; empty when the home has no active tasks or members

    Raises:
        db_client.DuplicateRecordError: If a member already holds a pending
            assignment for the same task on the same day
    """
    with span("assignments.auto_assign_tasks"):
        await homes.get_home(home_id)
        tasks = await homes.list_active_tasks(home_id)
        members = await homes.list_active_members(home_id)

        if not tasks or not members:
            logger.info(
                "Nothing to assign in home %s (%d tasks, %d members)",
                home_id,
                len(tasks),
                len(members),
            )
            return []

        assigned_on = (start_date or utc_now()).date()
        created: list[Assignment] = []
        for index, task in enumerate(tasks):
            member = members[index % len(members)]
            record = await db_client.create_record(
                collection="task_assignments",
                data={
                    "home_id": home_id,
                    "task_id": task.id,
                    "member_id": member.id,
                    "assigned_date": assigned_on.isoformat(),
                    "due_date": due_date_for(task.frequency, assigned_on).isoformat(),
                    "status": AssignmentStatus.PENDING,
                },
            )
            created.append(Assignment(**record))

        await invalidate_home_metrics(home_id)
        logger.info("Auto-assigned %d tasks to %d members in home %s", len(created), len(members), home_id)
        return created


async def expire_pending_before(*, home_id: str, cutoff: str) -> int:
    """Expire every pending assignment of a home assigned on or before `cutoff` (YYYY-MM-DD)."""
    return await db_client.update_records(
        collection="task_assignments",
        filter_query=(
            f'home_id = "{db_client.sanitize_param(home_id)}" '
            f'&& status = "{AssignmentStatus.PENDING}" && assigned_date <= "{cutoff}"'
        ),
        data={"status": AssignmentStatus.SKIPPED_EXPIRED},
    )


async def close_cycle_and_reassign(*, home_id: str, reference: datetime | None = None) -> CycleRolloverResult:
    """Expire leftovers from earlier cycles, then auto-assign at the current cycle start.

    This entry point is unconditional; use check_and_start_cycle_if_needed
    from anything that may run more than once per boundary.
    """
    with span("assignments.close_cycle_and_reassign"):
        home = await homes.get_home(home_id)
        window = cycle_window(home.rotation_policy, reference)

        closed = await expire_pending_before(
            home_id=home_id,
            cutoff=previous_cycle_cutoff(home.rotation_policy, reference),
        )
        assigned = await auto_assign_tasks(home_id=home_id, start_date=window.start)

        await invalidate_home_metrics(home_id)
        logger.info("Rolled over home %s: closed=%d assigned=%d", home_id, closed, len(assigned))
        return CycleRolloverResult(closed=closed, assigned=len(assigned))


async def check_and_start_cycle_if_needed(*, home_id: str, reference: datetime | None = None) -> CycleCheckResult:
    """Roll the home over unless the current cycle already has assignments."""
    with span("assignments.check_and_start_cycle_if_needed"):
        home = await homes.get_home(home_id)
        window = cycle_window(home.rotation_policy, reference)

        existing = await db_client.get_first_record(
            collection="task_assignments",
            filter_query=(
                f'home_id = "{db_client.sanitize_param(home_id)}" '
                f'&& assigned_date >= "{window.first_day}" && assigned_date <= "{window.last_day}"'
            ),
        )
        if existing:
            logger.debug("Cycle starting %s already started for home %s", window.first_day, home_id)
            return CycleCheckResult(new_cycle_started=False)

        result = await close_cycle_and_reassign(home_id=home_id, reference=reference)
        return CycleCheckResult(new_cycle_started=True, assignments=result.assigned)


async def reassign_pending_tasks(*, home_id: str, today: datetime | None = None) -> ReassignResult:
    """Move every pending assignment of a home to a different active member.

    The old row becomes skipped_reassigned and a fresh pending row is created
    for a randomly chosen member other than the current holder, assigned
    today and due in `settings.reclaim_due_days`. Work held by the only
    active member stays where it is.
    """
    with span("assignments.reassign_pending_tasks"):
        members = await homes.list_active_members(home_id)
        records = await db_client.list_records(
            collection="task_assignments",
            filter_query=f'home_id = "{db_client.sanitize_param(home_id)}" && status = "{AssignmentStatus.PENDING}"',
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )

        assigned_on = (today or utc_now()).date()
        due_on = assigned_on + timedelta(days=settings.reclaim_due_days)
        reassigned = 0

        for assignment in (Assignment(**record) for record in records):
            candidates = [m for m in members if m.id != assignment.member_id]
            if not candidates:
                logger.debug("No other member to take assignment %s", assignment.id)
                continue
            new_member = random.choice(candidates)  # noqa: S311

            try:
                await state_machine.transition_assignment(
                    assignment_id=assignment.id,
                    to_status=AssignmentStatus.SKIPPED_REASSIGNED,
                )
            except ConflictError:
                # Completed or cancelled since it was listed
                continue

            try:
                await db_client.create_record(
                    collection="task_assignments",
                    data={
                        "home_id": home_id,
                        "task_id": assignment.task_id,
                        "member_id": new_member.id,
                        "assigned_date": assigned_on.isoformat(),
                        "due_date": due_on.isoformat(),
                        "status": AssignmentStatus.PENDING,
                    },
                )
            except db_client.DuplicateRecordError:
                await db_client.update_record(
                    collection="task_assignments",
                    record_id=assignment.id,
                    data={"status": AssignmentStatus.PENDING},
                )
                logger.warning(
                    "Member %s already holds task %s today; kept assignment %s",
                    new_member.id,
                    assignment.task_id,
                    assignment.id,
                )
                continue

            reassigned += 1

        await invalidate_home_metrics(home_id)
        logger.info("Reassigned %d pending assignments in home %s", reassigned, home_id)
        return ReassignResult(reassigned=reassigned)


async def list_member_assignments(
    *,
    member_id: str,
    status: AssignmentStatus | str | None = None,
) -> list[Assignment]:
    """A member's assignments, newest first, optionally filtered by status."""
    filter_query = f'member_id = "{db_client.sanitize_param(member_id)}"'
    if status is not None:
        try:
            status = AssignmentStatus(status)
        except ValueError as e:
            msg = f"Unknown assignment status: {status}"
            raise InvalidInputError(msg) from e
        filter_query += f' && status = "{status}"'
    records = await db_client.list_records(
        collection="task_assignments",
        filter_query=filter_query,
        sort="-assigned_date,-id",
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [Assignment(**record) for record in records]
