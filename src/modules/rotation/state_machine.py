"""Assignment lifecycle transitions.

An assignment starts PENDING and moves exactly once into a terminal state.
Every transition is a conditional write on `status = "pending"`, so two
concurrent callers can never both move the same assignment.
"""

import logging
from typing import Any

from src.core import db_client
from src.core.errors import ConflictError
from src.core.logging import span
from src.domain.assignment import AssignmentStatus


logger = logging.getLogger(__name__)


TRANSITIONS: dict[AssignmentStatus, set[AssignmentStatus]] = {
    AssignmentStatus.PENDING: {
        AssignmentStatus.COMPLETED,
        AssignmentStatus.SKIPPED_CANCELLED,
        AssignmentStatus.SKIPPED_EXPIRED,
        AssignmentStatus.SKIPPED_REASSIGNED,
    },
    AssignmentStatus.COMPLETED: set(),
    AssignmentStatus.SKIPPED_CANCELLED: set(),
    AssignmentStatus.SKIPPED_EXPIRED: set(),
    AssignmentStatus.SKIPPED_REASSIGNED: set(),
}

_VERBS = {
    AssignmentStatus.COMPLETED: "complete",
    AssignmentStatus.SKIPPED_CANCELLED: "cancel",
    AssignmentStatus.SKIPPED_EXPIRED: "expire",
    AssignmentStatus.SKIPPED_REASSIGNED: "reassign",
}


def can_transition(current: AssignmentStatus | str, target: AssignmentStatus | str) -> bool:
    return AssignmentStatus(target) in TRANSITIONS[AssignmentStatus(current)]


async def transition_assignment(
    *,
    assignment_id: str,
    to_status: AssignmentStatus,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Move a pending assignment into a terminal state.

    Raises:
        ConflictError: If the assignment is no longer pending
        db_client.RecordNotFoundError: If the assignment does not exist
    """
    if not can_transition(AssignmentStatus.PENDING, to_status):
        msg = f"Unsupported assignment transition to {to_status}"
        raise ValueError(msg)

    with span("assignment_state_machine.transition_assignment"):
        updated = await db_client.update_record_if(
            collection="task_assignments",
            record_id=assignment_id,
            data={"status": to_status, **(extra or {})},
            condition=f'status = "{AssignmentStatus.PENDING}"',
        )
        if updated is None:
            current = await db_client.get_record(collection="task_assignments", record_id=assignment_id)
            msg = f"Cannot {_VERBS[to_status]}: assignment {assignment_id} is in {current['status']} state"
            raise ConflictError(msg)

        logger.info("Transitioned assignment %s to %s", assignment_id, to_status)
        return updated


async def hand_over_assignment(*, assignment_id: str, from_member_id: str, to_member_id: str) -> dict[str, Any]:
    """Move a pending assignment from one member to another.

    The row keeps its status, dates and task. The write only lands while the
    assignment is still pending and still held by `from_member_id`, so a hand
    over never races a cancel or a completion.

    Raises:
        ConflictError: If the assignment is no longer pending or changed holder
        db_client.RecordNotFoundError: If the assignment does not exist
    """
    with span("assignment_state_machine.hand_over_assignment"):
        updated = await db_client.update_record_if(
            collection="task_assignments",
            record_id=assignment_id,
            data={"member_id": to_member_id},
            condition=(
                f'status = "{AssignmentStatus.PENDING}" '
                f'&& member_id = "{db_client.sanitize_param(from_member_id)}"'
            ),
        )
        if updated is None:
            current = await db_client.get_record(collection="task_assignments", record_id=assignment_id)
            if current["status"] != AssignmentStatus.PENDING:
                msg = f"Cannot hand over: assignment {assignment_id} is in {current['status']} state"
            else:
                msg = f"Cannot hand over: assignment {assignment_id} is no longer held by member {from_member_id}"
            raise ConflictError(msg)

        logger.info("Handed assignment %s from member %s to member %s", assignment_id, from_member_id, to_member_id)
        return updated
