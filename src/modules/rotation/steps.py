"""Per-task step checklists.

A task may carry an ordered list of steps. While an assignment is pending its
holder ticks steps off; each tick is stored against the assignment, so the
same task assigned next cycle starts with a clean checklist.
"""

import logging
from datetime import datetime

from src.core import db_client
from src.core.config import Constants
from src.core.errors import ConflictError, InvalidInputError, NotEligibleError, validate_input
from src.core.logging import span
from src.domain.assignment import Assignment, AssignmentStatus
from src.domain.create_models import TaskStepCreate
from src.domain.task import TaskStep, TaskStepCompletion
from src.models.service_models import StepProgress
from src.modules.rotation import homes
from src.modules.rotation.cycles import utc_now


logger = logging.getLogger(__name__)


async def create_task_step(
    *,
    task_id: str,
    title: str,
    description: str = "",
    is_optional: bool = False,
    estimated_minutes: int | None = None,
    step_order: int | None = None,
) -> TaskStep:
    """Add a step to a task's checklist.

    Without `step_order` the step goes after the current last one.

    Raises:
        InvalidInputError: For a blank title or non-positive order or estimate
        db_client.RecordNotFoundError: If the task does not exist
    """
    with span("steps.create_task_step"):
        step_data = validate_input(
            TaskStepCreate,
            task_id=task_id,
            title=title,
            description=description,
            is_optional=is_optional,
            estimated_minutes=estimated_minutes,
            step_order=step_order,
        )
        task = await homes.get_task(task_id)

        order = step_data.step_order
        if order is None:
            last = await db_client.get_first_record(
                collection="task_steps",
                filter_query=f'task_id = "{db_client.sanitize_param(task.id)}"',
                sort="-step_order",
            )
            order = last["step_order"] + 1 if last else 1

        record = await db_client.create_record(
            collection="task_steps",
            data={
                "task_id": task.id,
                "step_order": order,
                "title": step_data.title,
                "description": step_data.description,
                "is_optional": step_data.is_optional,
                "estimated_minutes": step_data.estimated_minutes,
            },
        )
        logger.info("Added step %s to task %s", record["id"], task.id)
        return TaskStep(**record)


async def list_task_steps(task_id: str) -> list[TaskStep]:
    records = await db_client.list_records(
        collection="task_steps",
        filter_query=f'task_id = "{db_client.sanitize_param(task_id)}"',
        sort="step_order,id",
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [TaskStep(**record) for record in records]


async def delete_task_step(step_id: str) -> None:
    """Remove a step together with every tick recorded against it."""
    with span("steps.delete_task_step"):
        await db_client.get_record(collection="task_steps", record_id=step_id)
        for record in await db_client.list_records(
            collection="task_step_completions",
            filter_query=f'step_id = "{db_client.sanitize_param(step_id)}"',
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        ):
            await db_client.delete_record(collection="task_step_completions", record_id=record["id"])
        await db_client.delete_record(collection="task_steps", record_id=step_id)


async def delete_task_steps(task_id: str) -> int:
    """Clear a task's whole checklist; returns how many steps were removed."""
    with span("steps.delete_task_steps"):
        task_steps = await list_task_steps(task_id)
        for step in task_steps:
            await delete_task_step(step.id)
        if task_steps:
            logger.info("Removed %d step(s) from task %s", len(task_steps), task_id)
        return len(task_steps)


async def _checkable_step(*, step_id: str, assignment_id: str, member_id: str) -> tuple[TaskStep, Assignment]:
    step = TaskStep(**await db_client.get_record(collection="task_steps", record_id=step_id))
    assignment = Assignment(**await db_client.get_record(collection="task_assignments", record_id=assignment_id))
    if step.task_id != assignment.task_id:
        msg = f"Step {step_id} does not belong to the task of assignment {assignment_id}"
        raise InvalidInputError(msg)
    if assignment.member_id != str(member_id):
        msg = f"Assignment {assignment_id} does not belong to member {member_id}"
        raise NotEligibleError(msg)
    if assignment.status != AssignmentStatus.PENDING:
        msg = f"Cannot change steps: assignment {assignment_id} is in {assignment.status} state"
        raise ConflictError(msg)
    return step, assignment


async def complete_task_step(
    *,
    step_id: str,
    assignment_id: str,
    member_id: str,
    now: datetime | None = None,
) -> TaskStepCompletion:
    """Tick a step off on a pending assignment.

    Raises:
        InvalidInputError: If the step belongs to another task
        NotEligibleError: If the assignment belongs to another member
        ConflictError: If the assignment is not pending or the step is already ticked
        db_client.RecordNotFoundError: For unknown step or assignment ids
    """
    with span("steps.complete_task_step"):
        step, assignment = await _checkable_step(step_id=step_id, assignment_id=assignment_id, member_id=member_id)
        try:
            record = await db_client.create_record(
                collection="task_step_completions",
                data={
                    "step_id": step.id,
                    "assignment_id": assignment.id,
                    "completed_by": assignment.member_id,
                    "completed_at": (now or utc_now()).isoformat(),
                },
            )
        except db_client.DuplicateRecordError as e:
            msg = f"Step {step_id} is already completed for assignment {assignment_id}"
            raise ConflictError(msg) from e
        return TaskStepCompletion(**record)


async def uncomplete_task_step(*, step_id: str, assignment_id: str, member_id: str) -> bool:
    """Untick a step. Returns False when it was not ticked."""
    with span("steps.uncomplete_task_step"):
        step, assignment = await _checkable_step(step_id=step_id, assignment_id=assignment_id, member_id=member_id)
        record = await db_client.get_first_record(
            collection="task_step_completions",
            filter_query=(
                f'step_id = "{db_client.sanitize_param(step.id)}" '
                f'&& assignment_id = "{db_client.sanitize_param(assignment.id)}"'
            ),
        )
        if record is None:
            return False
        await db_client.delete_record(collection="task_step_completions", record_id=record["id"])
        return True


async def get_step_progress(assignment_id: str) -> StepProgress:
    """Which steps of the assignment's task are ticked, and which required ones are still open."""
    assignment = Assignment(**await db_client.get_record(collection="task_assignments", record_id=assignment_id))
    task_steps = await list_task_steps(assignment.task_id)
    ticked = {
        record["step_id"]
        for record in await db_client.list_records(
            collection="task_step_completions",
            filter_query=f'assignment_id = "{db_client.sanitize_param(assignment.id)}"',
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )
    }
    return StepProgress(
        assignment_id=assignment.id,
        total_steps=len(task_steps),
        completed_step_ids=[step.id for step in task_steps if step.id in ticked],
        missing_required_step_ids=[step.id for step in task_steps if not step.is_optional and step.id not in ticked],
    )
