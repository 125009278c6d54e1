"""Tests for task step checklists."""

import pytest

from src.core.db_client import RecordNotFoundError
from src.core.errors import ConflictError, InvalidInputError, NotEligibleError
from src.modules.gamification import challenges
from src.modules.rotation import assignments, completion, steps
from tests.conftest import NOW


@pytest.fixture
async def assigned(home, members, tasks):
    """Dishes to Ana, Mop floor to Ben, Take out bins to Cleo."""
    return await assignments.auto_assign_tasks(home_id=home.id)


@pytest.fixture
async def dish_steps(tasks):
    """Rinse, scrub and an optional dry step on Dishes."""
    return [
        await steps.create_task_step(task_id=tasks[0].id, title="Rinse"),
        await steps.create_task_step(task_id=tasks[0].id, title="Scrub", estimated_minutes=10),
        await steps.create_task_step(task_id=tasks[0].id, title="Dry", is_optional=True),
    ]


@pytest.mark.unit
class TestTaskSteps:
    """Tests for the per-task checklist itself."""

    async def test_steps_append_in_order(self, dish_steps, tasks):
        listed = await steps.list_task_steps(tasks[0].id)

        assert [s.title for s in listed] == ["Rinse", "Scrub", "Dry"]
        assert [s.step_order for s in listed] == [1, 2, 3]
        assert listed[2].is_optional is True
        assert listed[1].estimated_minutes == 10

    async def test_explicit_order(self, dish_steps, tasks):
        first = await steps.create_task_step(task_id=tasks[0].id, title="Clear table", step_order=1)

        listed = await steps.list_task_steps(tasks[0].id)

        assert [s.title for s in listed] == ["Rinse", "Clear table", "Scrub", "Dry"]
        assert listed[1].id == first.id
        assert [s.step_order for s in listed] == [1, 1, 2, 3]

    async def test_blank_title_rejected(self, tasks):
        with pytest.raises(InvalidInputError):
            await steps.create_task_step(task_id=tasks[0].id, title="")

    async def test_unknown_task(self, home):
        with pytest.raises(RecordNotFoundError):
            await steps.create_task_step(task_id="999", title="Rinse")

    async def test_other_tasks_have_no_steps(self, dish_steps, tasks):
        assert await steps.list_task_steps(tasks[1].id) == []

    async def test_delete_removes_ticks(self, dish_steps, assigned, members, patched_db):
        await steps.complete_task_step(step_id=dish_steps[0].id, assignment_id=assigned[0].id, member_id=members[0].id)

        await steps.delete_task_step(dish_steps[0].id)

        assert [s.title for s in await steps.list_task_steps(dish_steps[0].task_id)] == ["Scrub", "Dry"]
        assert patched_db.rows("task_step_completions") == []

    async def test_clear_checklist(self, dish_steps, tasks):
        assert await steps.delete_task_steps(tasks[0].id) == 3
        assert await steps.list_task_steps(tasks[0].id) == []
        assert await steps.delete_task_steps(tasks[0].id) == 0


@pytest.mark.unit
class TestStepCompletion:
    """Tests for ticking steps off on an assignment."""

    async def test_complete_and_progress(self, dish_steps, assigned, members):
        tick = await steps.complete_task_step(
            step_id=dish_steps[0].id, assignment_id=assigned[0].id, member_id=members[0].id
        )

        progress = await steps.get_step_progress(assigned[0].id)

        assert tick.completed_by == members[0].id
        assert tick.completed_at == NOW.isoformat()
        assert progress.total_steps == 3
        assert progress.completed_step_ids == [dish_steps[0].id]
        assert progress.missing_required_step_ids == [dish_steps[1].id]
        assert progress.all_required_done is False

    async def test_optional_steps_not_required(self, dish_steps, assigned, members):
        for step in dish_steps[:2]:
            await steps.complete_task_step(step_id=step.id, assignment_id=assigned[0].id, member_id=members[0].id)

        progress = await steps.get_step_progress(assigned[0].id)

        assert progress.all_required_done is True

    async def test_task_without_steps_is_done(self, assigned):
        progress = await steps.get_step_progress(assigned[2].id)

        assert progress.total_steps == 0
        assert progress.all_required_done is True

    async def test_tick_twice_conflicts(self, dish_steps, assigned, members):
        await steps.complete_task_step(step_id=dish_steps[0].id, assignment_id=assigned[0].id, member_id=members[0].id)

        with pytest.raises(ConflictError, match="already completed"):
            await steps.complete_task_step(
                step_id=dish_steps[0].id, assignment_id=assigned[0].id, member_id=members[0].id
            )

    async def test_only_holder_ticks(self, dish_steps, assigned, members):
        with pytest.raises(NotEligibleError):
            await steps.complete_task_step(
                step_id=dish_steps[0].id, assignment_id=assigned[0].id, member_id=members[1].id
            )

    async def test_step_of_other_task_rejected(self, dish_steps, assigned, members):
        with pytest.raises(InvalidInputError, match="does not belong"):
            await steps.complete_task_step(
                step_id=dish_steps[0].id, assignment_id=assigned[1].id, member_id=members[1].id
            )

    async def test_completed_assignment_is_frozen(self, dish_steps, assigned, members):
        await completion.complete_task(assignment_id=assigned[0].id, member_id=members[0].id)

        with pytest.raises(ConflictError, match="completed state"):
            await steps.complete_task_step(
                step_id=dish_steps[0].id, assignment_id=assigned[0].id, member_id=members[0].id
            )

    async def test_uncomplete(self, dish_steps, assigned, members):
        await steps.complete_task_step(step_id=dish_steps[0].id, assignment_id=assigned[0].id, member_id=members[0].id)

        removed = await steps.uncomplete_task_step(
            step_id=dish_steps[0].id, assignment_id=assigned[0].id, member_id=members[0].id
        )
        again = await steps.uncomplete_task_step(
            step_id=dish_steps[0].id, assignment_id=assigned[0].id, member_id=members[0].id
        )

        assert removed is True
        assert again is False
        assert (await steps.get_step_progress(assigned[0].id)).completed_step_ids == []


async def all_steps_mastery(home, member):
    template = await challenges.create_challenge_template(
        {
            "name": "by_the_book",
            "title": "By the Book",
            "challenge_type": "individual",
            "category": "mastery",
            "requirements": {"task_count": 1, "all_steps": True},
            "duration_type": "full_cycle",
        }
    )
    return await challenges.instantiate_challenge(template_id=template.id, home_id=home.id, member_id=member.id)


@pytest.mark.unit
class TestStepsAndMastery:
    """Mastery challenges that require every step only count fully stepped work."""

    async def test_progress_waits_for_required_steps(self, home, dish_steps, assigned, members, tasks):
        challenge = await all_steps_mastery(home, members[0])

        skipped = await challenges.update_challenge_progress(
            challenge_id=challenge.id, task_id=tasks[0].id, member_id=members[0].id, assignment_id=assigned[0].id
        )
        for step in dish_steps[:2]:
            await steps.complete_task_step(step_id=step.id, assignment_id=assigned[0].id, member_id=members[0].id)
        counted = await challenges.update_challenge_progress(
            challenge_id=challenge.id, task_id=tasks[0].id, member_id=members[0].id, assignment_id=assigned[0].id
        )

        assert skipped.progress_data.completed_tasks == []
        assert counted.progress_data.completed_tasks == [tasks[0].id]
        assert counted.is_completed is True

    async def test_completion_with_open_steps_not_counted(self, home, dish_steps, assigned, members):
        challenge = await all_steps_mastery(home, members[0])

        await completion.complete_task(assignment_id=assigned[0].id, member_id=members[0].id)

        progress = await challenges.get_challenge_progress(challenge_id=challenge.id, member_id=members[0].id)
        assert progress.progress_data.completed_tasks == []

    async def test_completion_with_all_steps_counted(self, home, dish_steps, assigned, members, tasks):
        challenge = await all_steps_mastery(home, members[0])
        for step in dish_steps[:2]:
            await steps.complete_task_step(step_id=step.id, assignment_id=assigned[0].id, member_id=members[0].id)

        await completion.complete_task(assignment_id=assigned[0].id, member_id=members[0].id)

        progress = await challenges.get_challenge_progress(challenge_id=challenge.id, member_id=members[0].id)
        assert progress.progress_data.completed_tasks == [tasks[0].id]
        assert progress.is_completed is True
