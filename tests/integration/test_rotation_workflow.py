"""End-to-end rotation and reward workflows on a real SQLite database."""

import pytest

from src.core.errors import ConflictError
from src.domain.assignment import AssignmentStatus
from src.domain.challenge import ChallengeStatus
from src.modules.gamification import challenges, progression
from src.modules.rotation import analytics, assignments, cancellation, completion, homes


@pytest.fixture
async def household(sqlite_db, frozen_now):
    home = await homes.create_home(name="Maple Street")
    kitchen = await homes.create_zone(home_id=home.id, name="Kitchen")
    members = [await homes.add_member(home_id=home.id, name=name) for name in ("Ana", "Ben", "Cleo")]
    tasks = [
        await homes.create_task(home_id=home.id, title="Dishes", effort_points=2, zone_id=kitchen.id),
        await homes.create_task(home_id=home.id, title="Mop floor", effort_points=3, zone_id=kitchen.id),
        await homes.create_task(home_id=home.id, title="Take out bins"),
    ]
    return home, members, tasks


@pytest.mark.integration
async def test_cycle_start_cancel_take_and_complete(household) -> None:
    """Test: start cycle → cancel → another member takes over → completes."""
    home, members, tasks = household
    ana, ben, cleo = members

    # Step 1: The first check of the cycle assigns every task at the cycle start
    started = await assignments.check_and_start_cycle_if_needed(home_id=home.id)
    assert started.new_cycle_started is True
    assert started.assignments == 3
    assert (await assignments.check_and_start_cycle_if_needed(home_id=home.id)).new_cycle_started is False

    # Step 2: Ana releases the dishes
    ana_work = await assignments.list_member_assignments(member_id=ana.id, status=AssignmentStatus.PENDING)
    assert [a.task_id for a in ana_work] == [tasks[0].id]
    released = await cancellation.cancel_task(assignment_id=ana_work[0].id, member_id=ana.id, reason="Away")

    available = await cancellation.list_available_tasks(home_id=home.id)
    assert [(a.task_title, a.cancelled_by_name) for a in available] == [("Dishes", "Ana")]

    # Step 3: Ben takes them and Cleo is too late
    taken = await cancellation.take_cancelled_task(cancellation_id=released.id, member_id=ben.id)
    with pytest.raises(ConflictError):
        await cancellation.take_cancelled_task(cancellation_id=released.id, member_id=cleo.id)
    assert taken.due_date == ana_work[0].due_date

    # Step 4: Ben completes the dishes
    result = await completion.complete_task(assignment_id=taken.id, member_id=ben.id)
    assert result.member.total_points == 2
    assert result.member.current_streak == 1

    metrics = await analytics.get_home_metrics(home_id=home.id)
    assert metrics.total_tasks == 3
    assert metrics.completed_tasks == 1
    assert metrics.completion_percentage == 33


@pytest.mark.integration
async def test_group_challenge_completed_by_task_and_claimed(household) -> None:
    """Test: group challenge → a completion finishes it → each member claims once."""
    home, members, tasks = household
    template = await challenges.create_challenge_template(
        {
            "name": "first_one_counts",
            "title": "First One Counts",
            "challenge_type": "group",
            "category": "collective",
            "requirements": {"total_tasks": 1},
            "duration_type": "full_cycle",
        }
    )
    challenge = await challenges.instantiate_challenge(template_id=template.id, home_id=home.id)
    created = await assignments.auto_assign_tasks(home_id=home.id)

    await completion.complete_task(assignment_id=created[0].id, member_id=members[0].id)

    assert (await challenges.get_challenge(challenge.id)).status == ChallengeStatus.COMPLETED
    claimed = await challenges.claim_reward(challenge_id=challenge.id, member_id=members[2].id)
    assert claimed.xp.new_xp == 26
    with pytest.raises(ConflictError):
        await challenges.claim_reward(challenge_id=challenge.id, member_id=members[2].id)

    ledger = await progression.get_xp_transactions(members[2].id)
    assert [t.amount for t in ledger] == [26]
