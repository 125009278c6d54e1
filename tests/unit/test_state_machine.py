"""Tests for assignment lifecycle transitions."""

import asyncio

import pytest

from src.core.db_client import RecordNotFoundError
from src.core.errors import ConflictError
from src.domain.assignment import AssignmentStatus
from src.modules.rotation import assignments, state_machine


@pytest.mark.unit
class TestCanTransition:
    """Pending is the only state with outgoing transitions."""

    @pytest.mark.parametrize(
        "target",
        ["completed", "skipped_cancelled", "skipped_expired", "skipped_reassigned"],
    )
    def test_pending_moves_to_any_terminal_state(self, target):
        assert state_machine.can_transition(AssignmentStatus.PENDING, target)

    @pytest.mark.parametrize("current", ["completed", "skipped_cancelled", "skipped_expired", "skipped_reassigned"])
    def test_terminal_states_are_final(self, current):
        for target in AssignmentStatus:
            assert not state_machine.can_transition(current, target)

    def test_pending_to_pending_is_not_a_transition(self):
        assert not state_machine.can_transition("pending", "pending")


@pytest.mark.unit
class TestTransitionAssignment:
    """Tests for the conditional write behind every transition."""

    @pytest.fixture
    async def assignment(self, home, members, tasks):
        created = await assignments.auto_assign_tasks(home_id=home.id)
        return created[0]

    async def test_transition_updates_status_and_extra_fields(self, assignment):
        record = await state_machine.transition_assignment(
            assignment_id=assignment.id,
            to_status=AssignmentStatus.COMPLETED,
            extra={"completed_at": "2026-10-21T10:00:00+00:00"},
        )

        assert record["status"] == "completed"
        assert record["completed_at"] == "2026-10-21T10:00:00+00:00"

    async def test_second_transition_conflicts_with_current_state(self, assignment):
        await state_machine.transition_assignment(
            assignment_id=assignment.id,
            to_status=AssignmentStatus.SKIPPED_CANCELLED,
        )

        with pytest.raises(ConflictError, match="Cannot complete: assignment .* is in skipped_cancelled state"):
            await state_machine.transition_assignment(
                assignment_id=assignment.id,
                to_status=AssignmentStatus.COMPLETED,
            )

    async def test_concurrent_transitions_have_one_winner(self, assignment):
        results = await asyncio.gather(
            state_machine.transition_assignment(assignment_id=assignment.id, to_status=AssignmentStatus.COMPLETED),
            state_machine.transition_assignment(
                assignment_id=assignment.id,
                to_status=AssignmentStatus.SKIPPED_CANCELLED,
            ),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, dict)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(winners) == 1
        assert len(conflicts) == 1

    async def test_transition_back_to_pending_is_rejected(self, assignment):
        with pytest.raises(ValueError, match="Unsupported assignment transition"):
            await state_machine.transition_assignment(
                assignment_id=assignment.id,
                to_status=AssignmentStatus.PENDING,
            )

    async def test_unknown_assignment(self, patched_db):
        with pytest.raises(RecordNotFoundError):
            await state_machine.transition_assignment(
                assignment_id="999",
                to_status=AssignmentStatus.COMPLETED,
            )
