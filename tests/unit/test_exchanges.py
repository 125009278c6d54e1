"""Tests for swap and help requests between members."""

import asyncio

import pytest

from src.core.errors import ConflictError, InvalidInputError, NotEligibleError
from src.domain.assignment import AssignmentStatus, ExchangeRequestStatus, ExchangeRequestType
from src.modules.rotation import assignments, cancellation, completion, exchanges, homes, state_machine
from tests.conftest import NOW


@pytest.fixture
async def assigned(home, members, tasks):
    """Dishes to Ana, Mop floor to Ben, Take out bins to Cleo."""
    return await assignments.auto_assign_tasks(home_id=home.id)


@pytest.mark.unit
class TestRequestExchange:
    """Tests for request_task_exchange."""

    async def test_addressed_request(self, assigned, members):
        request = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id,
            requester_id=members[0].id,
            target_member_id=members[1].id,
            message="Can you take dishes tonight?",
        )

        assert request.status == ExchangeRequestStatus.PENDING
        assert request.request_type == ExchangeRequestType.SWAP
        assert request.target_member_id == members[1].id
        assert request.home_id == assigned[0].home_id

    async def test_only_holder_can_ask(self, assigned, members):
        with pytest.raises(NotEligibleError, match="does not belong"):
            await exchanges.request_task_exchange(assignment_id=assigned[0].id, requester_id=members[1].id)

    async def test_cannot_target_self(self, assigned, members):
        with pytest.raises(NotEligibleError):
            await exchanges.request_task_exchange(
                assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[0].id
            )

    async def test_target_must_share_home(self, assigned, members):
        other_home = await homes.create_home(name="Elm Court")
        outsider = await homes.add_member(home_id=other_home.id, name="Dev")

        with pytest.raises(NotEligibleError, match="not in home"):
            await exchanges.request_task_exchange(
                assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=outsider.id
            )

    async def test_inactive_target_rejected(self, assigned, members):
        await homes.remove_member(members[2].id)

        with pytest.raises(NotEligibleError, match="not active"):
            await exchanges.request_task_exchange(
                assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[2].id
            )

    async def test_unknown_type_rejected(self, assigned, members):
        with pytest.raises(InvalidInputError):
            await exchanges.request_task_exchange(
                assignment_id=assigned[0].id, requester_id=members[0].id, request_type="trade"
            )

    async def test_one_open_request_per_assignment(self, assigned, members):
        await exchanges.request_task_exchange(assignment_id=assigned[0].id, requester_id=members[0].id)

        with pytest.raises(ConflictError, match="open exchange request"):
            await exchanges.request_task_exchange(
                assignment_id=assigned[0].id, requester_id=members[0].id, request_type="help"
            )

    async def test_answered_request_frees_assignment(self, assigned, members):
        first = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[1].id
        )
        await exchanges.respond_to_exchange_request(request_id=first.id, responder_id=members[1].id, accept=False)

        second = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[2].id
        )

        assert second.status == ExchangeRequestStatus.PENDING

    async def test_completed_assignment_cannot_be_exchanged(self, assigned, members):
        await completion.complete_task(assignment_id=assigned[0].id, member_id=members[0].id)

        with pytest.raises(ConflictError, match="completed state"):
            await exchanges.request_task_exchange(assignment_id=assigned[0].id, requester_id=members[0].id)


@pytest.mark.unit
class TestRespondToExchange:
    """Tests for accepting and rejecting requests."""

    async def test_accept_hands_assignment_over(self, assigned, members, patched_db):
        request = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[1].id
        )

        answered = await exchanges.respond_to_exchange_request(
            request_id=request.id, responder_id=members[1].id, accept=True
        )

        moved = await patched_db.get_record(collection="task_assignments", record_id=assigned[0].id)
        assert answered.status == ExchangeRequestStatus.ACCEPTED
        assert answered.responder_id == members[1].id
        assert answered.responded_at == NOW.isoformat()
        assert moved["member_id"] == members[1].id
        assert moved["status"] == AssignmentStatus.PENDING
        assert moved["due_date"] == assigned[0].due_date

    async def test_new_holder_can_complete(self, assigned, members):
        request = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id, requester_id=members[0].id, request_type="help"
        )
        await exchanges.respond_to_exchange_request(request_id=request.id, responder_id=members[2].id, accept=True)

        result = await completion.complete_task(assignment_id=assigned[0].id, member_id=members[2].id)

        assert result.member.id == members[2].id
        with pytest.raises(NotEligibleError):
            await completion.complete_task(assignment_id=assigned[0].id, member_id=members[0].id)

    async def test_reject_keeps_holder(self, assigned, members, patched_db):
        request = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[1].id
        )

        answered = await exchanges.respond_to_exchange_request(
            request_id=request.id, responder_id=members[1].id, accept=False
        )

        kept = await patched_db.get_record(collection="task_assignments", record_id=assigned[0].id)
        assert answered.status == ExchangeRequestStatus.REJECTED
        assert kept["member_id"] == members[0].id

    async def test_addressed_request_only_for_target(self, assigned, members):
        request = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[1].id
        )

        with pytest.raises(NotEligibleError, match="addressed to"):
            await exchanges.respond_to_exchange_request(request_id=request.id, responder_id=members[2].id, accept=True)

    async def test_requester_cannot_answer(self, assigned, members):
        request = await exchanges.request_task_exchange(assignment_id=assigned[0].id, requester_id=members[0].id)

        with pytest.raises(NotEligibleError):
            await exchanges.respond_to_exchange_request(request_id=request.id, responder_id=members[0].id, accept=True)

    async def test_answer_twice_conflicts(self, assigned, members):
        request = await exchanges.request_task_exchange(assignment_id=assigned[0].id, requester_id=members[0].id)
        await exchanges.respond_to_exchange_request(request_id=request.id, responder_id=members[1].id, accept=False)

        with pytest.raises(ConflictError, match="already rejected"):
            await exchanges.respond_to_exchange_request(request_id=request.id, responder_id=members[2].id, accept=True)

    async def test_cancelled_assignment_cannot_be_accepted(self, assigned, members, patched_db):
        request = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[1].id
        )
        await cancellation.cancel_task(assignment_id=assigned[0].id, member_id=members[0].id)

        with pytest.raises(ConflictError, match="skipped_cancelled state"):
            await exchanges.respond_to_exchange_request(request_id=request.id, responder_id=members[1].id, accept=True)

        still_open = await exchanges.get_exchange_request(request.id)
        assert still_open.status == ExchangeRequestStatus.PENDING

    async def test_concurrent_accepts_move_work_once(self, assigned, members, patched_db):
        request = await exchanges.request_task_exchange(assignment_id=assigned[0].id, requester_id=members[0].id)

        results = await asyncio.gather(
            exchanges.respond_to_exchange_request(request_id=request.id, responder_id=members[1].id, accept=True),
            exchanges.respond_to_exchange_request(request_id=request.id, responder_id=members[2].id, accept=True),
            return_exceptions=True,
        )

        accepted = [r for r in results if not isinstance(r, Exception)]
        assert len(accepted) == 1
        assert all(isinstance(r, ConflictError) for r in results if isinstance(r, Exception))
        holder = (await patched_db.get_record(collection="task_assignments", record_id=assigned[0].id))["member_id"]
        assert holder == accepted[0].responder_id


@pytest.mark.unit
class TestHandOver:
    """Tests for the state machine hand over."""

    async def test_holder_changed_conflicts(self, assigned, members):
        with pytest.raises(ConflictError, match="no longer held"):
            await state_machine.hand_over_assignment(
                assignment_id=assigned[0].id, from_member_id=members[1].id, to_member_id=members[2].id
            )

    async def test_same_task_twice_for_one_member_conflicts(self, assigned, members, patched_db):
        await patched_db.create_record(
            collection="task_assignments",
            data={
                "home_id": assigned[0].home_id,
                "task_id": assigned[0].task_id,
                "member_id": members[1].id,
                "assigned_date": assigned[0].assigned_date,
                "due_date": assigned[0].due_date,
                "status": "pending",
            },
        )

        with pytest.raises(ConflictError):
            await state_machine.hand_over_assignment(
                assignment_id=assigned[0].id, from_member_id=members[0].id, to_member_id=members[1].id
            )


@pytest.mark.unit
class TestListExchangeRequests:
    """Tests for list_exchange_requests."""

    async def test_lists_sent_addressed_and_open(self, assigned, members):
        addressed = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[1].id
        )
        open_request = await exchanges.request_task_exchange(assignment_id=assigned[2].id, requester_id=members[2].id)

        for_ana = await exchanges.list_exchange_requests(members[0].id)
        for_ben = await exchanges.list_exchange_requests(members[1].id)
        for_cleo = await exchanges.list_exchange_requests(members[2].id)

        assert {r.id for r in for_ana} == {addressed.id, open_request.id}
        assert {r.id for r in for_ben} == {addressed.id, open_request.id}
        assert [r.id for r in for_cleo] == [open_request.id]

    async def test_answered_hidden_by_default(self, assigned, members):
        request = await exchanges.request_task_exchange(
            assignment_id=assigned[0].id, requester_id=members[0].id, target_member_id=members[1].id
        )
        await exchanges.respond_to_exchange_request(request_id=request.id, responder_id=members[1].id, accept=False)

        assert await exchanges.list_exchange_requests(members[0].id) == []
        history = await exchanges.list_exchange_requests(members[0].id, include_answered=True)
        assert [r.status for r in history] == [ExchangeRequestStatus.REJECTED]
