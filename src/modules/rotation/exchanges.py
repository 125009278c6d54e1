"""Swap and help requests between members of a home.

A member holding a pending assignment asks a housemate to take it over with
request_task_exchange. The request is either addressed to one member or open
to the whole home. respond_to_exchange_request accepts or rejects it.

Key Concepts:
- One open request per assignment, enforced by a partial unique index.
- Accepting hands the assignment over through the state machine, as a
  conditional write on the assignment still being pending and still held by
  the requester. A request can therefore never move work that was cancelled
  or completed in the meantime.
- The request itself moves out of `pending` with a conditional write too. If
  two members accept at once, the loser's hand over is undone.
- Swap and help move the work the same way; the type only tells the
  responder what is being asked.
"""

import logging
from datetime import datetime

from src.core import db_client
from src.core.config import Constants
from src.core.errors import ConflictError, NotEligibleError, validate_input
from src.core.logging import span
from src.domain.assignment import (
    Assignment,
    AssignmentStatus,
    ExchangeRequest,
    ExchangeRequestStatus,
    ExchangeRequestType,
)
from src.domain.create_models import ExchangeRequestCreate
from src.domain.member import Member, MemberStatus
from src.modules.rotation import homes, state_machine
from src.modules.rotation.cycles import utc_now
from src.modules.rotation.metrics_cache import invalidate_home_metrics


logger = logging.getLogger(__name__)


def _ensure_housemate(member: Member, *, home_id: str, role: str) -> None:
    if member.status != MemberStatus.ACTIVE:
        msg = f"{role.capitalize()} {member.id} is not active"
        raise NotEligibleError(msg)
    if member.home_id != home_id:
        msg = f"{role.capitalize()} {member.id} is not in home {home_id}"
        raise NotEligibleError(msg)


async def get_exchange_request(request_id: str) -> ExchangeRequest:
    return ExchangeRequest(**await db_client.get_record(collection="exchange_requests", record_id=request_id))


async def request_task_exchange(
    *,
    assignment_id: str,
    requester_id: str,
    request_type: ExchangeRequestType | str = ExchangeRequestType.SWAP,
    target_member_id: str | None = None,
    message: str = "",
) -> ExchangeRequest:
    """Ask a housemate, or anyone in the home, to take over a pending assignment.

    Args:
        assignment_id: Assignment to hand over
        requester_id: Member asking; must hold the assignment
        request_type: "swap" or "help"
        target_member_id: Member being asked; None opens the request to the home
        message: Optional note for the responder

    Returns:
        The pending request

    Raises:
        InvalidInputError: For an unknown request type or an overlong message
        NotEligibleError: If the requester does not hold the assignment, or the
            target is the requester, inactive or in another home
        ConflictError: If the assignment is not pending or already has an open request
        db_client.RecordNotFoundError: For unknown assignment or member ids
    """
    with span("exchanges.request_task_exchange"):
        request_data = validate_input(
            ExchangeRequestCreate,
            assignment_id=assignment_id,
            requester_id=requester_id,
            request_type=request_type,
            target_member_id=target_member_id,
            message=message,
        )

        assignment = Assignment(**await db_client.get_record(collection="task_assignments", record_id=assignment_id))
        if assignment.member_id != str(requester_id):
            msg = f"Assignment {assignment_id} does not belong to member {requester_id}"
            raise NotEligibleError(msg)
        if assignment.status != AssignmentStatus.PENDING:
            msg = f"Cannot exchange: assignment {assignment_id} is in {assignment.status} state"
            raise ConflictError(msg)

        requester = await homes.get_member(requester_id)
        _ensure_housemate(requester, home_id=assignment.home_id, role="member")

        if request_data.target_member_id is not None:
            if request_data.target_member_id == requester.id:
                msg = "Cannot ask yourself to take over your own assignment"
                raise NotEligibleError(msg)
            target = await homes.get_member(request_data.target_member_id)
            _ensure_housemate(target, home_id=assignment.home_id, role="target")

        try:
            record = await db_client.create_record(
                collection="exchange_requests",
                data={
                    "home_id": assignment.home_id,
                    "assignment_id": assignment.id,
                    "requester_id": requester.id,
                    "target_member_id": request_data.target_member_id,
                    "request_type": request_data.request_type,
                    "status": ExchangeRequestStatus.PENDING,
                    "message": request_data.message,
                },
            )
        except db_client.DuplicateRecordError as e:
            msg = f"Assignment {assignment_id} already has an open exchange request"
            raise ConflictError(msg) from e

        logger.info(
            "Member %s requested a %s for assignment %s",
            requester.id,
            request_data.request_type,
            assignment.id,
        )
        return ExchangeRequest(**record)


async def _accept(request: ExchangeRequest, responder: Member, moment: datetime) -> ExchangeRequest:
    await state_machine.hand_over_assignment(
        assignment_id=request.assignment_id,
        from_member_id=request.requester_id,
        to_member_id=responder.id,
    )

    closed = await db_client.update_record_if(
        collection="exchange_requests",
        record_id=request.id,
        data={
            "status": ExchangeRequestStatus.ACCEPTED,
            "responder_id": responder.id,
            "responded_at": moment.isoformat(),
        },
        condition=f'status = "{ExchangeRequestStatus.PENDING}"',
    )
    if closed is None:
        await state_machine.hand_over_assignment(
            assignment_id=request.assignment_id,
            from_member_id=responder.id,
            to_member_id=request.requester_id,
        )
        msg = f"Exchange request {request.id} was already answered"
        raise ConflictError(msg)

    await invalidate_home_metrics(request.home_id)
    return ExchangeRequest(**closed)


async def respond_to_exchange_request(
    *,
    request_id: str,
    responder_id: str,
    accept: bool,
    now: datetime | None = None,
) -> ExchangeRequest:
    """Accept or reject an open exchange request.

    Accepting moves the assignment to the responder; it keeps its task and dates.

    Raises:
        NotEligibleError: If the responder is not the target of an addressed
            request, is the requester, or is not an active member of the home
        ConflictError: If the request was already answered, or the assignment
            is no longer pending with the requester
        db_client.RecordNotFoundError: For unknown request or member ids
    """
    with span("exchanges.respond_to_exchange_request"):
        request = await get_exchange_request(request_id)
        if request.status != ExchangeRequestStatus.PENDING:
            msg = f"Exchange request {request_id} was already {request.status}"
            raise ConflictError(msg)

        responder = await homes.get_member(responder_id)
        if request.target_member_id is not None and request.target_member_id != responder.id:
            msg = f"Exchange request {request_id} is addressed to member {request.target_member_id}"
            raise NotEligibleError(msg)
        if responder.id == request.requester_id:
            msg = "Cannot answer your own exchange request"
            raise NotEligibleError(msg)
        _ensure_housemate(responder, home_id=request.home_id, role="member")

        moment = now or utc_now()
        if accept:
            answered = await _accept(request, responder, moment)
        else:
            answered = await db_client.update_record_if(
                collection="exchange_requests",
                record_id=request.id,
                data={
                    "status": ExchangeRequestStatus.REJECTED,
                    "responder_id": responder.id,
                    "responded_at": moment.isoformat(),
                },
                condition=f'status = "{ExchangeRequestStatus.PENDING}"',
            )
            if answered is None:
                msg = f"Exchange request {request_id} was already answered"
                raise ConflictError(msg)
            answered = ExchangeRequest(**answered)

        logger.info("Member %s %s exchange request %s", responder.id, answered.status, request_id)
        return answered


async def list_exchange_requests(member_id: str, *, include_answered: bool = False) -> list[ExchangeRequest]:
    """Requests a member sent or was asked, newest first.

    Open requests without a target are listed for every active member of the home.
    """
    with span("exchanges.list_exchange_requests"):
        member = await homes.get_member(member_id)
        member_param = db_client.sanitize_param(member.id)
        home_param = db_client.sanitize_param(member.home_id)

        involved = await db_client.list_records(
            collection="exchange_requests",
            filter_query=(
                f'home_id = "{home_param}" '
                f'&& (requester_id = "{member_param}" || target_member_id = "{member_param}" '
                f'|| responder_id = "{member_param}")'
            ),
            sort="-created,-id",
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )
        open_to_home = await db_client.list_records(
            collection="exchange_requests",
            filter_query=(
                f'home_id = "{home_param}" && status = "{ExchangeRequestStatus.PENDING}" '
                f'&& requester_id != "{member_param}"'
            ),
            sort="-created,-id",
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )

        seen: set[str] = set()
        requests: list[ExchangeRequest] = []
        for record in [*involved, *(r for r in open_to_home if r.get("target_member_id") is None)]:
            request = ExchangeRequest(**record)
            if request.id in seen:
                continue
            if not include_answered and request.status != ExchangeRequestStatus.PENDING:
                continue
            seen.add(request.id)
            requests.append(request)

        return sorted(requests, key=lambda r: (r.created or "", int(r.id)), reverse=True)
