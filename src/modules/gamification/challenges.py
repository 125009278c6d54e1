"""Challenge engine: templates, instantiation, progress tracking and reward claims.

This module provides functions for:
- Resolving a template into an active challenge with a concrete window and XP reward
- Routing task completions into each challenge's typed progress
- Claiming rewards exactly once per member and challenge
- Expiring challenges whose window has passed

Key Concepts:
- Individual challenges track one member. Group challenges track every active
  member of the home with one progress row each.
- Collective challenges share a team total. Each member only writes their own
  contribution, and every participant's total is rebuilt as the sum of all
  contributions, so concurrent completions by different members never lose
  a count.
- A reward claim is a conditional write on `xp_awarded = 0`. Only the claim
  that wins it pays out XP.
"""

import logging
import random
from datetime import datetime, timedelta
from typing import Any

from src.core import db_client
from src.core.config import Constants
from src.core.errors import ConflictError, InvalidInputError, NotEligibleError, NotFoundError, validate_input
from src.core.logging import span
from src.domain.challenge import (
    ActiveChallenge,
    ChallengeCategory,
    ChallengeProgress,
    ChallengeStatus,
    ChallengeTemplate,
    ChallengeType,
    CollectiveProgress,
    DurationType,
    initial_progress,
)
from src.domain.create_models import ChallengeTemplateCreate
from src.domain.home import RotationPolicy
from src.domain.member import MasteryLevel, Member, MemberStatus
from src.domain.progression import XPSource
from src.models.service_models import ChallengeStats, ClaimRewardResult
from src.modules.gamification import progression
from src.modules.rotation import homes, steps
from src.modules.rotation.analytics import round_half_up
from src.modules.rotation.cycles import cycle_length_days, cycle_window, utc_now


logger = logging.getLogger(__name__)

CYCLE_ALIGNED_DURATIONS = frozenset({DurationType.FULL_CYCLE, DurationType.MULTI_CYCLE})


def calculate_challenge_xp(
    *,
    base_xp: int,
    challenge_type: ChallengeType | str,
    duration_type: DurationType | str,
    difficulty_multiplier: float = 1.0,
) -> int:
    """XP reward: base x type multiplier x duration multiplier x difficulty, at least 1."""
    xp = (
        base_xp
        * Constants.CHALLENGE_TYPE_MULTIPLIERS[ChallengeType(challenge_type).value]
        * Constants.CHALLENGE_DURATION_MULTIPLIERS[DurationType(duration_type).value]
        * difficulty_multiplier
    )
    return max(1, round_half_up(xp))


def challenge_duration_days(
    policy: RotationPolicy | str,
    duration_type: DurationType | str,
    duration_multiplier: float = 1.0,
) -> int:
    """Length of a challenge in days, relative to the home's cycle length."""
    cycle_days = cycle_length_days(policy)
    duration_type = DurationType(duration_type)

    if duration_type == DurationType.DAILY:
        return 1
    if duration_type == DurationType.QUARTER_CYCLE:
        return max(1, round_half_up(cycle_days * 0.25))
    if duration_type == DurationType.HALF_CYCLE:
        return max(1, round_half_up(cycle_days * 0.5))
    if duration_type == DurationType.FULL_CYCLE:
        return cycle_days
    return max(1, round_half_up(cycle_days * duration_multiplier))


def challenge_end_date(
    *,
    policy: RotationPolicy | str,
    duration_type: DurationType | str,
    duration_multiplier: float = 1.0,
    start: datetime,
) -> datetime:
    """Exclusive end of a challenge starting at `start`."""
    return start + timedelta(days=challenge_duration_days(policy, duration_type, duration_multiplier))


# Templates


async def create_challenge_template(data: ChallengeTemplateCreate | dict) -> ChallengeTemplate:
    """Add a template to the catalog."""
    if isinstance(data, dict):
        data = validate_input(ChallengeTemplateCreate, **data)
    record = await db_client.create_record(
        collection="challenge_templates",
        data={**data.model_dump(), "is_active": True},
    )
    logger.info("Created challenge template %s (%s)", record["id"], data.name)
    return ChallengeTemplate(**record)


async def get_template(template_id: str) -> ChallengeTemplate:
    return ChallengeTemplate(**await db_client.get_record(collection="challenge_templates", record_id=template_id))


async def list_challenge_templates(
    *,
    challenge_type: ChallengeType | str | None = None,
    active_only: bool = True,
) -> list[ChallengeTemplate]:
    conditions = []
    if active_only:
        conditions.append('is_active = "true"')
    if challenge_type is not None:
        conditions.append(f'challenge_type = "{ChallengeType(challenge_type)}"')
    records = await db_client.list_records(
        collection="challenge_templates",
        filter_query=" && ".join(conditions),
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [ChallengeTemplate(**record) for record in records]


async def get_available_challenge_templates(
    *,
    home_id: str,
    member_id: str | None = None,
    challenge_type: ChallengeType | str | None = None,
) -> list[ChallengeTemplate]:
    """Active templates the member's level and the home's task count qualify for.

    Without a member (group generation) the novice level is assumed.
    """
    with span("challenges.get_available_challenge_templates"):
        level = MasteryLevel.NOVICE
        if member_id:
            level = (await homes.get_member(member_id)).mastery_level

        task_count = await db_client.count_records(
            collection="tasks",
            filter_query=f'home_id = "{db_client.sanitize_param(home_id)}" && is_active = "true"',
        )

        templates = await list_challenge_templates(challenge_type=challenge_type)
        return [
            template
            for template in templates
            if (template.min_mastery_level is None or level.rank >= MasteryLevel(template.min_mastery_level).rank)
            and template.requires_min_tasks <= task_count
        ]


# Instantiation


async def _create_progress_row(*, challenge: ActiveChallenge, member_id: str) -> ChallengeProgress:
    progress_data = initial_progress(challenge.category, challenge.requirements)
    if isinstance(progress_data, CollectiveProgress):
        progress_data = progress_data.with_team_total(await _collective_total(challenge.id))

    record = await db_client.create_record(
        collection="challenge_progress",
        data={
            "challenge_id": challenge.id,
            "member_id": member_id,
            "progress_data": progress_data.model_dump(mode="json"),
            "is_completed": False,
            "xp_awarded": 0,
        },
    )
    return ChallengeProgress(**record)


def _ensure_participant(member: Member, home_id: str) -> None:
    if member.home_id != home_id or member.status != MemberStatus.ACTIVE:
        msg = f"Member {member.id} is not an active member of home {home_id}"
        raise NotEligibleError(msg)


async def instantiate_challenge(
    *,
    template_id: str,
    home_id: str,
    member_id: str | None = None,
    now: datetime | None = None,
) -> ActiveChallenge:
    """Create an active challenge for a home from a template.

    Full and multi-cycle challenges start at the current cycle start; all
    others start now. Individual challenges get one progress row for
    `member_id`, group challenges one per active member.

    Raises:
        InvalidInputError: If an individual challenge is requested without a member
        ConflictError: If the template is inactive
        NotEligibleError: If the member is not active in the home
    """
    with span("challenges.instantiate_challenge"):
        template = await get_template(template_id)
        if not template.is_active:
            msg = f"Challenge template {template_id} is not active"
            raise ConflictError(msg)

        home = await homes.get_home(home_id)

        if template.challenge_type == ChallengeType.INDIVIDUAL:
            if not member_id:
                msg = "member_id is required for individual challenges"
                raise InvalidInputError(msg)
            member = await homes.get_member(member_id)
            _ensure_participant(member, home_id)
            participants = [member]
        else:
            participants = await homes.list_active_members(home_id)

        moment = now or utc_now()
        aligned = template.duration_type in CYCLE_ALIGNED_DURATIONS
        start = cycle_window(home.rotation_policy, moment).start if aligned else moment
        end = challenge_end_date(
            policy=home.rotation_policy,
            duration_type=template.duration_type,
            duration_multiplier=template.duration_multiplier,
            start=start,
        )

        record = await db_client.create_record(
            collection="active_challenges",
            data={
                "template_id": template.id,
                "home_id": home_id,
                "title": template.title,
                "description": template.description,
                "challenge_type": template.challenge_type,
                "category": template.category,
                "requirements": template.requirements,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "cycle_aligned": aligned,
                "xp_reward": calculate_challenge_xp(
                    base_xp=template.base_xp,
                    challenge_type=template.challenge_type,
                    duration_type=template.duration_type,
                    difficulty_multiplier=template.difficulty_multiplier,
                ),
                "status": ChallengeStatus.ACTIVE,
                "assigned_to": member_id if template.challenge_type == ChallengeType.INDIVIDUAL else None,
            },
        )
        challenge = ActiveChallenge(**record)

        for participant in participants:
            await _create_progress_row(challenge=challenge, member_id=participant.id)

        logger.info(
            "Started challenge %s (%s) in home %s for %d member(s)",
            challenge.id,
            challenge.title,
            home_id,
            len(participants),
        )
        return challenge


async def get_challenge(challenge_id: str) -> ActiveChallenge:
    return ActiveChallenge(**await db_client.get_record(collection="active_challenges", record_id=challenge_id))


def _ensure_open(challenge: ActiveChallenge, moment: datetime) -> None:
    if challenge.status != ChallengeStatus.ACTIVE or challenge.end_date <= moment.isoformat():
        msg = f"Challenge {challenge.id} is not active"
        raise ConflictError(msg)


async def join_challenge(*, challenge_id: str, member_id: str, now: datetime | None = None) -> ChallengeProgress:
    """Add a member to a running group challenge.

    Raises:
        NotEligibleError: If the challenge is individual or the member is not active in its home
        ConflictError: If the challenge is not active or the member already participates
    """
    with span("challenges.join_challenge"):
        challenge = await get_challenge(challenge_id)
        _ensure_open(challenge, now or utc_now())
        if challenge.challenge_type != ChallengeType.GROUP:
            msg = f"Challenge {challenge_id} is an individual challenge"
            raise NotEligibleError(msg)

        member = await homes.get_member(member_id)
        _ensure_participant(member, challenge.home_id)

        progress = await _create_progress_row(challenge=challenge, member_id=member.id)
        logger.info("Member %s joined challenge %s", member_id, challenge_id)
        return progress


# Progress


async def _find_progress(*, challenge_id: str, member_id: str) -> ChallengeProgress | None:
    record = await db_client.get_first_record(
        collection="challenge_progress",
        filter_query=(
            f'challenge_id = "{db_client.sanitize_param(challenge_id)}" '
            f'&& member_id = "{db_client.sanitize_param(member_id)}"'
        ),
    )
    return ChallengeProgress(**record) if record else None


async def _list_progress(challenge_id: str) -> list[ChallengeProgress]:
    records = await db_client.list_records(
        collection="challenge_progress",
        filter_query=f'challenge_id = "{db_client.sanitize_param(challenge_id)}"',
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [ChallengeProgress(**record) for record in records]


async def _collective_total(challenge_id: str) -> int:
    return sum(
        p.progress_data.member_contribution
        for p in await _list_progress(challenge_id)
        if isinstance(p.progress_data, CollectiveProgress)
    )


def _progress_update(progress_data: Any, *, was_completed: bool, moment: datetime) -> dict[str, Any]:  # noqa: ANN401
    data: dict[str, Any] = {"progress_data": progress_data.model_dump(mode="json")}
    if not was_completed and progress_data.is_complete:
        data["is_completed"] = True
        data["completed_at"] = moment.isoformat()
    return data


async def _save_progress(progress: ChallengeProgress, progress_data: Any, moment: datetime) -> ChallengeProgress:  # noqa: ANN401
    record = await db_client.update_record(
        collection="challenge_progress",
        record_id=progress.id,
        data=_progress_update(progress_data, was_completed=progress.is_completed, moment=moment),
    )
    return ChallengeProgress(**record)


async def _complete_challenge_if_done(challenge_id: str) -> None:
    """Mark the challenge completed once every participant has completed it."""
    rows = await _list_progress(challenge_id)
    if rows and all(row.is_completed for row in rows):
        await db_client.update_record_if(
            collection="active_challenges",
            record_id=challenge_id,
            data={"status": ChallengeStatus.COMPLETED},
            condition=f'status = "{ChallengeStatus.ACTIVE}"',
        )
        logger.info("Challenge %s completed by every participant", challenge_id)


async def _apply_task(
    *,
    challenge: ActiveChallenge,
    progress: ChallengeProgress,
    task_id: str,
    zone_id: str | None,
    moment: datetime,
    steps_done: bool = True,
) -> ChallengeProgress:
    if progress.is_completed:
        return progress

    updated_data = progress.progress_data.record_task(
        task_id=task_id,
        zone_id=zone_id,
        completed_on=moment.date(),
        steps_done=steps_done,
    )
    own = await _save_progress(progress, updated_data, moment)

    if challenge.category == ChallengeCategory.COLLECTIVE:
        team_total = await _collective_total(challenge.id)
        for row in await _list_progress(challenge.id):
            if row.is_completed and row.id != own.id:
                continue
            saved = await _save_progress(row, row.progress_data.with_team_total(team_total), moment)
            if row.id == own.id:
                own = saved

    await _complete_challenge_if_done(challenge.id)
    return own


async def update_challenge_progress(
    *,
    challenge_id: str,
    task_id: str,
    member_id: str,
    now: datetime | None = None,
    assignment_id: str | None = None,
) -> ChallengeProgress:
    """Record a completed task against one member's progress on a challenge.

    Progress that is already complete is returned unchanged. With an
    assignment id, mastery challenges that require every step only count the
    task when that assignment's required steps are all done.

    Raises:
        ConflictError: If the challenge is not active or has ended
        NotEligibleError: If the member does not participate in the challenge
    """
    with span("challenges.update_challenge_progress"):
        moment = now or utc_now()
        challenge = await get_challenge(challenge_id)
        _ensure_open(challenge, moment)

        progress = await _find_progress(challenge_id=challenge_id, member_id=member_id)
        if progress is None:
            msg = f"Member {member_id} does not participate in challenge {challenge_id}"
            raise NotEligibleError(msg)

        task = await homes.get_task(task_id)
        steps_done = True
        if assignment_id is not None:
            steps_done = (await steps.get_step_progress(assignment_id)).all_required_done
        return await _apply_task(
            challenge=challenge,
            progress=progress,
            task_id=task.id,
            zone_id=task.zone_id,
            moment=moment,
            steps_done=steps_done,
        )


async def record_task_completion(
    *,
    home_id: str,
    member_id: str,
    task_id: str,
    zone_id: str | None,
    completed_at: datetime,
    steps_done: bool = True,
) -> list[ChallengeProgress]:
    """Fan a completion out to every open challenge of the home the member is still working on.

    `steps_done` says whether the completed assignment had all its required
    steps ticked off; mastery challenges that require every step skip it otherwise.

    Each challenge is updated on its own; a failure on one is logged and the
    rest are still updated.
    """
    with span("challenges.record_task_completion"):
        updated: list[ChallengeProgress] = []
        for challenge in await get_active_challenges(home_id=home_id, now=completed_at):
            progress = await _find_progress(challenge_id=challenge.id, member_id=member_id)
            if progress is None or progress.is_completed:
                continue
            try:
                updated.append(
                    await _apply_task(
                        challenge=challenge,
                        progress=progress,
                        task_id=task_id,
                        zone_id=zone_id,
                        moment=completed_at,
                        steps_done=steps_done,
                    )
                )
            except Exception:
                logger.warning(
                    "Failed to update challenge %s for member %s",
                    challenge.id,
                    member_id,
                    exc_info=True,
                )
        return updated


# Rewards


def completion_counter(challenge: ActiveChallenge) -> str:
    """Member counter credited when this challenge's reward is claimed (exactly one)."""
    if challenge.category == ChallengeCategory.MASTERY:
        return "perfect_challenges"
    if challenge.requirements.get("speed"):
        return "speed_challenges_completed"
    if challenge.challenge_type == ChallengeType.GROUP:
        return "group_challenges_completed"
    return "challenges_completed"


async def claim_reward(*, challenge_id: str, member_id: str) -> ClaimRewardResult:
    """Pay out a completed challenge's XP to a member, once.

    Raises:
        NotEligibleError: If the member does not participate in the challenge
        ConflictError: If the progress is not completed or the reward was already claimed
    """
    with span("challenges.claim_reward"):
        challenge = await get_challenge(challenge_id)
        progress = await _find_progress(challenge_id=challenge_id, member_id=member_id)
        if progress is None:
            msg = f"Member {member_id} does not participate in challenge {challenge_id}"
            raise NotEligibleError(msg)
        if not progress.is_completed:
            msg = f"Challenge {challenge_id} is not completed by member {member_id}"
            raise ConflictError(msg)
        if progress.is_claimed:
            msg = f"Reward for challenge {challenge_id} was already claimed"
            raise ConflictError(msg)

        claimed = await db_client.update_record_if(
            collection="challenge_progress",
            record_id=progress.id,
            data={"xp_awarded": challenge.xp_reward},
            condition='xp_awarded = "0" && is_completed = "true"',
        )
        if claimed is None:
            msg = f"Reward for challenge {challenge_id} was already claimed"
            raise ConflictError(msg)

        try:
            xp = await progression.award_xp(
                member_id=member_id,
                amount=challenge.xp_reward,
                source=XPSource.CHALLENGE_COMPLETION,
                reference_type="challenge",
                reference_id=challenge.id,
                description=f"Completed challenge: {challenge.title}",
            )
        except Exception:
            await db_client.update_record(
                collection="challenge_progress",
                record_id=progress.id,
                data={"xp_awarded": 0},
            )
            raise

        counter = completion_counter(challenge)
        await db_client.increment_record(collection="members", record_id=member_id, increments={counter: 1})

        logger.info("Member %s claimed %d XP for challenge %s", member_id, challenge.xp_reward, challenge_id)
        return ClaimRewardResult(progress=ChallengeProgress(**claimed), xp=xp, counter=counter)


# Generation and queries


async def generate_daily_challenges(
    *,
    home_id: str,
    member_id: str,
    count: int = Constants.DAILY_CHALLENGE_COUNT,
) -> list[ActiveChallenge]:
    """Start up to `count` random daily individual challenges for a member."""
    with span("challenges.generate_daily_challenges"):
        templates = await get_available_challenge_templates(
            home_id=home_id,
            member_id=member_id,
            challenge_type=ChallengeType.INDIVIDUAL,
        )
        daily = [t for t in templates if t.duration_type == DurationType.DAILY]
        if not daily:
            return []

        selected = random.sample(daily, min(count, len(daily)))  # noqa: S311
        return [
            await instantiate_challenge(template_id=template.id, home_id=home_id, member_id=member_id)
            for template in selected
        ]


async def generate_cycle_challenge(*, home_id: str) -> ActiveChallenge | None:
    """Start one random half or full-cycle group challenge for a home."""
    with span("challenges.generate_cycle_challenge"):
        templates = await get_available_challenge_templates(home_id=home_id, challenge_type=ChallengeType.GROUP)
        cycle_templates = [
            t for t in templates if t.duration_type in {DurationType.FULL_CYCLE, DurationType.HALF_CYCLE}
        ]
        if not cycle_templates:
            return None

        template = random.choice(cycle_templates)  # noqa: S311
        return await instantiate_challenge(template_id=template.id, home_id=home_id)


async def get_active_challenges(
    *,
    home_id: str,
    member_id: str | None = None,
    now: datetime | None = None,
) -> list[ActiveChallenge]:
    """Open challenges of a home; with a member, only those the member takes part in."""
    moment = now or utc_now()
    records = await db_client.list_records(
        collection="active_challenges",
        filter_query=(
            f'home_id = "{db_client.sanitize_param(home_id)}" '
            f'&& status = "{ChallengeStatus.ACTIVE}" && end_date > "{moment.isoformat()}"'
        ),
        sort="end_date",
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    challenges = [ActiveChallenge(**record) for record in records]
    if member_id is None:
        return challenges

    return [c for c in challenges if await _find_progress(challenge_id=c.id, member_id=member_id) is not None]


async def get_challenge_progress(*, challenge_id: str, member_id: str) -> ChallengeProgress:
    progress = await _find_progress(challenge_id=challenge_id, member_id=member_id)
    if progress is None:
        msg = f"No progress for member {member_id} on challenge {challenge_id}"
        raise NotFoundError(msg)
    return progress


async def expire_old_challenges(*, now: datetime | None = None) -> int:
    """Mark active challenges whose window has ended as expired.

    Completed progress rows are left as they are and can still be claimed.
    """
    with span("challenges.expire_old_challenges"):
        moment = now or utc_now()
        expired = await db_client.update_records(
            collection="active_challenges",
            filter_query=f'status = "{ChallengeStatus.ACTIVE}" && end_date <= "{moment.isoformat()}"',
            data={"status": ChallengeStatus.EXPIRED},
        )
        if expired:
            logger.info("Expired %d challenge(s)", expired)
        return expired


async def get_challenge_stats(home_id: str) -> ChallengeStats:
    """Counts by status plus the share of progress rows that were completed."""
    with span("challenges.get_challenge_stats"):
        records = await db_client.list_records(
            collection="active_challenges",
            filter_query=f'home_id = "{db_client.sanitize_param(home_id)}"',
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )
        challenges = [ActiveChallenge(**record) for record in records]

        total_rows = 0
        completed_rows = 0
        for challenge in challenges:
            rows = await _list_progress(challenge.id)
            total_rows += len(rows)
            completed_rows += sum(1 for row in rows if row.is_completed)

        return ChallengeStats(
            total=len(challenges),
            active=sum(1 for c in challenges if c.status == ChallengeStatus.ACTIVE),
            completed=sum(1 for c in challenges if c.status == ChallengeStatus.COMPLETED),
            expired=sum(1 for c in challenges if c.status == ChallengeStatus.EXPIRED),
            completion_rate=round_half_up(completed_rows / total_rows * 100) if total_rows else 0,
        )
