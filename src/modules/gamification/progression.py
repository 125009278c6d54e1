"""XP ledger, mastery levels and achievements.

Two independent level derivations coexist. Challenge rewards and bonuses go
through award_xp, which recomputes the level from total XP. Task completion
only adds points, and update_mastery_from_points recomputes the level from
the points thresholds. Both write the same `mastery_level` field, so they can
disagree for members who earn mostly points or mostly XP.
"""

import logging
from collections.abc import Callable

from src.core import db_client
from src.core.config import Constants
from src.core.errors import InvalidInputError, validate_input
from src.core.logging import span
from src.domain.create_models import AchievementCreate
from src.domain.member import MasteryLevel, Member
from src.domain.progression import Achievement, MemberAchievement, RequirementType, XPSource, XPTransaction
from src.models.service_models import AwardXPResult, LevelProgress
from src.modules.rotation.cycles import utc_now


logger = logging.getLogger(__name__)


def _level_for(value: int, thresholds: dict[str, int]) -> MasteryLevel:
    level = MasteryLevel.NOVICE
    for candidate in MasteryLevel:
        if value >= thresholds[candidate.value]:
            level = candidate
    return level


def calculate_level(xp: int) -> MasteryLevel:
    """Highest mastery level whose XP threshold is reached."""
    return _level_for(xp, Constants.XP_LEVEL_THRESHOLDS)


def calculate_points_mastery_level(points: int) -> MasteryLevel:
    """Highest mastery level whose legacy points threshold is reached."""
    return _level_for(points, Constants.POINTS_LEVEL_THRESHOLDS)


def calculate_task_xp(effort_points: int) -> int:
    return effort_points * Constants.XP_PER_EFFORT_POINT


def get_level_progress(xp: int) -> LevelProgress:
    """Where `xp` sits between the current level's threshold and the next one."""
    level = calculate_level(xp)
    levels = list(MasteryLevel)
    current_threshold = Constants.XP_LEVEL_THRESHOLDS[level.value]

    if level.rank == len(levels) - 1:
        return LevelProgress(
            current_level=level,
            current_xp=xp,
            xp_for_current_level=current_threshold,
            xp_for_next_level=None,
            xp_progress=xp - current_threshold,
            progress_percentage=100,
        )

    next_threshold = Constants.XP_LEVEL_THRESHOLDS[levels[level.rank + 1].value]
    progress = xp - current_threshold
    return LevelProgress(
        current_level=level,
        current_xp=xp,
        xp_for_current_level=current_threshold,
        xp_for_next_level=next_threshold,
        xp_progress=progress,
        progress_percentage=min(100, progress * 100 // (next_threshold - current_threshold)),
    )


async def award_xp(
    *,
    member_id: str,
    amount: int,
    source: XPSource | str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    description: str | None = None,
) -> AwardXPResult:
    """Add XP to a member, recompute the level and append to the ledger.

    The XP total is incremented in a single statement so concurrent awards
    never lose an update. A level change appends a second, zero-amount
    `level_up` ledger entry.

    Raises:
        InvalidInputError: If the amount is not positive or the source is unknown
        db_client.RecordNotFoundError: If the member does not exist
    """
    with span("progression.award_xp"):
        if amount <= 0:
            msg = f"XP amount must be positive, got {amount}"
            raise InvalidInputError(msg)
        try:
            source = XPSource(source)
        except ValueError as e:
            msg = f"Unknown XP source: {source}"
            raise InvalidInputError(msg) from e

        member = Member(**await db_client.get_record(collection="members", record_id=member_id))
        updated = await db_client.increment_record(
            collection="members",
            record_id=member_id,
            increments={"total_xp": amount},
        )
        new_xp = int(updated["total_xp"])
        old_xp = new_xp - amount
        old_level = member.mastery_level
        new_level = calculate_level(new_xp)

        if new_level != old_level:
            await db_client.update_record(
                collection="members",
                record_id=member_id,
                data={"mastery_level": new_level},
            )

        await db_client.create_record(
            collection="xp_transactions",
            data={
                "member_id": member_id,
                "amount": amount,
                "source": source,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "description": description or f"{amount} XP from {source}",
            },
        )

        if new_level != old_level:
            await db_client.create_record(
                collection="xp_transactions",
                data={
                    "member_id": member_id,
                    "amount": 0,
                    "source": XPSource.LEVEL_UP,
                    "reference_type": "level",
                    "reference_id": new_level.value,
                    "description": f"Reached level {new_level}",
                },
            )
            logger.info("Member %s moved from %s to %s", member_id, old_level, new_level)

        logger.info("Awarded %d XP to member %s (%s)", amount, member_id, source)
        return AwardXPResult(
            member_id=member_id,
            old_xp=old_xp,
            new_xp=new_xp,
            old_level=old_level,
            new_level=new_level,
            leveled_up=new_level != old_level,
        )


async def update_mastery_from_points(*, member_id: str) -> MasteryLevel | None:
    """Recompute the level from total points; returns the new level when it changed."""
    with span("progression.update_mastery_from_points"):
        member = Member(**await db_client.get_record(collection="members", record_id=member_id))
        level = calculate_points_mastery_level(member.total_points)
        if level == member.mastery_level:
            return None

        await db_client.update_record(collection="members", record_id=member_id, data={"mastery_level": level})
        logger.info("Member %s reached %s by points (%d)", member_id, level, member.total_points)
        return level


_REQUIREMENT_VALUES: dict[RequirementType, Callable[[Member], int]] = {
    RequirementType.TASKS_COMPLETED: lambda m: m.tasks_completed,
    RequirementType.COLLABORATIONS: lambda m: m.tasks_completed,
    RequirementType.WEEKS_ACTIVE: lambda m: m.weeks_active,
    RequirementType.STREAK_DAYS: lambda m: m.current_streak,
    RequirementType.TOTAL_XP: lambda m: m.total_xp,
    RequirementType.CHALLENGES_COMPLETED: lambda m: m.challenges_completed,
    RequirementType.GROUP_CHALLENGES_COMPLETED: lambda m: m.group_challenges_completed,
    RequirementType.SPEED_CHALLENGES_COMPLETED: lambda m: m.speed_challenges_completed,
    RequirementType.PERFECT_CHALLENGES: lambda m: m.perfect_challenges,
}


def meets_requirement(member: Member, achievement: Achievement) -> bool:
    """Evaluate an achievement's threshold against the member's counters."""
    if achievement.requirement_type == RequirementType.ONBOARDING:
        return True
    if achievement.requirement_type == RequirementType.LEVEL_REACHED:
        return member.mastery_level.rank >= achievement.requirement_value - 1
    return _REQUIREMENT_VALUES[achievement.requirement_type](member) >= achievement.requirement_value


async def create_achievement(data: AchievementCreate | dict) -> Achievement:
    """Add an achievement to the catalog."""
    if isinstance(data, dict):
        data = validate_input(AchievementCreate, **data)
    record = await db_client.create_record(collection="achievements", data=data.model_dump())
    return Achievement(**record)


async def list_achievements() -> list[Achievement]:
    records = await db_client.list_records(collection="achievements", per_page=Constants.DEFAULT_PER_PAGE_LIMIT)
    return [Achievement(**record) for record in records]


async def get_member_achievements(member_id: str) -> list[MemberAchievement]:
    records = await db_client.list_records(
        collection="member_achievements",
        filter_query=f'member_id = "{db_client.sanitize_param(member_id)}"',
        sort="unlocked_at",
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [MemberAchievement(**record) for record in records]


async def unlock_achievement(*, member_id: str, achievement_id: str) -> MemberAchievement | None:
    """Record an unlock; returns None when the member already had it."""
    existing = await db_client.get_first_record(
        collection="member_achievements",
        filter_query=(
            f'member_id = "{db_client.sanitize_param(member_id)}" '
            f'&& achievement_id = "{db_client.sanitize_param(achievement_id)}"'
        ),
    )
    if existing:
        return None

    try:
        record = await db_client.create_record(
            collection="member_achievements",
            data={"member_id": member_id, "achievement_id": achievement_id, "unlocked_at": utc_now().isoformat()},
        )
    except db_client.DuplicateRecordError:
        # Unlocked concurrently
        return None

    logger.info("Member %s unlocked achievement %s", member_id, achievement_id)
    return MemberAchievement(**record)


async def check_achievements(*, member_id: str) -> list[Achievement]:
    """Unlock every catalog achievement the member now qualifies for.

    Returns:
        Achievements unlocked by this call
    """
    with span("progression.check_achievements"):
        member = Member(**await db_client.get_record(collection="members", record_id=member_id))
        unlocked_ids = {ma.achievement_id for ma in await get_member_achievements(member_id)}

        newly_unlocked: list[Achievement] = []
        for achievement in await list_achievements():
            if achievement.id in unlocked_ids or not meets_requirement(member, achievement):
                continue
            if await unlock_achievement(member_id=member_id, achievement_id=achievement.id):
                newly_unlocked.append(achievement)

        if newly_unlocked:
            logger.info(
                "Member %s unlocked %d achievement(s): %s",
                member_id,
                len(newly_unlocked),
                ", ".join(a.name for a in newly_unlocked),
            )
        return newly_unlocked


async def get_xp_transactions(member_id: str, *, limit: int = Constants.XP_TRANSACTIONS_LIMIT) -> list[XPTransaction]:
    """Most recent ledger entries of a member, newest first."""
    records = await db_client.list_records(
        collection="xp_transactions",
        filter_query=f'member_id = "{db_client.sanitize_param(member_id)}"',
        sort="-id",
        per_page=limit,
    )
    return [XPTransaction(**record) for record in records]
