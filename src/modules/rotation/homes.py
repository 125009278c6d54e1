"""Homes, zones, members and tasks: the records the rotation engine works over."""

import logging

from src.core import db_client
from src.core.config import Constants
from src.core.errors import InvalidInputError, NotEligibleError, validate_input
from src.core.logging import span
from src.domain.create_models import HomeCreate, MemberCreate, TaskCreate, ZoneCreate
from src.domain.home import Home, RotationPolicy, Zone
from src.domain.member import Member, MemberRole, MemberStatus
from src.domain.task import Task, TaskFrequency
from src.domain.update_models import HomeSettingsUpdate
from src.modules.rotation.cycles import utc_now
from src.modules.rotation.metrics_cache import invalidate_home_metrics


logger = logging.getLogger(__name__)


async def create_home(
    *,
    name: str,
    created_by: str | None = None,
    rotation_policy: RotationPolicy | str = RotationPolicy.WEEKLY,
    goal_percentage: int = 80,
    auto_rotation: bool = True,
) -> Home:
    """Create a home with its rotation settings.

    Raises:
        InvalidInputError: If the name is blank, the policy unknown or the goal outside 1-100
    """
    with span("homes.create_home"):
        home_data = validate_input(
            HomeCreate,
            name=name,
            created_by=created_by,
            rotation_policy=rotation_policy,
            goal_percentage=goal_percentage,
            auto_rotation=auto_rotation,
        )
        record = await db_client.create_record(collection="homes", data=home_data.model_dump())
        logger.info("Created home %s (%s)", record["id"], home_data.name)
        return Home(**record)


async def get_home(home_id: str) -> Home:
    """Fetch a home, raising db_client.RecordNotFoundError for unknown ids."""
    record = await db_client.get_record(collection="homes", record_id=home_id)
    return Home(**record)


async def update_home_settings(*, home_id: str, update: HomeSettingsUpdate | dict) -> Home:
    """Change a home's name, rotation policy, goal percentage or auto-rotation flag.

    The payload is validated before anything is written, so a goal outside
    1-100 leaves the home untouched.

    Raises:
        InvalidInputError: If the payload fails validation
        db_client.RecordNotFoundError: If the home does not exist
    """
    with span("homes.update_home_settings"):
        if isinstance(update, dict):
            update = validate_input(HomeSettingsUpdate, **update)

        home = await get_home(home_id)
        changes = update.model_dump(exclude_none=True)
        if not changes:
            return home

        record = await db_client.update_record(collection="homes", record_id=home_id, data=changes)
        await invalidate_home_metrics(home_id)
        logger.info("Updated settings for home %s: %s", home_id, sorted(changes))
        return Home(**record)


async def create_zone(*, home_id: str, name: str, icon: str | None = None) -> Zone:
    with span("homes.create_zone"):
        zone_data = validate_input(ZoneCreate, home_id=home_id, name=name, icon=icon)
        await get_home(home_id)
        record = await db_client.create_record(collection="zones", data=zone_data.model_dump())
        return Zone(**record)


async def list_zones(home_id: str) -> list[Zone]:
    records = await db_client.list_records(
        collection="zones",
        filter_query=f'home_id = "{db_client.sanitize_param(home_id)}"',
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [Zone(**record) for record in records]


async def add_member(
    *,
    home_id: str,
    name: str,
    user_id: str | None = None,
    role: MemberRole | str = MemberRole.MEMBER,
) -> Member:
    """Add an active member to a home with zeroed counters.

    Raises:
        InvalidInputError: If the name is blank
        db_client.RecordNotFoundError: If the home does not exist
    """
    with span("homes.add_member"):
        member_data = validate_input(MemberCreate, home_id=home_id, name=name, user_id=user_id, role=role)
        await get_home(home_id)

        record = await db_client.create_record(
            collection="members",
            data={
                **member_data.model_dump(),
                "status": MemberStatus.ACTIVE,
                "joined_at": utc_now().isoformat(),
            },
        )
        await invalidate_home_metrics(home_id)
        logger.info("Added member %s (%s) to home %s", record["id"], member_data.name, home_id)
        return Member(**record)


async def get_member(member_id: str) -> Member:
    record = await db_client.get_record(collection="members", record_id=member_id)
    return Member(**record)


async def remove_member(member_id: str) -> Member:
    """Deactivate a member. History is kept; inactive members get no new work."""
    with span("homes.remove_member"):
        member = await get_member(member_id)
        if member.status == MemberStatus.INACTIVE:
            return member

        record = await db_client.update_record(
            collection="members",
            record_id=member_id,
            data={"status": MemberStatus.INACTIVE},
        )
        await invalidate_home_metrics(member.home_id)
        logger.info("Deactivated member %s in home %s", member_id, member.home_id)
        return Member(**record)


async def list_active_members(home_id: str) -> list[Member]:
    """Active members of a home, least points first (ties by id)."""
    records = await db_client.list_records(
        collection="members",
        filter_query=f'home_id = "{db_client.sanitize_param(home_id)}" && status = "{MemberStatus.ACTIVE}"',
        sort="total_points,id",
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [Member(**record) for record in records]


async def list_members(home_id: str) -> list[Member]:
    """Every member of a home, including deactivated ones."""
    records = await db_client.list_records(
        collection="members",
        filter_query=f'home_id = "{db_client.sanitize_param(home_id)}"',
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [Member(**record) for record in records]


async def create_task(
    *,
    home_id: str,
    title: str,
    frequency: TaskFrequency | str = TaskFrequency.WEEKLY,
    effort_points: int = 1,
    zone_id: str | None = None,
    icon: str | None = None,
    description: str = "",
) -> Task:
    """Create an active task in a home, optionally inside one of its zones.

    Raises:
        InvalidInputError: If the title is blank, the frequency unknown or effort negative
        NotEligibleError: If the zone belongs to another home
    """
    with span("homes.create_task"):
        task_data = validate_input(
            TaskCreate,
            home_id=home_id,
            title=title,
            frequency=frequency,
            effort_points=effort_points,
            zone_id=zone_id,
            icon=icon,
            description=description,
        )
        await get_home(home_id)

        if task_data.zone_id:
            zone = await db_client.get_record(collection="zones", record_id=task_data.zone_id)
            if zone["home_id"] != home_id:
                msg = f"Zone {task_data.zone_id} does not belong to home {home_id}"
                raise NotEligibleError(msg)

        record = await db_client.create_record(
            collection="tasks",
            data={**task_data.model_dump(), "is_active": True},
        )
        logger.info("Created task %s (%s) in home %s", record["id"], task_data.title, home_id)
        return Task(**record)


async def get_task(task_id: str) -> Task:
    record = await db_client.get_record(collection="tasks", record_id=task_id)
    return Task(**record)


async def set_task_active(*, task_id: str, is_active: bool) -> Task:
    """Activate or deactivate a task; inactive tasks are skipped by auto-assignment."""
    with span("homes.set_task_active"):
        if not isinstance(is_active, bool):
            msg = f"is_active must be a boolean, got {is_active!r}"
            raise InvalidInputError(msg)
        record = await db_client.update_record(collection="tasks", record_id=task_id, data={"is_active": is_active})
        return Task(**record)


async def list_tasks(home_id: str, *, active_only: bool = False) -> list[Task]:
    filter_query = f'home_id = "{db_client.sanitize_param(home_id)}"'
    if active_only:
        filter_query += ' && is_active = "true"'
    records = await db_client.list_records(
        collection="tasks",
        filter_query=filter_query,
        sort="id",
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [Task(**record) for record in records]


async def list_active_tasks(home_id: str) -> list[Task]:
    """Active tasks of a home in creation order."""
    return await list_tasks(home_id, active_only=True)
