"""Tests for homes, zones, members and tasks."""

import pytest

from src.core.db_client import RecordNotFoundError
from src.core.errors import InvalidInputError, NotEligibleError
from src.domain.home import RotationPolicy
from src.domain.member import MasteryLevel, MemberRole, MemberStatus
from src.domain.task import TaskFrequency
from src.modules.rotation import homes
from tests.conftest import NOW


@pytest.mark.unit
class TestHomes:
    """Tests for home creation and settings."""

    async def test_create_home_defaults(self, home):
        assert home.name == "Maple Street"
        assert home.rotation_policy == RotationPolicy.WEEKLY
        assert home.goal_percentage == 80
        assert home.auto_rotation is True

    @pytest.mark.parametrize("goal", [0, 101, -5])
    async def test_goal_outside_range_rejected(self, patched_db, goal):
        with pytest.raises(InvalidInputError, match="goal_percentage"):
            await homes.create_home(name="Elm Court", goal_percentage=goal)

        assert patched_db.rows("homes") == []

    async def test_unknown_policy_rejected(self, patched_db):
        with pytest.raises(InvalidInputError, match="rotation_policy"):
            await homes.create_home(name="Elm Court", rotation_policy="yearly")

    async def test_update_settings_changes_only_given_fields(self, home):
        updated = await homes.update_home_settings(
            home_id=home.id,
            update={"goal_percentage": 90, "rotation_policy": "biweekly"},
        )

        assert updated.goal_percentage == 90
        assert updated.rotation_policy == RotationPolicy.BIWEEKLY
        assert updated.name == "Maple Street"

    async def test_invalid_settings_leave_home_untouched(self, home):
        with pytest.raises(InvalidInputError):
            await homes.update_home_settings(home_id=home.id, update={"goal_percentage": 150})

        assert (await homes.get_home(home.id)).goal_percentage == 80

    async def test_empty_settings_update_is_noop(self, home):
        assert await homes.update_home_settings(home_id=home.id, update={}) == home

    async def test_get_unknown_home(self, patched_db):
        with pytest.raises(RecordNotFoundError):
            await homes.get_home("42")


@pytest.mark.unit
class TestMembers:
    """Tests for member management."""

    async def test_add_member_starts_with_zeroed_counters(self, home):
        member = await homes.add_member(home_id=home.id, name="  Dana  ", role=MemberRole.ADMIN)

        assert member.name == "Dana"
        assert member.role == MemberRole.ADMIN
        assert member.status == MemberStatus.ACTIVE
        assert member.total_points == 0
        assert member.total_xp == 0
        assert member.mastery_level == MasteryLevel.NOVICE
        assert member.joined_at == NOW.isoformat()

    async def test_blank_name_rejected(self, home):
        with pytest.raises(InvalidInputError, match="Name cannot be empty"):
            await homes.add_member(home_id=home.id, name="   ")

    async def test_add_member_to_unknown_home(self, patched_db):
        with pytest.raises(RecordNotFoundError):
            await homes.add_member(home_id="42", name="Dana")

    async def test_remove_member_deactivates(self, home, members):
        removed = await homes.remove_member(members[1].id)

        assert removed.status == MemberStatus.INACTIVE
        assert [m.name for m in await homes.list_active_members(home.id)] == ["Ana", "Cleo"]
        assert len(await homes.list_members(home.id)) == 3

    async def test_remove_member_twice_is_noop(self, members):
        await homes.remove_member(members[0].id)
        again = await homes.remove_member(members[0].id)

        assert again.status == MemberStatus.INACTIVE

    async def test_active_members_ordered_by_points(self, home, members, patched_db):
        await patched_db.update_record(collection="members", record_id=members[0].id, data={"total_points": 9})
        await patched_db.update_record(collection="members", record_id=members[2].id, data={"total_points": 4})

        ordered = await homes.list_active_members(home.id)

        assert [m.name for m in ordered] == ["Ben", "Cleo", "Ana"]


@pytest.mark.unit
class TestTasks:
    """Tests for tasks and zones."""

    async def test_create_task_in_zone(self, home, kitchen):
        task = await homes.create_task(
            home_id=home.id,
            title="Wipe counters",
            frequency="daily",
            effort_points=1,
            zone_id=kitchen.id,
        )

        assert task.zone_id == kitchen.id
        assert task.frequency == TaskFrequency.DAILY
        assert task.is_active is True

    async def test_zone_from_other_home_rejected(self, home, kitchen):
        other = await homes.create_home(name="Elm Court")

        with pytest.raises(NotEligibleError, match="does not belong"):
            await homes.create_task(home_id=other.id, title="Dishes", zone_id=kitchen.id)

    async def test_negative_effort_rejected(self, home):
        with pytest.raises(InvalidInputError, match="effort_points"):
            await homes.create_task(home_id=home.id, title="Dishes", effort_points=-1)

    async def test_inactive_tasks_skipped_by_active_listing(self, home, tasks):
        await homes.set_task_active(task_id=tasks[1].id, is_active=False)

        active = await homes.list_active_tasks(home.id)

        assert [t.title for t in active] == ["Dishes", "Take out bins"]
        assert len(await homes.list_tasks(home.id)) == 3

    async def test_set_task_active_requires_bool(self, tasks):
        with pytest.raises(InvalidInputError, match="boolean"):
            await homes.set_task_active(task_id=tasks[0].id, is_active="yes")

    async def test_list_zones(self, home, kitchen):
        zones = await homes.list_zones(home.id)

        assert [(z.name, z.icon) for z in zones] == [("Kitchen", "pan")]
