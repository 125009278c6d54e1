"""Tests for InMemoryDBClient implementation."""

import pytest

from src.core.db_client import DatabaseError, DuplicateRecordError, RecordNotFoundError


@pytest.mark.unit
class TestInMemoryDBClient:
    """The in-memory client returns records shaped like the SQLite client's."""

    async def test_create_record_applies_defaults(self, in_memory_db):
        record = await in_memory_db.create_record(collection="homes", data={"name": "Maple"})

        assert record["id"] == "1"
        assert record["rotation_policy"] == "weekly"
        assert record["goal_percentage"] == 80
        assert "created" in record
        assert "updated" in record

    async def test_integer_affinity(self, in_memory_db):
        home = await in_memory_db.create_record(collection="homes", data={"name": "Maple", "auto_rotation": False})
        member = await in_memory_db.create_record(collection="members", data={"home_id": home["id"], "name": "Ana"})

        assert home["auto_rotation"] == 0
        assert member["home_id"] == "1"
        assert await in_memory_db.count_records(collection="members", filter_query='home_id = "1"') == 1

    async def test_not_null_enforced(self, in_memory_db):
        with pytest.raises(DatabaseError, match="NOT NULL"):
            await in_memory_db.create_record(collection="members", data={"name": "Ana"})

    async def test_unknown_table_and_column(self, in_memory_db):
        with pytest.raises(DatabaseError, match="does not exist"):
            await in_memory_db.create_record(collection="users", data={"name": "Ana"})
        with pytest.raises(DatabaseError, match="no such column"):
            await in_memory_db.create_record(collection="homes", data={"name": "Maple", "phone": "1"})

    async def test_partial_unique_index(self, in_memory_db):
        data = {
            "home_id": "1",
            "task_id": "1",
            "member_id": "1",
            "assigned_date": "2026-10-21",
            "due_date": "2026-10-28",
        }
        first = await in_memory_db.create_record(collection="task_assignments", data=data)

        with pytest.raises(DuplicateRecordError):
            await in_memory_db.create_record(collection="task_assignments", data=data)

        await in_memory_db.update_record(
            collection="task_assignments", record_id=first["id"], data={"status": "completed"}
        )
        second = await in_memory_db.create_record(collection="task_assignments", data=data)
        assert second["status"] == "pending"

    async def test_get_record_not_found(self, in_memory_db):
        with pytest.raises(RecordNotFoundError, match="Record not found"):
            await in_memory_db.get_record(collection="homes", record_id="7")

    async def test_filter_and_sort(self, in_memory_db):
        for name, goal in (("Maple", 80), ("Elm", 60), ("Oak", 90)):
            await in_memory_db.create_record(collection="homes", data={"name": name, "goal_percentage": goal})

        rows = await in_memory_db.list_records(
            collection="homes",
            filter_query='goal_percentage >= "70" || name = "Elm"',
            sort="-goal_percentage",
        )

        assert [r["name"] for r in rows] == ["Oak", "Maple", "Elm"]

    async def test_conditional_update(self, in_memory_db):
        home = await in_memory_db.create_record(collection="homes", data={"name": "Maple"})

        won = await in_memory_db.update_record_if(
            collection="homes", record_id=home["id"], data={"name": "Elm"}, condition='name = "Maple"'
        )
        lost = await in_memory_db.update_record_if(
            collection="homes", record_id=home["id"], data={"name": "Oak"}, condition='name = "Maple"'
        )

        assert won["name"] == "Elm"
        assert lost is None

    async def test_json_columns_decoded(self, in_memory_db):
        record = await in_memory_db.create_record(
            collection="challenge_templates",
            data={
                "name": "sprint",
                "title": "Sprint",
                "challenge_type": "individual",
                "category": "task_completion",
                "requirements": {"task_count": 2},
            },
        )

        assert record["requirements"] == {"task_count": 2}
