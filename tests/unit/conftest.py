"""Pytest configuration and fixtures for unit tests."""

import pytest

from src.domain.home import Home
from src.domain.member import Member
from src.domain.task import Task
from src.modules.rotation import homes
from tests.unit.mocks import InMemoryDBClient


_DB_FUNCTIONS = (
    "create_record",
    "get_record",
    "update_record",
    "update_record_if",
    "update_records",
    "increment_record",
    "upsert_record",
    "delete_record",
    "list_records",
    "count_records",
    "get_first_record",
)


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches src.core.db_client functions to use InMemoryDBClient."""
    for name in _DB_FUNCTIONS:
        monkeypatch.setattr(f"src.core.db_client.{name}", getattr(in_memory_db, name))
    return in_memory_db


@pytest.fixture
async def home(patched_db, frozen_now) -> Home:
    """A weekly home with an 80% goal; the clock is pinned to NOW."""
    return await homes.create_home(name="Maple Street", created_by="owner-1")


@pytest.fixture
async def members(home) -> list[Member]:
    """Three active members: Ana, Ben and Cleo."""
    return [await homes.add_member(home_id=home.id, name=name) for name in ("Ana", "Ben", "Cleo")]


@pytest.fixture
async def kitchen(home):
    return await homes.create_zone(home_id=home.id, name="Kitchen", icon="pan")


@pytest.fixture
async def tasks(home, kitchen) -> list[Task]:
    """Three active weekly tasks, two of them in the kitchen."""
    return [
        await homes.create_task(home_id=home.id, title="Dishes", effort_points=2, zone_id=kitchen.id),
        await homes.create_task(home_id=home.id, title="Mop floor", effort_points=3, zone_id=kitchen.id),
        await homes.create_task(home_id=home.id, title="Take out bins"),
    ]
