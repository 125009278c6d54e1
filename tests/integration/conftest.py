"""Pytest configuration and fixtures for integration tests."""

import pytest

from src.core import db_client
from src.core.config import settings
from src.core.schema import init_db


@pytest.fixture
async def sqlite_db(tmp_path, monkeypatch):
    """A fresh SQLite file with every registered table created."""
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "chorecycle-test.db"))
    await init_db()
    yield db_client
    await db_client.close_connection()
