"""Shared pytest fixtures for tabtree tests."""

import pytest

from tabtree.config import SnapshotLimits
from tabtree.db.connection import Database
from tabtree.storage.sqlite import SqliteTreeStorage
from tests.fixtures import ManualScheduler


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def storage(db):
    """SqliteTreeStorage backed by the in-memory database."""
    return SqliteTreeStorage(db, SnapshotLimits())


@pytest.fixture
def scheduler():
    """Virtual-clock scheduler; time only moves when the test advances it."""
    return ManualScheduler()
