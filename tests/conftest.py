import os
import sys
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.checkpoint import MemoryCheckpoint
from core.clock import FixedClock
from data.db import Database
from data.user_repository import UserRepository

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def checkpoint(clock):
    return MemoryCheckpoint(clock=clock)


@pytest.fixture
def database(tmp_path):
    db = Database(str(tmp_path / "users.db"), timeout=5, pool_size=4)
    yield db
    db.close_pool()


@pytest.fixture
def user_repo(database, clock):
    return UserRepository(database, clock=clock, default_timeout=5)


@pytest.fixture
def row_count(database):
    def count(table):
        return database.execute_query(f"SELECT COUNT(*) AS count FROM {table}")[0]["count"]
    return count
