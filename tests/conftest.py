import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from podote.db import SQLiteRepository  # noqa: E402
from podote.lifecycle import LifecycleManager  # noqa: E402
from podote.repositories import InMemoryRepository  # noqa: E402
from podote.service import TodoService  # noqa: E402


class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self) -> None:
        self.current = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    """Every storage backend, fresh per test."""
    if request.param == "sqlite":
        return SQLiteRepository(str(tmp_path / "todos.db"))
    return InMemoryRepository()


@pytest.fixture
def service(repo):
    return TodoService(repo, lifecycle=LifecycleManager(repo, clock=TickingClock()))


@pytest.fixture
def user_id():
    return f"user-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def other_user_id():
    return f"other-{uuid.uuid4().hex[:8]}"
