from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional

from .models import TodoEntity
from .repositories import Repository
from .utils import utcnow

logger = logging.getLogger(__name__)


class TodoState(str, Enum):
    ACTIVE = "active"
    REMOVED = "removed"
    PURGED = "purged"


def state_of(todo: Optional[TodoEntity]) -> TodoState:
    """Return the lifecycle state of a todo; a missing row counts as purged."""
    if todo is None:
        return TodoState.PURGED
    return TodoState.REMOVED if todo["is_removed"] else TodoState.ACTIVE


# PUBLIC_INTERFACE
class LifecycleManager:
    """
    Drives todos through ACTIVE -> REMOVED -> {ACTIVE | PURGED} and stamps
    updated_dt / removed_dt.

    Every transition is scoped to (id, user_id). A transition whose
    precondition does not hold (unknown id, foreign owner, wrong state)
    changes nothing and reports through the returned value, never raises.
    Each method performs its write and the follow-up read in one transaction.
    """

    def __init__(self, repo: Repository, clock: Callable[[], datetime] = utcnow) -> None:
        self._repo = repo
        self._clock = clock

    def update_content(self, user_id: str, todo_id: str, content: Any) -> Optional[TodoEntity]:
        with self._repo.transaction():
            self._repo.update_content(todo_id, user_id, content, self._clock())
            return self._repo.find_active_by_id(todo_id, user_id)

    def update_done(self, user_id: str, todo_id: str, done: bool) -> Optional[TodoEntity]:
        with self._repo.transaction():
            self._repo.update_done(todo_id, user_id, done, self._clock())
            return self._repo.find_active_by_id(todo_id, user_id)

    def remove(self, user_id: str, todo_id: str) -> Optional[TodoEntity]:
        """ACTIVE -> REMOVED. Returns the trashed todo, or None."""
        with self._repo.transaction():
            if self._repo.mark_removed(todo_id, user_id, self._clock()):
                logger.info("Moved todo %s of user %s to trash", todo_id, user_id)
            return self._repo.find_trashed_by_id(todo_id, user_id)

    def restore(self, user_id: str, todo_id: str) -> Optional[TodoEntity]:
        """REMOVED -> ACTIVE, keeping the previous order_key. Returns the todo, or None."""
        with self._repo.transaction():
            if self._repo.mark_restored(todo_id, user_id):
                logger.info("Restored todo %s of user %s", todo_id, user_id)
            return self._repo.find_active_by_id(todo_id, user_id)

    def purge_one(self, user_id: str, todo_id: str) -> List[TodoEntity]:
        """REMOVED -> PURGED for one todo. Active todos are left alone."""
        with self._repo.transaction():
            if self._repo.delete_trashed_by_id(todo_id, user_id):
                logger.info("Purged todo %s of user %s", todo_id, user_id)
            return self._repo.find_trash(user_id)

    def purge_all(self, user_id: str) -> List[TodoEntity]:
        """REMOVED -> PURGED for the whole trash of user_id."""
        with self._repo.transaction():
            purged = self._repo.delete_all_trash(user_id)
            logger.info("Emptied trash of user %s (%d todo(s))", user_id, purged)
            return self._repo.find_trash(user_id)
