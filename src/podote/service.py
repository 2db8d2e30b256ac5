from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Tuple

from .lifecycle import LifecycleManager
from .models import TodoEntity
from .ordering import OrderingEngine
from .repositories import Repository, get_repository

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class TodoService:
    """
    Public entry point for todo operations.

    Every method takes an already authenticated user_id. Absence is reported
    as None or an empty list; storage errors propagate unchanged.
    """

    def __init__(
        self,
        repo: Repository,
        ordering: Optional[OrderingEngine] = None,
        lifecycle: Optional[LifecycleManager] = None,
    ) -> None:
        self._repo = repo
        self.ordering = ordering or OrderingEngine(repo)
        self.lifecycle = lifecycle or LifecycleManager(repo)

    def create(self, user_id: str, content: Any) -> TodoEntity:
        # Count and insert share one write transaction so ranks never collide
        with self._repo.transaction():
            rank = self.ordering.create_rank(user_id)
            created = self._repo.insert(user_id, content, rank)
        logger.info("Created todo %s for user %s with rank %d", created["id"], user_id, rank)
        return created

    def list_active(self, user_id: str) -> List[TodoEntity]:
        return self._repo.find_active(user_id)

    def list_trash(self, user_id: str) -> List[TodoEntity]:
        return self._repo.find_trash(user_id)

    def get_active_by_id(self, user_id: str, todo_id: str) -> Optional[TodoEntity]:
        return self._repo.find_active_by_id(todo_id, user_id)

    def get_trashed_by_id(self, user_id: str, todo_id: str) -> Optional[TodoEntity]:
        return self._repo.find_trashed_by_id(todo_id, user_id)

    def update_content(self, user_id: str, todo_id: str, content: Any) -> Optional[TodoEntity]:
        logger.debug("Updating content of todo %s for user %s", todo_id, user_id)
        return self.lifecycle.update_content(user_id, todo_id, content)

    def update_done(self, user_id: str, todo_id: str, done: bool) -> Optional[TodoEntity]:
        logger.debug("Setting done=%s on todo %s for user %s", done, todo_id, user_id)
        return self.lifecycle.update_done(user_id, todo_id, done)

    def reorder(self, user_id: str, pairs: Iterable[Tuple[str, int]]) -> List[TodoEntity]:
        return self.ordering.reorder(user_id, pairs)

    def normalize(self, user_id: str) -> List[TodoEntity]:
        return self.ordering.normalize(user_id)

    def remove(self, user_id: str, todo_id: str) -> Optional[TodoEntity]:
        return self.lifecycle.remove(user_id, todo_id)

    def restore(self, user_id: str, todo_id: str) -> Optional[TodoEntity]:
        return self.lifecycle.restore(user_id, todo_id)

    def purge_one(self, user_id: str, todo_id: str) -> List[TodoEntity]:
        return self.lifecycle.purge_one(user_id, todo_id)

    def purge_all_trash(self, user_id: str) -> List[TodoEntity]:
        return self.lifecycle.purge_all(user_id)


# PUBLIC_INTERFACE
def get_todo_service() -> TodoService:
    """FastAPI dependency returning a service bound to the configured repository."""
    return TodoService(get_repository())
