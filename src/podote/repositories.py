from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .models import TodoEntity
from .settings import get_settings
from .utils import new_todo_id, utcnow

RankPair = Tuple[str, int]


# PUBLIC_INTERFACE
class Repository(ABC):
    """
    Abstract storage gateway for todo backends.

    Every method is scoped by user_id; a todo owned by someone else behaves
    exactly like a missing one. Write methods return the number of affected
    rows and never raise for "not found".
    """

    @abstractmethod
    def transaction(self) -> Iterator[None]:
        """
        Context manager grouping several calls into one atomic unit.
        Nested use joins the outer transaction. On error everything done
        inside the outermost block is undone and the error re-raised.
        """

    @abstractmethod
    def count_active(self, user_id: str) -> int:
        """Return the number of active (non-removed) todos owned by user_id."""

    @abstractmethod
    def insert(self, user_id: str, content: Any, order_key: int) -> TodoEntity:
        """Create and return a new active TodoEntity."""

    @abstractmethod
    def find_active(self, user_id: str) -> List[TodoEntity]:
        """Return active todos ordered by order_key descending."""

    @abstractmethod
    def find_active_by_id(self, todo_id: str, user_id: str) -> Optional[TodoEntity]:
        """Return an active todo by id, or None if not found."""

    @abstractmethod
    def find_trashed_by_id(self, todo_id: str, user_id: str) -> Optional[TodoEntity]:
        """Return a removed todo by id, or None if not found."""

    @abstractmethod
    def find_trash(self, user_id: str) -> List[TodoEntity]:
        """Return removed todos ordered by removed_dt descending."""

    @abstractmethod
    def update_content(self, todo_id: str, user_id: str, content: Any, updated_dt: datetime) -> int:
        """Replace the content of an active todo."""

    @abstractmethod
    def update_done(self, todo_id: str, user_id: str, done: bool, updated_dt: datetime) -> int:
        """Set the completion flag of an active todo."""

    @abstractmethod
    def batch_update_order_keys(self, user_id: str, pairs: Sequence[RankPair]) -> int:
        """
        Rewrite order_key for every (id, rank) pair owned by user_id in a
        single statement. Pairs naming unknown or foreign ids are skipped.
        """

    @abstractmethod
    def mark_removed(self, todo_id: str, user_id: str, removed_dt: datetime) -> int:
        """Move an active todo to the trash."""

    @abstractmethod
    def mark_restored(self, todo_id: str, user_id: str) -> int:
        """Bring a removed todo back to the active set."""

    @abstractmethod
    def delete_trashed_by_id(self, todo_id: str, user_id: str) -> int:
        """Permanently delete one removed todo."""

    @abstractmethod
    def delete_all_trash(self, user_id: str) -> int:
        """Permanently delete every removed todo of user_id."""


def _active_sort_key(t: TodoEntity) -> tuple:
    return (t["order_key"], t["created_dt"], t["id"])


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    Transactions hold the lock and restore a snapshot of all rows on error.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TodoEntity] = {}
        self._tx_depth = 0

    def _clone(self, entity: TodoEntity) -> TodoEntity:
        # Return copies to avoid external mutation
        return copy.deepcopy(entity)

    def _owned(self, todo_id: str, user_id: str, removed: bool) -> Optional[TodoEntity]:
        item = self._items.get(todo_id)
        if item is None or item["user_id"] != user_id or item["is_removed"] != removed:
            return None
        return item

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return

            snapshot = {k: self._clone(v) for k, v in self._items.items()}
            self._tx_depth = 1
            try:
                yield
            except BaseException:
                self._items = snapshot
                raise
            finally:
                self._tx_depth = 0

    def count_active(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for t in self._items.values() if t["user_id"] == user_id and not t["is_removed"])

    def insert(self, user_id: str, content: Any, order_key: int) -> TodoEntity:
        entity: TodoEntity = {
            "id": new_todo_id(),
            "user_id": user_id,
            "content": copy.deepcopy(content),
            "done": False,
            "order_key": int(order_key),
            "is_removed": False,
            "created_dt": utcnow(),
            "updated_dt": None,
            "removed_dt": None,
        }
        with self._lock:
            self._items[entity["id"]] = entity
            return self._clone(entity)

    def find_active(self, user_id: str) -> List[TodoEntity]:
        with self._lock:
            items = [t for t in self._items.values() if t["user_id"] == user_id and not t["is_removed"]]
            items_sorted = sorted(items, key=_active_sort_key, reverse=True)
            return [self._clone(t) for t in items_sorted]

    def find_active_by_id(self, todo_id: str, user_id: str) -> Optional[TodoEntity]:
        with self._lock:
            item = self._owned(todo_id, user_id, removed=False)
            return None if item is None else self._clone(item)

    def find_trashed_by_id(self, todo_id: str, user_id: str) -> Optional[TodoEntity]:
        with self._lock:
            item = self._owned(todo_id, user_id, removed=True)
            return None if item is None else self._clone(item)

    def find_trash(self, user_id: str) -> List[TodoEntity]:
        with self._lock:
            items = [t for t in self._items.values() if t["user_id"] == user_id and t["is_removed"]]
            items_sorted = sorted(items, key=lambda t: (t["removed_dt"], t["id"]), reverse=True)
            return [self._clone(t) for t in items_sorted]

    def update_content(self, todo_id: str, user_id: str, content: Any, updated_dt: datetime) -> int:
        with self._lock:
            item = self._owned(todo_id, user_id, removed=False)
            if item is None:
                return 0
            item["content"] = copy.deepcopy(content)
            item["updated_dt"] = updated_dt
            return 1

    def update_done(self, todo_id: str, user_id: str, done: bool, updated_dt: datetime) -> int:
        with self._lock:
            item = self._owned(todo_id, user_id, removed=False)
            if item is None:
                return 0
            item["done"] = bool(done)
            item["updated_dt"] = updated_dt
            return 1

    def batch_update_order_keys(self, user_id: str, pairs: Sequence[RankPair]) -> int:
        with self._lock:
            targets = []
            for todo_id, rank in pairs:
                item = self._items.get(todo_id)
                if item is not None and item["user_id"] == user_id:
                    targets.append((item, int(rank)))
            for item, rank in targets:
                item["order_key"] = rank
            return len({id(item) for item, _ in targets})

    def mark_removed(self, todo_id: str, user_id: str, removed_dt: datetime) -> int:
        with self._lock:
            item = self._owned(todo_id, user_id, removed=False)
            if item is None:
                return 0
            item["is_removed"] = True
            item["removed_dt"] = removed_dt
            return 1

    def mark_restored(self, todo_id: str, user_id: str) -> int:
        with self._lock:
            item = self._owned(todo_id, user_id, removed=True)
            if item is None:
                return 0
            item["is_removed"] = False
            item["removed_dt"] = None
            return 1

    def delete_trashed_by_id(self, todo_id: str, user_id: str) -> int:
        with self._lock:
            if self._owned(todo_id, user_id, removed=True) is None:
                return 0
            del self._items[todo_id]
            return 1

    def delete_all_trash(self, user_id: str) -> int:
        with self._lock:
            doomed = [k for k, t in self._items.items() if t["user_id"] == user_id and t["is_removed"]]
            for k in doomed:
                del self._items[k]
            return len(doomed)


def build_repository(backend: str, sqlite_db_path: str = "", sqlite_timeout: float = 5.0) -> Repository:
    """
    Construct a repository for the named backend.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository backed by the stdlib sqlite3 module
    """
    if backend == "sqlite":
        from .db import SQLiteRepository

        return SQLiteRepository(sqlite_db_path, timeout=sqlite_timeout)
    return InMemoryRepository()


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """
    Return the process-wide repository configured by settings.
    Cached so every request of one app process shares the same backend.
    """
    settings = get_settings()
    return build_repository(
        settings.persistence_backend,
        sqlite_db_path=settings.sqlite_db_path,
        sqlite_timeout=settings.sqlite_timeout,
    )
