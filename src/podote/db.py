from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generator, Iterator, List, Optional, Sequence

from .models import TodoEntity
from .repositories import RankPair, Repository
from .utils import new_todo_id, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "todos"
    id: str = "id"
    user_id: str = "user_id"
    content: str = "content"
    done: str = "done"
    order_key: str = "order_key"
    is_removed: str = "is_removed"
    created_dt: str = "created_dt"
    updated_dt: str = "updated_dt"
    removed_dt: str = "removed_dt"


_COLS = _Cols()


def _dt_to_text(value: Optional[datetime]) -> Optional[str]:
    # Fixed width so that text ordering matches time ordering
    return None if value is None else value.isoformat(timespec="microseconds")


def _text_to_dt(value: Optional[str]) -> Optional[datetime]:
    return None if value is None else datetime.fromisoformat(value)


class SQLiteRepository(Repository):
    """
    SQLite repository implementing the Repository interface.

    One connection is opened per outermost transaction and shared, through a
    thread-local, by every call made inside it. Write transactions start with
    BEGIN IMMEDIATE so concurrent writers are serialized by the database lock.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._timeout = timeout
        self._local = threading.local()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _current(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, "conn", None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._current() is not None:
            yield
            return

        conn = self._connect()
        self._local.conn = conn
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
        finally:
            self._local.conn = None
            conn.close()

    @contextmanager
    def _writer(self) -> Generator[sqlite3.Connection, None, None]:
        with self.transaction():
            conn = self._current()
            assert conn is not None
            yield conn

    @contextmanager
    def _reader(self) -> Generator[sqlite3.Connection, None, None]:
        conn = self._current()
        if conn is not None:
            yield conn
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._writer() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.user_id} TEXT NOT NULL,
                    {_COLS.content} TEXT NOT NULL DEFAULT 'null',
                    {_COLS.done} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.order_key} INTEGER NOT NULL,
                    {_COLS.is_removed} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.created_dt} TEXT NOT NULL,
                    {_COLS.updated_dt} TEXT NULL,
                    {_COLS.removed_dt} TEXT NULL,
                    CHECK (({_COLS.is_removed} = 0) = ({_COLS.removed_dt} IS NULL))
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_active ON {_COLS.table}"
                f"({_COLS.user_id}, {_COLS.is_removed}, {_COLS.order_key})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_trash ON {_COLS.table}"
                f"({_COLS.user_id}, {_COLS.is_removed}, {_COLS.removed_dt})"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TodoEntity:
        return {
            "id": str(row[_COLS.id]),
            "user_id": str(row[_COLS.user_id]),
            "content": json.loads(row[_COLS.content]),
            "done": bool(row[_COLS.done]),
            "order_key": int(row[_COLS.order_key]),
            "is_removed": bool(row[_COLS.is_removed]),
            "created_dt": _text_to_dt(row[_COLS.created_dt]),  # type: ignore
            "updated_dt": _text_to_dt(row[_COLS.updated_dt]),
            "removed_dt": _text_to_dt(row[_COLS.removed_dt]),
        }

    def _select_one(self, todo_id: str, user_id: str, removed: bool) -> Optional[TodoEntity]:
        with self._reader() as conn:
            row = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                WHERE {_COLS.id} = ? AND {_COLS.user_id} = ? AND {_COLS.is_removed} = ?
                """,
                (todo_id, user_id, 1 if removed else 0),
            ).fetchone()
            return self._row_to_entity(row) if row else None

    def count_active(self, user_id: str) -> int:
        with self._reader() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS cnt FROM {_COLS.table} WHERE {_COLS.user_id} = ? AND {_COLS.is_removed} = 0",
                (user_id,),
            ).fetchone()
            return int(row["cnt"]) if row else 0

    def insert(self, user_id: str, content: Any, order_key: int) -> TodoEntity:
        new_id = new_todo_id()
        with self._writer() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.user_id}, {_COLS.content},
                    {_COLS.done}, {_COLS.order_key}, {_COLS.is_removed}, {_COLS.created_dt})
                VALUES (?, ?, ?, 0, ?, 0, ?)
                """,
                (new_id, user_id, json.dumps(content), int(order_key), _dt_to_text(utcnow())),
            )
            row = conn.execute(f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (new_id,)).fetchone()
            assert row is not None
            return self._row_to_entity(row)

    def find_active(self, user_id: str) -> List[TodoEntity]:
        with self._reader() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                WHERE {_COLS.user_id} = ? AND {_COLS.is_removed} = 0
                ORDER BY {_COLS.order_key} DESC, {_COLS.created_dt} DESC, {_COLS.id} DESC
                """,
                (user_id,),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def find_active_by_id(self, todo_id: str, user_id: str) -> Optional[TodoEntity]:
        return self._select_one(todo_id, user_id, removed=False)

    def find_trashed_by_id(self, todo_id: str, user_id: str) -> Optional[TodoEntity]:
        return self._select_one(todo_id, user_id, removed=True)

    def find_trash(self, user_id: str) -> List[TodoEntity]:
        with self._reader() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                WHERE {_COLS.user_id} = ? AND {_COLS.is_removed} = 1
                ORDER BY {_COLS.removed_dt} DESC, {_COLS.id} DESC
                """,
                (user_id,),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def update_content(self, todo_id: str, user_id: str, content: Any, updated_dt: datetime) -> int:
        with self._writer() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_COLS.table} SET {_COLS.content} = ?, {_COLS.updated_dt} = ?
                WHERE {_COLS.id} = ? AND {_COLS.user_id} = ? AND {_COLS.is_removed} = 0
                """,
                (json.dumps(content), _dt_to_text(updated_dt), todo_id, user_id),
            )
            return cur.rowcount

    def update_done(self, todo_id: str, user_id: str, done: bool, updated_dt: datetime) -> int:
        with self._writer() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_COLS.table} SET {_COLS.done} = ?, {_COLS.updated_dt} = ?
                WHERE {_COLS.id} = ? AND {_COLS.user_id} = ? AND {_COLS.is_removed} = 0
                """,
                (1 if done else 0, _dt_to_text(updated_dt), todo_id, user_id),
            )
            return cur.rowcount

    def batch_update_order_keys(self, user_id: str, pairs: Sequence[RankPair]) -> int:
        if not pairs:
            return 0
        values_sql = ", ".join("(?, ?)" for _ in pairs)
        params: list = []
        for todo_id, rank in pairs:
            params.extend([todo_id, int(rank)])
        params.append(user_id)

        with self._writer() as conn:
            cur = conn.execute(
                f"""
                WITH c(id, order_key) AS (VALUES {values_sql})
                UPDATE {_COLS.table}
                SET {_COLS.order_key} = (SELECT c.order_key FROM c WHERE c.id = {_COLS.table}.{_COLS.id})
                WHERE {_COLS.user_id} = ? AND {_COLS.id} IN (SELECT id FROM c)
                """,
                params,
            )
            logger.debug("Batch rank update for user %s touched %d row(s)", user_id, cur.rowcount)
            return cur.rowcount

    def mark_removed(self, todo_id: str, user_id: str, removed_dt: datetime) -> int:
        with self._writer() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_COLS.table} SET {_COLS.is_removed} = 1, {_COLS.removed_dt} = ?
                WHERE {_COLS.id} = ? AND {_COLS.user_id} = ? AND {_COLS.is_removed} = 0
                """,
                (_dt_to_text(removed_dt), todo_id, user_id),
            )
            return cur.rowcount

    def mark_restored(self, todo_id: str, user_id: str) -> int:
        with self._writer() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_COLS.table} SET {_COLS.is_removed} = 0, {_COLS.removed_dt} = NULL
                WHERE {_COLS.id} = ? AND {_COLS.user_id} = ? AND {_COLS.is_removed} = 1
                """,
                (todo_id, user_id),
            )
            return cur.rowcount

    def delete_trashed_by_id(self, todo_id: str, user_id: str) -> int:
        with self._writer() as conn:
            cur = conn.execute(
                f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ? AND {_COLS.user_id} = ? AND {_COLS.is_removed} = 1",
                (todo_id, user_id),
            )
            return cur.rowcount

    def delete_all_trash(self, user_id: str) -> int:
        with self._writer() as conn:
            cur = conn.execute(
                f"DELETE FROM {_COLS.table} WHERE {_COLS.user_id} = ? AND {_COLS.is_removed} = 1",
                (user_id,),
            )
            return cur.rowcount
