from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, TypedDict


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A lightweight domain model representing a Todo item as returned by every
    storage backend.

    Fields:
    - id: Opaque unique identifier (uuid4 hex), immutable
    - user_id: Owner of the item; every read and write is scoped by it
    - content: Arbitrary JSON document owned by the caller, never inspected
    - done: Boolean completion flag
    - order_key: Rank among the owner's active items (higher is shown first)
    - is_removed: Soft-delete flag (True while the item sits in the trash)
    - created_dt: UTC creation timestamp
    - updated_dt: UTC timestamp of the last content/done change, None until then
    - removed_dt: UTC timestamp of the move to trash, None unless removed
    """

    id: str
    user_id: str
    content: Any
    done: bool
    order_key: int
    is_removed: bool
    created_dt: datetime
    updated_dt: Optional[datetime]
    removed_dt: Optional[datetime]
