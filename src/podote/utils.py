from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple


# PUBLIC_INTERFACE
def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def new_todo_id() -> str:
    """Allocate a new opaque todo identifier."""
    return uuid.uuid4().hex


# PUBLIC_INTERFACE
def collapse_rank_pairs(pairs: Iterable[Tuple[str, int]]) -> List[Tuple[str, int]]:
    """
    Collapse (id, rank) pairs so that each id appears once.

    When an id is listed more than once the last rank given for it wins; the
    position of its first occurrence is kept.

    Args:
        pairs: Iterable of (todo id, new rank) tuples.

    Returns:
        List of (todo id, rank) tuples with unique ids.
    """
    collapsed: Dict[str, int] = {}
    for todo_id, rank in pairs:
        collapsed[todo_id] = int(rank)
    return list(collapsed.items())
