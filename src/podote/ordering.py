from __future__ import annotations

import logging
from typing import Iterable, List, Tuple

from .models import TodoEntity
from .repositories import Repository
from .utils import collapse_rank_pairs

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class OrderingEngine:
    """
    Maintains the per-user rank (order_key) sequence of active todos.

    Higher ranks are listed first. A new todo is ranked just above the
    current active count, and client driven reorders rewrite many ranks in a
    single batch statement inside one transaction.
    """

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def create_rank(self, user_id: str) -> int:
        """
        Return the rank for a todo about to be created: active count + 1.
        Callers must run this and the insert inside one transaction so that
        concurrent creates for the same user cannot read the same count.
        """
        return self._repo.count_active(user_id) + 1

    def reorder(self, user_id: str, pairs: Iterable[Tuple[str, int]]) -> List[TodoEntity]:
        """
        Apply (id, rank) pairs for user_id atomically and return the active
        list ordered by rank descending.

        Ids that are unknown or owned by another user are skipped silently.
        An id listed twice takes the last rank given for it. An empty list
        changes nothing.
        """
        collapsed = collapse_rank_pairs(pairs)
        with self._repo.transaction():
            if collapsed:
                affected = self._repo.batch_update_order_keys(user_id, collapsed)
                logger.debug(
                    "Reordered %d of %d requested todo(s) for user %s", affected, len(collapsed), user_id
                )
            return self._repo.find_active(user_id)

    def normalize(self, user_id: str) -> List[TodoEntity]:
        """
        Renumber the active set to n..1 keeping its current display order.
        Repairs rank collisions, for instance after a restore.
        """
        with self._repo.transaction():
            active = self._repo.find_active(user_id)
            total = len(active)
            pairs = [(t["id"], total - i) for i, t in enumerate(active) if t["order_key"] != total - i]
            if pairs:
                self._repo.batch_update_order_keys(user_id, pairs)
                logger.debug("Normalized %d rank(s) for user %s", len(pairs), user_id)
            return self._repo.find_active(user_id)
