"""
Event conflict detection.

Two active events conflict when their [start, end) intervals overlap.
Intervals that only touch (one ends exactly when the other starts) do not.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, Optional, Set

from cogniflow.models import Item
from storage.base import ItemStore

logger = logging.getLogger(__name__)

TIME_FIELDS = ("start_time", "end_time", "due_date")


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def find_conflicts(events: Iterable[Item]) -> Set[str]:
    """Ids of every event that overlaps at least one other event."""
    timed = [e for e in events if e.start_time is not None and e.end_time is not None]
    conflicting: Set[str] = set()
    for i, a in enumerate(timed):
        for b in timed[i + 1:]:
            if intervals_overlap(a.start_time, a.end_time, b.start_time, b.end_time):
                conflicting.add(a.id)
                conflicting.add(b.id)
    return conflicting


def affects_conflicts(before: Optional[Item], after: Optional[Item]) -> bool:
    """Whether going from before to after requires recomputing conflicts."""
    if before is None or after is None:
        item = before or after
        return item is not None and item.type == "event"
    if "event" not in (before.type, after.type):
        return False
    if before.type != after.type or before.status != after.status:
        return True
    return any(getattr(before, f) != getattr(after, f) for f in TIME_FIELDS)


class ConflictResolver:
    """Recomputes has_conflict flags for one user's events from scratch."""

    def __init__(self, store: ItemStore):
        self.store = store
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def recompute_conflicts(self, user_id: str, now: Optional[datetime] = None) -> Set[str]:
        now = now or datetime.now()
        async with self._lock_for(user_id):
            await self.store.reset_conflicts(user_id)
            events = await self.store.list_active_events(user_id, now)
            conflicting = find_conflicts(events)
            if conflicting:
                await self.store.mark_conflicts(user_id, conflicting)
        logger.info(
            f"Recomputed conflicts for user {user_id}: "
            f"{len(conflicting)} of {len(events)} active events conflict"
        )
        return conflicting
