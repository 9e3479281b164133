"""
In-memory item and assist-task stores.

Used when no DATABASE_URL is configured (local development and tests).
Every method finishes without awaiting, so each call is atomic with respect
to other coroutines on the same event loop.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from cogniflow.models import AssistStatusView, AssistTask, Item, ItemDraft, QueryIntent, SubItem
from storage.base import (
    IN_FLIGHT_TASK_STATUSES,
    UPDATABLE_FIELDS,
    AssistTaskStore,
    ItemStore,
)

logger = logging.getLogger(__name__)


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


class InMemoryItemStore(ItemStore):

    def __init__(self):
        self._items: Dict[str, Item] = {}

    def _owned(self, user_id: str, item_id: str, include_deleted: bool = False) -> Optional[Item]:
        item = self._items.get(item_id)
        if item is None or item.user_id != user_id:
            return None
        if item.deleted_at is not None and not include_deleted:
            return None
        return item

    def _save(self, item: Item, **changes) -> Item:
        data = item.model_dump()
        data.update(changes)
        data["updated_at"] = datetime.now()
        saved = Item.model_validate(data)
        self._items[saved.id] = saved
        return saved.model_copy(deep=True)

    def _newest_first(self, items: Iterable[Item]) -> List[Item]:
        # dict preserves insertion order, which is creation order
        return [i.model_copy(deep=True) for i in reversed(list(items))]

    async def create_item(self, user_id: str, draft: ItemDraft) -> Item:
        now = datetime.now()
        item = Item(
            **draft.model_dump(),
            id=str(uuid.uuid4()),
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        self._items[item.id] = item
        return item.model_copy(deep=True)

    async def get_item(self, user_id: str, item_id: str) -> Optional[Item]:
        item = self._owned(user_id, item_id)
        return item.model_copy(deep=True) if item else None

    async def list_items(
        self,
        user_id: str,
        *,
        item_type: Optional[str] = None,
        status: Optional[str] = None,
        tag: Optional[str] = None,
        archived: bool = False,
        limit: int = 100,
    ) -> List[Item]:
        def keep(item: Item) -> bool:
            if item.user_id != user_id or item.deleted_at is not None:
                return False
            if (item.archived_at is not None) != archived:
                return False
            if item_type and item.type != item_type:
                return False
            if status and item.status != status:
                return False
            if tag and tag not in item.tags:
                return False
            return True

        return self._newest_first(filter(keep, self._items.values()))[:limit]

    async def update_item(self, user_id: str, item_id: str, changes: Dict[str, Any]) -> Optional[Item]:
        item = self._owned(user_id, item_id)
        if item is None:
            return None
        allowed = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        return self._save(item, **allowed)

    async def soft_delete(self, user_id: str, item_id: str) -> Optional[Item]:
        item = self._owned(user_id, item_id)
        if item is None:
            return None
        return self._save(item, deleted_at=datetime.now())

    async def archive(self, user_id: str, item_id: str) -> Optional[Item]:
        item = self._owned(user_id, item_id)
        if item is None:
            return None
        return self._save(item, archived_at=datetime.now())

    async def unarchive(self, user_id: str, item_id: str) -> Optional[Item]:
        item = self._owned(user_id, item_id)
        if item is None:
            return None
        return self._save(item, archived_at=None)

    async def query_items(self, user_id: str, intent: QueryIntent, limit: int = 100) -> List[Item]:
        def keep(item: Item) -> bool:
            if item.user_id != user_id or item.deleted_at is not None or item.archived_at is not None:
                return False
            if intent.types and item.type not in intent.types:
                return False
            if intent.statuses and item.status not in intent.statuses:
                return False
            if intent.tags and not set(intent.tags) & set(item.tags):
                return False
            if intent.search_text:
                text = intent.search_text
                if not (_contains(item.title, text) or _contains(item.description, text)
                        or _contains(item.raw_text, text)):
                    return False
            return True

        return self._newest_first(filter(keep, self._items.values()))[:limit]

    async def search_items(self, user_id: str, terms: Sequence[str], limit: int = 50) -> List[Item]:
        terms = [t for t in terms if t]
        if not terms:
            return []

        def keep(item: Item) -> bool:
            if item.user_id != user_id or item.deleted_at is not None or item.archived_at is not None:
                return False
            return any(
                _contains(item.title, t) or _contains(item.description, t)
                or _contains(item.raw_text, t) or t in item.tags
                for t in terms
            )

        return self._newest_first(filter(keep, self._items.values()))[:limit]

    async def list_active_events(self, user_id: str, now: datetime) -> List[Item]:
        return [
            item.model_copy(deep=True)
            for item in self._items.values()
            if item.user_id == user_id
            and item.type == "event"
            and item.deleted_at is None
            and item.archived_at is None
            and item.status != "completed"
            and item.start_time is not None
            and item.end_time is not None
            and item.end_time >= now
        ]

    async def reset_conflicts(self, user_id: str) -> None:
        for item_id, item in list(self._items.items()):
            if item.user_id == user_id and item.type == "event" and item.deleted_at is None:
                self._items[item_id] = item.model_copy(update={"has_conflict": False})

    async def mark_conflicts(self, user_id: str, item_ids: Iterable[str]) -> None:
        for item_id in item_ids:
            item = self._owned(user_id, item_id)
            if item is not None:
                self._items[item_id] = item.model_copy(update={"has_conflict": True})

    async def append_sub_items(self, user_id: str, item_id: str, sub_items: List[SubItem]) -> Optional[Item]:
        item = self._owned(user_id, item_id)
        if item is None:
            return None
        return self._save(item, sub_items=[*item.sub_items, *sub_items])


class InMemoryAssistTaskStore(AssistTaskStore):

    def __init__(self):
        self._tasks: Dict[str, AssistTask] = {}

    async def create_task(
        self,
        item_id: str,
        user_id: str,
        task_text: str,
        search_keywords: Optional[str] = None,
        max_attempts: int = 3,
    ) -> Optional[AssistTask]:
        for task in self._tasks.values():
            if task.item_id == item_id and task.status in IN_FLIGHT_TASK_STATUSES:
                logger.info(f"Item {item_id} already has an assist task in flight ({task.id})")
                return None

        now = datetime.now()
        task = AssistTask(
            id=str(uuid.uuid4()),
            item_id=item_id,
            user_id=user_id,
            status="pending",
            task_text=task_text,
            search_keywords=search_keywords,
            assist_result=None,
            error_message=None,
            attempt_count=0,
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
        )
        self._tasks[task.id] = task
        return task

    async def get_pending_tasks(self, limit: int = 5) -> List[AssistTask]:
        pending = [
            t for t in self._tasks.values()
            if t.status == "pending" and t.attempt_count < t.max_attempts
        ]
        # sorted() is stable, so equal timestamps keep insertion order
        return sorted(pending, key=lambda t: t.created_at)[:limit]

    async def mark_processing(self, task_id: str) -> Optional[AssistTask]:
        task = self._tasks.get(task_id)
        if task is None or task.status != "pending":
            return None
        now = datetime.now()
        task.status = "processing"
        task.attempt_count += 1
        task.processed_at = now
        task.updated_at = now
        return task

    async def get_task(self, task_id: str) -> Optional[AssistTask]:
        return self._tasks.get(task_id)

    async def complete_task(self, task_id: str, result: Dict[str, Any]) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            return
        now = datetime.now()
        task.status = "completed"
        task.assist_result = result
        task.error_message = None
        task.completed_at = now
        task.updated_at = now

    async def fail_task(self, task_id: str, error: str) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            return
        task.status = "failed"
        task.error_message = error
        task.updated_at = datetime.now()

    async def get_item_assist_status(self, item_id: str) -> AssistStatusView:
        tasks = [t for t in self._tasks.values() if t.item_id == item_id]
        if not tasks:
            return AssistStatusView(has_assist=False, status=None, completed_at=None)
        latest = tasks[0]
        for task in tasks[1:]:
            if task.created_at >= latest.created_at:
                latest = task
        return AssistStatusView(has_assist=True, status=latest.status, completed_at=latest.completed_at)

    async def cancel_tasks_for_item(self, item_id: str) -> int:
        doomed = [tid for tid, t in self._tasks.items() if t.item_id == item_id]
        for tid in doomed:
            del self._tasks[tid]
        if doomed:
            logger.info(f"Cancelled {len(doomed)} assist task(s) for item {item_id}")
        return len(doomed)

    async def get_stats(self) -> Dict[str, Any]:
        by_status: Dict[str, int] = {}
        for task in self._tasks.values():
            by_status[task.status] = by_status.get(task.status, 0) + 1
        return {"by_status": by_status, "total": len(self._tasks)}

    async def get_pending_count(self) -> int:
        return sum(1 for t in self._tasks.values() if t.status == "pending")
