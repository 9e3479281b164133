"""
Store interfaces shared by the PostgreSQL and in-memory backends.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from cogniflow.models import AssistStatusView, AssistTask, Item, ItemDraft, QueryIntent, SubItem

# Columns a caller may change through update_item
UPDATABLE_FIELDS = frozenset({
    "type", "title", "description", "raw_text",
    "due_date", "start_time", "end_time",
    "priority", "status", "tags", "entities", "sub_items",
    "url", "url_title", "url_summary", "url_thumbnail", "url_fetched_at",
    "collection_type",
    "recurrence_rule", "recurrence_end_date", "master_item_id", "is_master",
})

TERMINAL_TASK_STATUSES = ("completed", "failed")
IN_FLIGHT_TASK_STATUSES = ("pending", "processing")


class ItemStore(ABC):

    @abstractmethod
    async def create_item(self, user_id: str, draft: ItemDraft) -> Item:
        raise NotImplementedError

    @abstractmethod
    async def get_item(self, user_id: str, item_id: str) -> Optional[Item]:
        """Return the item unless it is missing or soft-deleted."""
        raise NotImplementedError

    @abstractmethod
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
        raise NotImplementedError

    @abstractmethod
    async def update_item(self, user_id: str, item_id: str, changes: Dict[str, Any]) -> Optional[Item]:
        """Apply changes (validated against UPDATABLE_FIELDS) and return the new item."""
        raise NotImplementedError

    @abstractmethod
    async def soft_delete(self, user_id: str, item_id: str) -> Optional[Item]:
        raise NotImplementedError

    @abstractmethod
    async def archive(self, user_id: str, item_id: str) -> Optional[Item]:
        raise NotImplementedError

    @abstractmethod
    async def unarchive(self, user_id: str, item_id: str) -> Optional[Item]:
        raise NotImplementedError

    @abstractmethod
    async def query_items(self, user_id: str, intent: QueryIntent, limit: int = 100) -> List[Item]:
        raise NotImplementedError

    @abstractmethod
    async def search_items(self, user_id: str, terms: Sequence[str], limit: int = 50) -> List[Item]:
        """Items whose title/description/raw text contains, or whose tags equal, any term.

        Deleted and archived items are never returned.
        """
        raise NotImplementedError

    @abstractmethod
    async def list_active_events(self, user_id: str, now: datetime) -> List[Item]:
        """Events that are not deleted, archived or completed, with both times set and end >= now."""
        raise NotImplementedError

    @abstractmethod
    async def reset_conflicts(self, user_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def mark_conflicts(self, user_id: str, item_ids: Iterable[str]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def append_sub_items(self, user_id: str, item_id: str, sub_items: List[SubItem]) -> Optional[Item]:
        """Append to the end of the item's sub_items; existing entries keep their order."""
        raise NotImplementedError


class AssistTaskStore(ABC):

    @abstractmethod
    async def create_task(
        self,
        item_id: str,
        user_id: str,
        task_text: str,
        search_keywords: Optional[str] = None,
        max_attempts: int = 3,
    ) -> Optional[AssistTask]:
        """Insert a pending task, or return None when the item already has one in flight."""
        raise NotImplementedError

    @abstractmethod
    async def get_pending_tasks(self, limit: int = 5) -> List[AssistTask]:
        """Pending tasks with attempts left, oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def mark_processing(self, task_id: str) -> Optional[AssistTask]:
        """Claim a pending task: status=processing, attempt_count+1, processed_at=now."""
        raise NotImplementedError

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[AssistTask]:
        raise NotImplementedError

    @abstractmethod
    async def complete_task(self, task_id: str, result: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def fail_task(self, task_id: str, error: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_item_assist_status(self, item_id: str) -> AssistStatusView:
        """Status of the most recently created task for the item."""
        raise NotImplementedError

    @abstractmethod
    async def cancel_tasks_for_item(self, item_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def get_pending_count(self) -> int:
        raise NotImplementedError
