from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from scheduling.time_resolver import parse_local_timestamp


ITEM_TYPES = ("task", "event", "note", "data", "url", "collection")
PRIORITIES = ("high", "medium", "low")

ItemType = Literal["task", "event", "note", "data", "url", "collection"]
Priority = Literal["high", "medium", "low"]
SubItemStatus = Literal["pending", "done"]
AssistStatus = Literal["pending", "processing", "completed", "failed"]


def _load_json(value: Any, default: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered
    if value is None:
        return default
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return default
    return value


class SubItem(BaseModel):
    id: str
    text: str
    status: SubItemStatus = "pending"


class ItemDraft(BaseModel):
    """Everything needed to persist a new item."""

    raw_text: str = ""
    type: ItemType = "task"
    title: Optional[str] = None
    description: Optional[str] = None

    # local wall-clock time, never UTC-normalized
    due_date: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    priority: Priority = "medium"
    status: str = "pending"
    tags: List[str] = Field(default_factory=list)
    entities: Dict[str, Any] = Field(default_factory=dict)
    sub_items: List[SubItem] = Field(default_factory=list)

    url: Optional[str] = None
    url_title: Optional[str] = None
    url_summary: Optional[str] = None
    url_thumbnail: Optional[str] = None
    url_fetched_at: Optional[datetime] = None
    collection_type: Optional[str] = None

    recurrence_rule: Optional[str] = None
    recurrence_end_date: Optional[datetime] = None
    master_item_id: Optional[str] = None
    is_master: bool = False

    @field_validator("type", mode="before")
    @classmethod
    def type_defaults_to_task(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip().lower() in ITEM_TYPES:
            return v.strip().lower()
        return "task"

    @field_validator("priority", mode="before")
    @classmethod
    def priority_defaults_to_medium(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip().lower() in PRIORITIES:
            return v.strip().lower()
        return "medium"

    @field_validator(
        "due_date",
        "start_time",
        "end_time",
        "url_fetched_at",
        "recurrence_end_date",
        mode="before",
    )
    @classmethod
    def keep_local_clock_time(cls, v: Any) -> Optional[datetime]:
        if v is None or v == "":
            return None
        return parse_local_timestamp(v)

    @field_validator("tags", mode="before")
    @classmethod
    def unique_tags(cls, v: Any) -> List[str]:
        if not isinstance(v, (list, tuple)):
            return []
        seen: List[str] = []
        for tag in v:
            tag = str(tag).strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @field_validator("entities", mode="before")
    @classmethod
    def entities_as_dict(cls, v: Any) -> Dict[str, Any]:
        v = _load_json(v, {})
        return v if isinstance(v, dict) else {}

    @field_validator("sub_items", mode="before")
    @classmethod
    def sub_items_as_list(cls, v: Any) -> list:
        v = _load_json(v, [])
        return v if isinstance(v, list) else []


class Item(ItemDraft):
    id: str
    user_id: str
    has_conflict: bool = False
    archived_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "Item":
        """Create an Item from a database record."""
        data = dict(record)
        data["id"] = str(data["id"])
        data["user_id"] = str(data["user_id"])
        if data.get("master_item_id") is not None:
            data["master_item_id"] = str(data["master_item_id"])
        data["tags"] = list(data.get("tags") or [])
        return cls(**data)


class QueryIntent(BaseModel):
    """Structured filters extracted from a natural-language query."""

    types: List[ItemType] = Field(default_factory=list)
    statuses: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    search_text: Optional[str] = None

    @field_validator("types", mode="before")
    @classmethod
    def known_types_only(cls, v: Any) -> List[str]:
        if not isinstance(v, (list, tuple)):
            return []
        return [t for t in (str(x).lower() for x in v) if t in ITEM_TYPES]


@dataclass
class AssistTask:
    """One durable unit of deferred AI-assist work."""
    id: str
    item_id: str
    user_id: str
    status: str
    task_text: str
    search_keywords: Optional[str]
    assist_result: Optional[dict]
    error_message: Optional[str]
    attempt_count: int
    max_attempts: int
    created_at: datetime
    updated_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "AssistTask":
        """Create an AssistTask from a database record."""
        return cls(
            id=str(record["id"]),
            item_id=str(record["item_id"]),
            user_id=str(record["user_id"]),
            status=record["status"],
            task_text=record["task_text"],
            search_keywords=record["search_keywords"],
            assist_result=_load_json(record["assist_result"], None),
            error_message=record["error_message"],
            attempt_count=record["attempt_count"],
            max_attempts=record["max_attempts"],
            created_at=record["created_at"],
            updated_at=record["updated_at"],
            processed_at=record["processed_at"],
            completed_at=record["completed_at"],
        )


@dataclass(frozen=True)
class AssistStatusView:
    has_assist: bool
    status: Optional[str]
    completed_at: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "hasAssist": self.has_assist,
            "status": self.status,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


class OutcomeKind(str, Enum):
    HELP = "help"
    QUERY = "query"
    URL = "url"
    TEMPLATE = "template"
    ITEM = "item"


@dataclass
class Template:
    trigger_word: str
    template_name: str
    icon: str
    collection_type: str
    default_tags: List[str] = field(default_factory=list)
    default_sub_items: List[str] = field(default_factory=list)


@dataclass
class ClassificationOutcome:
    """Result of classifying one piece of raw input.

    Only ITEM and URL outcomes carry a draft to persist; QUERY carries the
    parsed intent and TEMPLATE the templates matching the trigger.
    """
    kind: OutcomeKind
    raw_text: str
    draft: Optional[ItemDraft] = None
    query: Optional[QueryIntent] = None
    query_text: Optional[str] = None
    templates: List[Template] = field(default_factory=list)
    extracted_tags: List[str] = field(default_factory=list)
    used_fallback: bool = False
