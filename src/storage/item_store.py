"""
PostgreSQL-backed item store.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from cogniflow.models import Item, ItemDraft, QueryIntent, SubItem
from storage import db
from storage.base import UPDATABLE_FIELDS, ItemStore

_INSERT_COLUMNS = (
    "user_id", "type", "raw_text", "title", "description",
    "due_date", "start_time", "end_time", "priority", "status",
    "tags", "entities", "sub_items",
    "url", "url_title", "url_summary", "url_thumbnail", "url_fetched_at",
    "collection_type", "recurrence_rule", "recurrence_end_date",
    "master_item_id", "is_master",
)


def _as_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _column_values(data: Dict[str, Any], columns: Sequence[str]) -> List[Any]:
    values = []
    for col in columns:
        value = data.get(col)
        if col == "master_item_id":
            value = _as_uuid(value)
        values.append(value)
    return values


class PostgresItemStore(ItemStore):

    async def create_item(self, user_id: str, draft: ItemDraft) -> Item:
        data = draft.model_dump()
        data["user_id"] = user_id
        placeholders = ", ".join(f"${i}" for i in range(1, len(_INSERT_COLUMNS) + 1))
        query = f"""
            INSERT INTO items ({", ".join(_INSERT_COLUMNS)})
            VALUES ({placeholders})
            RETURNING *
        """
        record = await db.fetchrow(query, *_column_values(data, _INSERT_COLUMNS))
        return Item.from_record(record)

    async def get_item(self, user_id: str, item_id: str) -> Optional[Item]:
        uid = _as_uuid(item_id)
        if uid is None:
            return None
        record = await db.fetchrow(
            "SELECT * FROM items WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL",
            uid,
            user_id,
        )
        return Item.from_record(record) if record else None

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
        conditions = ["user_id = $1", "deleted_at IS NULL"]
        conditions.append("archived_at IS NOT NULL" if archived else "archived_at IS NULL")
        args: List[Any] = [user_id]

        if item_type:
            args.append(item_type)
            conditions.append(f"type = ${len(args)}")
        if status:
            args.append(status)
            conditions.append(f"status = ${len(args)}")
        if tag:
            args.append(tag)
            conditions.append(f"${len(args)} = ANY(tags)")
        args.append(limit)

        query = f"""
            SELECT * FROM items
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC
            LIMIT ${len(args)}
        """
        records = await db.fetch(query, *args)
        return [Item.from_record(r) for r in records]

    async def update_item(self, user_id: str, item_id: str, changes: Dict[str, Any]) -> Optional[Item]:
        current = await self.get_item(user_id, item_id)
        if current is None:
            return None
        columns = [k for k in changes if k in UPDATABLE_FIELDS]
        if not columns:
            return current

        # Validate the merged result so stored values are normalized
        merged = Item.model_validate({**current.model_dump(), **{k: changes[k] for k in columns}})
        data = merged.model_dump()

        assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=3))
        query = f"""
            UPDATE items
            SET {assignments}, updated_at = NOW()
            WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
            RETURNING *
        """
        record = await db.fetchrow(query, _as_uuid(item_id), user_id, *_column_values(data, columns))
        return Item.from_record(record) if record else None

    async def _stamp(self, user_id: str, item_id: str, assignment: str) -> Optional[Item]:
        uid = _as_uuid(item_id)
        if uid is None:
            return None
        record = await db.fetchrow(
            f"""
            UPDATE items
            SET {assignment}, updated_at = NOW()
            WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
            RETURNING *
            """,
            uid,
            user_id,
        )
        return Item.from_record(record) if record else None

    async def soft_delete(self, user_id: str, item_id: str) -> Optional[Item]:
        return await self._stamp(user_id, item_id, "deleted_at = NOW()")

    async def archive(self, user_id: str, item_id: str) -> Optional[Item]:
        return await self._stamp(user_id, item_id, "archived_at = NOW()")

    async def unarchive(self, user_id: str, item_id: str) -> Optional[Item]:
        return await self._stamp(user_id, item_id, "archived_at = NULL")

    async def query_items(self, user_id: str, intent: QueryIntent, limit: int = 100) -> List[Item]:
        conditions = ["user_id = $1", "deleted_at IS NULL", "archived_at IS NULL"]
        args: List[Any] = [user_id]

        if intent.search_text:
            args.append(_like(intent.search_text))
            n = len(args)
            conditions.append(f"(title ILIKE ${n} OR description ILIKE ${n} OR raw_text ILIKE ${n})")
        if intent.types:
            args.append(list(intent.types))
            conditions.append(f"type = ANY(${len(args)}::text[])")
        if intent.statuses:
            args.append(list(intent.statuses))
            conditions.append(f"status = ANY(${len(args)}::text[])")
        if intent.tags:
            args.append(list(intent.tags))
            conditions.append(f"tags && ${len(args)}::text[]")
        args.append(limit)

        query = f"""
            SELECT * FROM items
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC
            LIMIT ${len(args)}
        """
        records = await db.fetch(query, *args)
        return [Item.from_record(r) for r in records]

    async def search_items(self, user_id: str, terms: Sequence[str], limit: int = 50) -> List[Item]:
        terms = [t for t in terms if t]
        if not terms:
            return []
        query = """
            SELECT * FROM items
            WHERE user_id = $1
              AND deleted_at IS NULL
              AND archived_at IS NULL
              AND (
                title ILIKE ANY($2::text[])
                OR description ILIKE ANY($2::text[])
                OR raw_text ILIKE ANY($2::text[])
                OR tags && $3::text[]
              )
            ORDER BY created_at DESC
            LIMIT $4
        """
        records = await db.fetch(query, user_id, [_like(t) for t in terms], terms, limit)
        return [Item.from_record(r) for r in records]

    async def list_active_events(self, user_id: str, now: datetime) -> List[Item]:
        query = """
            SELECT * FROM items
            WHERE user_id = $1
              AND type = 'event'
              AND deleted_at IS NULL
              AND archived_at IS NULL
              AND status <> 'completed'
              AND start_time IS NOT NULL
              AND end_time IS NOT NULL
              AND end_time >= $2
            ORDER BY start_time
        """
        records = await db.fetch(query, user_id, now)
        return [Item.from_record(r) for r in records]

    async def reset_conflicts(self, user_id: str) -> None:
        await db.execute(
            """
            UPDATE items SET has_conflict = FALSE
            WHERE user_id = $1 AND type = 'event' AND deleted_at IS NULL AND has_conflict
            """,
            user_id,
        )

    async def mark_conflicts(self, user_id: str, item_ids: Iterable[str]) -> None:
        ids = [u for u in (_as_uuid(i) for i in item_ids) if u is not None]
        if not ids:
            return
        await db.execute(
            "UPDATE items SET has_conflict = TRUE WHERE user_id = $1 AND id = ANY($2::uuid[])",
            user_id,
            ids,
        )

    async def append_sub_items(self, user_id: str, item_id: str, sub_items: List[SubItem]) -> Optional[Item]:
        uid = _as_uuid(item_id)
        if uid is None:
            return None
        record = await db.fetchrow(
            """
            UPDATE items
            SET sub_items = COALESCE(sub_items, '[]'::jsonb) || $3::jsonb,
                updated_at = NOW()
            WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
            RETURNING *
            """,
            uid,
            user_id,
            [s.model_dump() for s in sub_items],
        )
        return Item.from_record(record) if record else None
