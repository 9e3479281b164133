"""
PostgreSQL-backed assist task queue.

The partial unique index on ai_assist_tasks(item_id) for pending/processing
rows is the at-most-one-in-flight guard; create_task turns a collision into
a None result instead of an error.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

import asyncpg

from cogniflow.models import AssistStatusView, AssistTask
from storage import db
from storage.base import AssistTaskStore

logger = logging.getLogger(__name__)


def _as_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class PostgresAssistTaskStore(AssistTaskStore):

    async def create_task(
        self,
        item_id: str,
        user_id: str,
        task_text: str,
        search_keywords: Optional[str] = None,
        max_attempts: int = 3,
    ) -> Optional[AssistTask]:
        uid = _as_uuid(item_id)
        if uid is None:
            return None
        query = """
            INSERT INTO ai_assist_tasks (item_id, user_id, task_text, search_keywords, max_attempts)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (item_id) WHERE status IN ('pending', 'processing') DO NOTHING
            RETURNING *
        """
        try:
            record = await db.fetchrow(query, uid, user_id, task_text, search_keywords, max_attempts)
        except asyncpg.UniqueViolationError:
            record = None

        if record is None:
            logger.info(f"Item {item_id} already has an assist task in flight")
            return None

        task = AssistTask.from_record(record)
        logger.info(f"Created assist task {task.id} for item {item_id}")
        return task

    async def get_pending_tasks(self, limit: int = 5) -> List[AssistTask]:
        query = """
            SELECT * FROM ai_assist_tasks
            WHERE status = 'pending' AND attempt_count < max_attempts
            ORDER BY created_at ASC
            LIMIT $1
        """
        records = await db.fetch(query, limit)
        return [AssistTask.from_record(r) for r in records]

    async def mark_processing(self, task_id: str) -> Optional[AssistTask]:
        uid = _as_uuid(task_id)
        if uid is None:
            return None
        query = """
            UPDATE ai_assist_tasks
            SET status = 'processing',
                attempt_count = attempt_count + 1,
                processed_at = NOW(),
                updated_at = NOW()
            WHERE id = $1 AND status = 'pending'
            RETURNING *
        """
        record = await db.fetchrow(query, uid)
        return AssistTask.from_record(record) if record else None

    async def get_task(self, task_id: str) -> Optional[AssistTask]:
        uid = _as_uuid(task_id)
        if uid is None:
            return None
        record = await db.fetchrow("SELECT * FROM ai_assist_tasks WHERE id = $1", uid)
        return AssistTask.from_record(record) if record else None

    async def complete_task(self, task_id: str, result: Dict[str, Any]) -> None:
        query = """
            UPDATE ai_assist_tasks
            SET status = 'completed',
                assist_result = $2::jsonb,
                error_message = NULL,
                completed_at = NOW(),
                updated_at = NOW()
            WHERE id = $1
        """
        await db.execute(query, _as_uuid(task_id), result)

    async def fail_task(self, task_id: str, error: str) -> None:
        query = """
            UPDATE ai_assist_tasks
            SET status = 'failed',
                error_message = $2,
                updated_at = NOW()
            WHERE id = $1
        """
        await db.execute(query, _as_uuid(task_id), error)

    async def get_item_assist_status(self, item_id: str) -> AssistStatusView:
        uid = _as_uuid(item_id)
        record = None
        if uid is not None:
            record = await db.fetchrow(
                """
                SELECT status, completed_at FROM ai_assist_tasks
                WHERE item_id = $1
                ORDER BY created_at DESC
                LIMIT 1
                """,
                uid,
            )
        if record is None:
            return AssistStatusView(has_assist=False, status=None, completed_at=None)
        return AssistStatusView(
            has_assist=True,
            status=record["status"],
            completed_at=record["completed_at"],
        )

    async def cancel_tasks_for_item(self, item_id: str) -> int:
        uid = _as_uuid(item_id)
        if uid is None:
            return 0
        status = await db.execute("DELETE FROM ai_assist_tasks WHERE item_id = $1", uid)
        count = db.affected_rows(status)
        if count:
            logger.info(f"Cancelled {count} assist task(s) for item {item_id}")
        return count

    async def get_stats(self) -> Dict[str, Any]:
        records = await db.fetch(
            "SELECT status, COUNT(*) AS count FROM ai_assist_tasks GROUP BY status"
        )
        by_status = {r["status"]: r["count"] for r in records}
        return {"by_status": by_status, "total": sum(by_status.values())}

    async def get_pending_count(self) -> int:
        return await db.fetchval("SELECT COUNT(*) FROM ai_assist_tasks WHERE status = 'pending'")
