"""
Claim-and-process for AI-assist tasks.

A task moves pending -> processing -> completed | failed. Every failure,
including unexpected exceptions, ends as a `failed` task; nothing raised
here reaches the scheduler loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Dict, Optional

from assist.assist_service import AssistService
from cogniflow.models import AssistTask
from extraction.keywords import extract_search_keywords
from storage.base import AssistTaskStore, ItemStore

logger = logging.getLogger(__name__)

ASSIST_TASK_DELAY_S = float(os.getenv("ASSIST_TASK_DELAY_S", "1.0"))
ASSIST_MAX_ATTEMPTS = int(os.getenv("ASSIST_MAX_ATTEMPTS", "3"))

EMPTY_RESULT_ERROR = "AI 辅助未返回有效结果"
ITEM_MISSING_ERROR = "卡片不存在"
UPDATE_FAILED_ERROR = "更新卡片失败"


class AssistTaskProcessor:

    def __init__(
        self,
        item_store: ItemStore,
        task_store: AssistTaskStore,
        assist_service: AssistService,
        task_delay_s: float = ASSIST_TASK_DELAY_S,
    ):
        self.item_store = item_store
        self.task_store = task_store
        self.assist_service = assist_service
        self.task_delay_s = task_delay_s

    async def create_task(self, item_id: str, user_id: str, task_text: str) -> Optional[AssistTask]:
        """Queue assist work for an item; None when one is already in flight."""
        task = await self.task_store.create_task(
            item_id,
            user_id,
            task_text,
            search_keywords=extract_search_keywords(task_text),
            max_attempts=ASSIST_MAX_ATTEMPTS,
        )
        if task is not None:
            logger.info(f"Created assist task {task.id} for item {item_id}")
        return task

    async def process_task(self, task_id: str) -> Optional[str]:
        """Run one task to a terminal state and return it.

        Returns None when the task could not be claimed (missing, or no
        longer pending).
        """
        task = await self.task_store.mark_processing(task_id)
        if task is None:
            logger.warning(f"Assist task {task_id} could not be claimed")
            return None

        logger.info(f"Processing assist task {task.id} (attempt {task.attempt_count}/{task.max_attempts})")
        try:
            result = await asyncio.to_thread(self.assist_service.perform_assist, task.task_text)

            if not result.sub_items:
                await self.task_store.fail_task(task.id, EMPTY_RESULT_ERROR)
                logger.warning(f"Assist task {task.id} produced no sub-items")
                return "failed"

            item = await self.item_store.get_item(task.user_id, task.item_id)
            if item is None:
                await self.task_store.fail_task(task.id, ITEM_MISSING_ERROR)
                logger.warning(f"Item {task.item_id} for assist task {task.id} no longer exists")
                return "failed"

            updated = await self.item_store.append_sub_items(task.user_id, task.item_id, result.sub_items)
            if updated is None:
                await self.task_store.fail_task(task.id, UPDATE_FAILED_ERROR)
                logger.error(f"Could not append sub-items to item {task.item_id}")
                return "failed"

            await self.task_store.complete_task(task.id, result.snapshot())
            logger.info(f"Assist task {task.id} completed with {len(result.sub_items)} sub-item(s)")
            return "completed"

        except Exception as e:
            logger.exception(f"Assist task {task.id} failed: {e}")
            await self.task_store.fail_task(task.id, str(e) or type(e).__name__)
            return "failed"

    async def process_pending_tasks(self, batch_size: int = 5) -> Dict[str, int]:
        """Process up to batch_size pending tasks, oldest first, one at a time."""
        tasks = await self.task_store.get_pending_tasks(batch_size)
        summary = {"claimed": 0, "completed": 0, "failed": 0}
        if not tasks:
            return summary

        logger.info(f"Processing {len(tasks)} pending assist task(s)")
        for i, task in enumerate(tasks):
            if i > 0 and self.task_delay_s > 0:
                await asyncio.sleep(self.task_delay_s)
            status = await self.process_task(task.id)
            if status is None:
                continue
            summary["claimed"] += 1
            summary[status] += 1
        return summary
