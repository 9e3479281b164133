import asyncio
import logging
import os
from typing import Dict, Optional

from api.metrics import ASSIST_QUEUE_DEPTH, ASSIST_TASKS_TOTAL
from assist.task_processor import AssistTaskProcessor

logger = logging.getLogger(__name__)

# Config
ASSIST_POLL_INTERVAL_S = float(os.getenv("ASSIST_POLL_INTERVAL_S", "120"))
ASSIST_BATCH_SIZE = int(os.getenv("ASSIST_BATCH_SIZE", "5"))
ASSIST_MANUAL_BATCH_SIZE = int(os.getenv("ASSIST_MANUAL_BATCH_SIZE", "10"))


class AssistScheduler:
    """Periodically drains pending assist tasks in small sequential batches.

    start() and stop() are idempotent: a second start() while the loop is
    alive is a no-op, and stop() on a stopped scheduler does nothing. The
    first batch runs immediately after start().
    """

    def __init__(
        self,
        processor: AssistTaskProcessor,
        interval_s: float = ASSIST_POLL_INTERVAL_S,
        batch_size: int = ASSIST_BATCH_SIZE,
        manual_batch_size: int = ASSIST_MANUAL_BATCH_SIZE,
    ):
        self.processor = processor
        self.interval_s = interval_s
        self.batch_size = batch_size
        self.manual_batch_size = manual_batch_size
        self._task: Optional[asyncio.Task] = None
        # the timer and a manual trigger never process batches concurrently
        self._batch_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        if self.running:
            logger.info("Assist scheduler already running")
            return False
        self._task = asyncio.create_task(self._loop())
        logger.info(
            f"Assist scheduler started (interval {self.interval_s}s, batch {self.batch_size})"
        )
        return True

    async def stop(self) -> bool:
        if not self.running:
            return False
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Assist scheduler stopped")
        return True

    async def run_once(self, batch_size: Optional[int] = None) -> Dict[str, int]:
        async with self._batch_lock:
            summary = await self.processor.process_pending_tasks(batch_size or self.batch_size)

        for status in ("completed", "failed"):
            if summary.get(status):
                ASSIST_TASKS_TOTAL.labels(status=status).inc(summary[status])
        try:
            ASSIST_QUEUE_DEPTH.set(await self.processor.task_store.get_pending_count())
        except Exception as e:
            logger.warning(f"Could not refresh assist queue depth: {e}")

        if summary.get("claimed"):
            logger.info(
                f"Assist batch done: {summary['completed']} completed, {summary['failed']} failed"
            )
        return summary

    async def trigger(self) -> Dict[str, int]:
        """Manual "process now" with the larger batch size."""
        logger.info("Manual assist processing triggered")
        return await self.run_once(self.manual_batch_size)

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once(self.batch_size)
            except Exception as e:
                logger.exception(f"Error in assist scheduler: {e}")
            await asyncio.sleep(self.interval_s)
