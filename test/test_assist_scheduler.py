import asyncio

from prometheus_client import REGISTRY

from api.workers import AssistScheduler
from assist.assist_service import AssistResult
from assist.task_processor import AssistTaskProcessor
from cogniflow.models import ItemDraft, SubItem
from storage.memory import InMemoryAssistTaskStore, InMemoryItemStore


class OnePointAssist:
    def perform_assist(self, task_text):
        return AssistResult(
            knowledge_points=["p"],
            reference_info="",
            sub_items=[SubItem(id=f"k-{task_text}", text="💡 p")],
        )


def _queue_depth():
    return REGISTRY.get_sample_value("cogniflow_assist_queue_depth")


def _completed_total():
    return REGISTRY.get_sample_value("cogniflow_assist_tasks_total", {"status": "completed"}) or 0


async def _processor_with_tasks(n):
    items = InMemoryItemStore()
    tasks = InMemoryAssistTaskStore()
    processor = AssistTaskProcessor(items, tasks, OnePointAssist(), task_delay_s=0)
    for i in range(n):
        item = await items.create_item("u1", ItemDraft(raw_text=f"研究主题{i}", title=f"主题{i}"))
        await processor.create_task(item.id, "u1", f"研究主题{i}")
    return processor


def test_run_once_respects_batch_size_and_updates_queue_depth() -> None:
    async def run():
        processor = await _processor_with_tasks(3)
        scheduler = AssistScheduler(processor, interval_s=3600, batch_size=2, manual_batch_size=10)
        before = _completed_total()

        summary = await scheduler.run_once()
        assert summary == {"claimed": 2, "completed": 2, "failed": 0}
        assert _queue_depth() == 1

        summary = await scheduler.trigger()
        assert summary["completed"] == 1
        assert _queue_depth() == 0
        assert _completed_total() - before == 3

    asyncio.run(run())


def test_start_and_stop_are_idempotent() -> None:
    async def run():
        processor = await _processor_with_tasks(0)
        scheduler = AssistScheduler(processor, interval_s=3600)

        assert scheduler.start() is True
        assert scheduler.start() is False
        assert scheduler.running
        await asyncio.sleep(0)

        assert await scheduler.stop() is True
        assert not scheduler.running
        assert await scheduler.stop() is False

    asyncio.run(run())


def test_loop_survives_processor_errors() -> None:
    class BrokenProcessor:
        calls = 0

        async def process_pending_tasks(self, batch_size):
            BrokenProcessor.calls += 1
            raise RuntimeError("database went away")

    async def run():
        scheduler = AssistScheduler(BrokenProcessor(), interval_s=0.01)
        scheduler.start()
        await asyncio.sleep(0.1)
        assert scheduler.running
        await scheduler.stop()

    asyncio.run(run())
    assert BrokenProcessor.calls >= 2
