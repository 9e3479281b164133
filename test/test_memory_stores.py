import asyncio

from cogniflow.models import ItemDraft, QueryIntent, SubItem
from storage.memory import InMemoryAssistTaskStore, InMemoryItemStore

USER = "u1"


def test_only_one_in_flight_task_per_item() -> None:
    async def run():
        tasks = InMemoryAssistTaskStore()
        first, second = await asyncio.gather(
            tasks.create_task("item-1", USER, "调研向量数据库"),
            tasks.create_task("item-1", USER, "调研向量数据库"),
        )
        assert (first is None) != (second is None)
        stats = await tasks.get_stats()
        assert stats["total"] == 1

    asyncio.run(run())


def test_new_task_allowed_after_terminal_state() -> None:
    async def run():
        tasks = InMemoryAssistTaskStore()
        task = await tasks.create_task("item-1", USER, "写总结")
        await tasks.mark_processing(task.id)
        assert await tasks.create_task("item-1", USER, "写总结") is None
        await tasks.fail_task(task.id, "boom")
        assert await tasks.create_task("item-1", USER, "写总结") is not None

    asyncio.run(run())


def test_claim_only_from_pending_and_counts_attempts() -> None:
    async def run():
        tasks = InMemoryAssistTaskStore()
        task = await tasks.create_task("item-1", USER, "写总结")
        claimed = await tasks.mark_processing(task.id)
        assert claimed.status == "processing"
        assert claimed.attempt_count == 1
        assert claimed.processed_at is not None
        assert await tasks.mark_processing(task.id) is None
        assert await tasks.mark_processing("missing") is None

    asyncio.run(run())


def test_pending_tasks_oldest_first_and_eligible_only() -> None:
    async def run():
        tasks = InMemoryAssistTaskStore()
        a = await tasks.create_task("item-a", USER, "a")
        b = await tasks.create_task("item-b", USER, "b")
        c = await tasks.create_task("item-c", USER, "c", max_attempts=0)
        pending = await tasks.get_pending_tasks(limit=5)
        assert [t.id for t in pending] == [a.id, b.id]
        assert c.id not in [t.id for t in pending]
        assert [t.id for t in await tasks.get_pending_tasks(limit=1)] == [a.id]

    asyncio.run(run())


def test_assist_status_view() -> None:
    async def run():
        tasks = InMemoryAssistTaskStore()
        assert (await tasks.get_item_assist_status("item-1")).to_dict() == {
            "hasAssist": False,
            "status": None,
            "completedAt": None,
        }
        task = await tasks.create_task("item-1", USER, "写总结")
        await tasks.mark_processing(task.id)
        await tasks.complete_task(task.id, {"subItemsCount": 3})
        view = (await tasks.get_item_assist_status("item-1")).to_dict()
        assert view["hasAssist"] is True
        assert view["status"] == "completed"
        assert view["completedAt"] is not None

    asyncio.run(run())


def test_cancel_removes_every_task_for_item() -> None:
    async def run():
        tasks = InMemoryAssistTaskStore()
        done = await tasks.create_task("item-1", USER, "a")
        await tasks.fail_task(done.id, "x")
        await tasks.create_task("item-1", USER, "a")
        await tasks.create_task("item-2", USER, "b")
        assert await tasks.cancel_tasks_for_item("item-1") == 2
        stats = await tasks.get_stats()
        assert stats == {"by_status": {"pending": 1}, "total": 1}
        assert await tasks.get_pending_count() == 1

    asyncio.run(run())


def test_item_crud_is_scoped_to_user_and_soft_deletes() -> None:
    async def run():
        items = InMemoryItemStore()
        item = await items.create_item(USER, ItemDraft(raw_text="买牛奶", title="买牛奶"))
        assert await items.get_item("someone-else", item.id) is None

        updated = await items.update_item(USER, item.id, {"priority": "high", "user_id": "hijack"})
        assert updated.priority == "high"
        assert updated.user_id == USER

        await items.soft_delete(USER, item.id)
        assert await items.get_item(USER, item.id) is None
        assert await items.list_items(USER) == []

    asyncio.run(run())


def test_archive_moves_item_between_lists() -> None:
    async def run():
        items = InMemoryItemStore()
        item = await items.create_item(USER, ItemDraft(title="x"))
        await items.archive(USER, item.id)
        assert await items.list_items(USER) == []
        assert [i.id for i in await items.list_items(USER, archived=True)] == [item.id]
        await items.unarchive(USER, item.id)
        assert [i.id for i in await items.list_items(USER)] == [item.id]

    asyncio.run(run())


def test_query_and_search() -> None:
    async def run():
        items = InMemoryItemStore()
        report = await items.create_item(USER, ItemDraft(type="task", title="写周报", tags=["工作"]))
        await items.create_item(USER, ItemDraft(type="note", title="读书笔记", tags=["阅读"]))

        found = await items.query_items(USER, QueryIntent(types=["task"], tags=["工作"]))
        assert [i.id for i in found] == [report.id]
        assert await items.query_items(USER, QueryIntent(search_text="不存在")) == []

        by_term = await items.search_items(USER, ["周报", "没有"])
        assert [i.id for i in by_term] == [report.id]
        assert await items.search_items(USER, []) == []

    asyncio.run(run())


def test_append_sub_items_keeps_existing_order() -> None:
    async def run():
        items = InMemoryItemStore()
        existing = [SubItem(id="s1", text="one"), SubItem(id="s2", text="two")]
        item = await items.create_item(USER, ItemDraft(title="x", sub_items=existing))
        new = [SubItem(id=f"n{i}", text=f"new {i}") for i in range(3)]
        updated = await items.append_sub_items(USER, item.id, new)
        assert [s.id for s in updated.sub_items] == ["s1", "s2", "n0", "n1", "n2"]
        assert await items.append_sub_items(USER, "missing", new) is None

    asyncio.run(run())
