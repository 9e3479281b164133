import json
from datetime import datetime

from cogniflow.models import AssistStatusView, AssistTask, Item, ItemDraft, QueryIntent


def test_draft_defaults():
    d = ItemDraft(raw_text="买牛奶")
    assert d.type == "task"
    assert d.priority == "medium"
    assert d.status == "pending"
    assert d.tags == [] and d.sub_items == []


def test_unknown_type_and_priority_fall_back():
    d = ItemDraft(type="Meeting", priority="urgent")
    assert d.type == "task"
    assert d.priority == "medium"
    assert ItemDraft(type=" EVENT ", priority="HIGH").type == "event"


def test_timestamps_keep_wall_clock():
    d = ItemDraft(start_time="2025-06-10T22:00:00Z", due_date="2025-06-11 09:30:00+08:00", end_time="")
    assert d.start_time == datetime(2025, 6, 10, 22, 0)
    assert d.due_date == datetime(2025, 6, 11, 9, 30)
    assert d.end_time is None


def test_tags_are_deduplicated():
    assert ItemDraft(tags=["工作", " 工作", "", "周报"]).tags == ["工作", "周报"]
    assert ItemDraft(tags="工作").tags == []


def test_json_text_columns_are_decoded():
    d = ItemDraft(entities='{"people": ["张三"]}', sub_items=json.dumps([{"id": "s1", "text": "a"}]))
    assert d.entities == {"people": ["张三"]}
    assert d.sub_items[0].status == "pending"
    assert ItemDraft(entities="not json").entities == {}


def test_item_from_record():
    record = {
        "id": 7,
        "user_id": "u1",
        "raw_text": "周会",
        "type": "event",
        "tags": ("工作",),
        "sub_items": "[]",
        "entities": None,
        "master_item_id": None,
        "start_time": datetime(2025, 6, 10, 14, 0),
    }
    item = Item.from_record(record)
    assert item.id == "7"
    assert item.tags == ["工作"]
    assert item.entities == {}
    assert item.has_conflict is False


def test_query_intent_drops_unknown_types():
    assert QueryIntent(types=["Event", "meeting"]).types == ["event"]


def test_assist_task_from_record():
    now = datetime(2025, 6, 10, 8, 0)
    record = {
        "id": "t1", "item_id": "i1", "user_id": "u1", "status": "completed",
        "task_text": "调研", "search_keywords": "调研",
        "assist_result": '{"subItemsCount": 3}', "error_message": None,
        "attempt_count": 1, "max_attempts": 3,
        "created_at": now, "updated_at": now, "processed_at": now, "completed_at": now,
    }
    task = AssistTask.from_record(record)
    assert task.assist_result == {"subItemsCount": 3}


def test_status_view_shape():
    view = AssistStatusView(has_assist=True, status="completed", completed_at=datetime(2025, 6, 10, 8, 0))
    assert view.to_dict() == {"hasAssist": True, "status": "completed", "completedAt": "2025-06-10T08:00:00"}
    assert AssistStatusView(False, None, None).to_dict()["completedAt"] is None
