import importlib
import json

import pytest
from fastapi.testclient import TestClient

from api import state
from classification.url_processor import UrlContent
from llm.llm_client import LLMClient
from storage import db
from storage.memory import InMemoryAssistTaskStore, InMemoryItemStore

EVENT_JSON = json.dumps({
    "type": "event",
    "title": "周会",
    "start_time": "2099-06-10T14:00:00",
    "end_time": "2099-06-10T15:00:00",
    "priority": "high",
    "tags": ["工作"],
})


def _import_app():
    return importlib.import_module("api.main")


@pytest.fixture
def make_client(monkeypatch, fake_search_factory, failing_provider):
    monkeypatch.setattr(db, "DATABASE_URL", "")
    mod = _import_app()

    def _make(provider=None):
        mod.build_services(
            InMemoryItemStore(),
            InMemoryAssistTaskStore(),
            llm=LLMClient(provider=provider or failing_provider),
            search_client=fake_search_factory(error=True),
            fetch_url=lambda url: UrlContent(url=url, title="示例页面", summary="页面摘要", fetched=True),
            task_delay_s=0,
        )
        return TestClient(mod.app)

    return _make


def _intake(client, text, user=None):
    headers = {"X-User-Id": user} if user else {}
    r = client.post("/intake", json={"text": text}, headers=headers)
    assert r.status_code == 200, r.text
    return r.json()


def test_health_reports_in_memory_storage(make_client) -> None:
    client = make_client()
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["storage"] == "in-memory"
    assert body["assist_queue_size"] == 0
    assert body["scheduler_running"] is False


def test_empty_intake_is_rejected(make_client) -> None:
    client = make_client()
    assert client.post("/intake", json={"text": "   "}).status_code == 400


def test_help_command_lists_shortcuts(make_client) -> None:
    body = _intake(make_client(), "@help")
    assert body["kind"] == "help"
    assert any(s["key"] == "@help" for s in body["shortcuts"])


def test_unclassifiable_input_becomes_fallback_task(make_client) -> None:
    body = _intake(make_client(), "买牛奶")
    assert body["kind"] == "item"
    assert body["used_fallback"] is True
    assert body["assist_task_id"] is None
    item = body["item"]
    assert item["type"] == "task"
    assert item["title"] == "买牛奶"
    assert item["tags"] == []


def test_event_intake_and_overlapping_event_are_flagged(fake_provider_factory, make_client) -> None:
    client = make_client(fake_provider_factory(EVENT_JSON))
    first = _intake(client, "下周二下午两点开周会")["item"]
    assert first["type"] == "event"
    assert first["start_time"] == "2099-06-10T14:00:00"
    assert first["has_conflict"] is False

    r = client.post("/items", json={
        "raw_text": "评审",
        "type": "event",
        "title": "评审",
        "start_time": "2099-06-10T14:30:00",
        "end_time": "2099-06-10T15:30:00",
    })
    assert r.status_code == 200
    assert r.json()["item"]["has_conflict"] is True
    assert client.get(f"/items/{first['id']}").json()["item"]["has_conflict"] is True

    # moving the second event away clears both flags
    second_id = r.json()["item"]["id"]
    r = client.put(f"/items/{second_id}", json={
        "start_time": "2099-06-10T15:00:00",
        "end_time": "2099-06-10T16:00:00",
    })
    assert r.json()["item"]["has_conflict"] is False
    assert client.get(f"/items/{first['id']}").json()["item"]["has_conflict"] is False


def test_url_intake_creates_link_item(make_client) -> None:
    body = _intake(make_client(), "https://example.com/post")
    assert body["kind"] == "url"
    assert body["item"]["type"] == "url"
    assert body["item"]["url"] == "https://example.com/post"
    assert body["item"]["title"] == "示例页面"


def test_assist_task_is_queued_and_processed(make_client) -> None:
    client = make_client()
    body = _intake(client, "写一篇关于RAG的报告")
    item_id = body["item"]["id"]
    assert body["assist_task_id"]

    status = client.get(f"/ai-assist/status/{item_id}").json()
    assert status == {"hasAssist": True, "status": "pending", "completedAt": None}

    r = client.post("/ai-assist/process")
    assert r.status_code == 200
    assert r.json()["completed"] == 1

    status = client.get(f"/ai-assist/status/{item_id}").json()
    assert status["status"] == "completed"
    assert status["completedAt"] is not None

    sub_items = client.get(f"/items/{item_id}").json()["item"]["sub_items"]
    assert len(sub_items) == 5
    assert all(s["text"].startswith("💡") for s in sub_items[:4])
    assert sub_items[4]["text"].startswith("📚")

    stats = client.get("/ai-assist/stats").json()
    assert stats["total"] == 1
    assert stats["by_status"] == {"completed": 1}


def test_manual_assist_request_and_duplicate(make_client) -> None:
    client = make_client()
    item_id = _intake(client, "买牛奶")["item"]["id"]

    first = client.post(f"/ai-assist/items/{item_id}").json()
    second = client.post(f"/ai-assist/items/{item_id}").json()
    assert first["created"] is True
    assert second == {"created": False, "task_id": None}
    assert client.post("/ai-assist/items/missing").status_code == 404


def test_completing_item_cancels_its_assist_task(make_client) -> None:
    client = make_client()
    item_id = _intake(client, "调研向量数据库")["item"]["id"]

    r = client.put(f"/items/{item_id}", json={"status": "completed"})
    assert r.status_code == 200
    assert r.json()["item"]["status"] == "completed"
    assert client.get(f"/ai-assist/status/{item_id}").json()["hasAssist"] is False


def test_query_intake_and_structured_query(make_client) -> None:
    client = make_client()
    _intake(client, "买牛奶")
    _intake(client, "交房租")

    body = _intake(client, "?牛奶")
    assert body["kind"] == "query"
    assert [i["title"] for i in body["items"]] == ["买牛奶"]
    assert body["summary"].startswith("找到 1 条记录")

    r = client.post("/items/query", json={"types": ["task"]})
    assert len(r.json()["items"]) == 2

    r = client.post("/items/query", json={"text": "房租"})
    assert [i["title"] for i in r.json()["items"]] == ["交房租"]

    r = client.get("/items/search", params={"q": "牛奶"})
    assert r.json()["total"] == 1


def test_items_are_scoped_to_user(make_client) -> None:
    client = make_client()
    item_id = _intake(client, "买牛奶", user="alice")["item"]["id"]

    assert client.get("/items", headers={"X-User-Id": "alice"}).json()["total"] == 1
    assert client.get("/items", headers={"X-User-Id": "bob"}).json()["total"] == 0
    assert client.get(f"/items/{item_id}", headers={"X-User-Id": "bob"}).status_code == 404


def test_item_lifecycle(make_client) -> None:
    client = make_client()
    item_id = client.post("/items", json={"raw_text": "整理书架", "title": "整理书架"}).json()["item"]["id"]

    assert client.put(f"/items/{item_id}", json={}).status_code == 400

    assert client.post(f"/items/{item_id}/archive").status_code == 200
    assert client.get("/items").json()["total"] == 0
    assert client.get("/items", params={"archived": True}).json()["total"] == 1

    assert client.post(f"/items/{item_id}/unarchive").json()["item"]["archived_at"] is None
    assert client.get("/items").json()["total"] == 1

    assert client.delete(f"/items/{item_id}").json() == {"status": "deleted", "id": item_id}
    assert client.get(f"/items/{item_id}").status_code == 404
    assert client.delete(f"/items/{item_id}").status_code == 404


def test_template_flow(make_client) -> None:
    client = make_client()
    assert any(t["trigger_word"] == "日报" for t in client.get("/templates").json()["templates"])

    body = _intake(client, "/日报")
    assert body["kind"] == "template"
    assert body["templates"][0]["trigger_word"] == "日报"

    r = client.post("/intake/template", json={"trigger_word": "日报", "title": "6月10日日报"})
    assert r.status_code == 200
    item = r.json()["item"]
    assert item["type"] == "collection"
    assert item["collection_type"] == "日报"
    assert item["tags"][:2] == ["工作", "日报"]

    r = client.post("/intake/template", json={"trigger_word": "周报", "title": "x"})
    assert r.status_code == 404


def test_smart_assist_endpoints(make_client) -> None:
    client = make_client()
    client.post("/items", json={"raw_text": "RAG 入门", "title": "RAG 入门"})

    related = client.post("/smart-assist/related", json={"topic": "RAG"}).json()
    assert [i["title"] for i in related["items"]] == ["RAG 入门"]

    gap = client.post("/smart-assist/gap-analysis", json={"topic": "RAG"}).json()["analysis"]
    assert gap["completeness"]["score"] == 20
    assert gap["outline"][0].startswith("(1)")

    recs = client.post("/smart-assist/recommendations", json={"topic": "RAG 检索"}).json()
    assert len(recs["recommendations"]) == 3

    trigger = client.post("/smart-assist/should-trigger", json={"content": "x", "manual": True}).json()
    assert trigger == {"trigger": True}

    assert client.post("/smart-assist/related", json={"topic": " "}).status_code == 400


def test_metrics_endpoint_exposes_prometheus_text(make_client) -> None:
    client = make_client()
    _intake(client, "买牛奶")

    r = client.get("/metrics")
    assert r.status_code == 200
    assert "text/plain" in r.headers.get("content-type", "")
    body = r.text
    assert 'cogniflow_requests_total{endpoint="/intake",status="200"}' in body
    assert 'cogniflow_items_classified_total{type="task"}' in body
    assert "cogniflow_classification_fallback_total" in body
    assert "cogniflow_assist_queue_depth" in body


def test_uninitialized_services_return_503(make_client, monkeypatch) -> None:
    client = make_client()
    monkeypatch.setattr(state, "intake_service", None)
    assert client.post("/intake", json={"text": "买牛奶"}).status_code == 503
