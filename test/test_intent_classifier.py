from datetime import datetime

import pytest

from classification.intent_classifier import IntentClassifier, generate_note_title, match_type_prefix
from classification.url_processor import UrlContent
from cogniflow.models import OutcomeKind
from llm.llm_client import LLMClient
from llm.providers.mock_provider import MockProvider

NOW = datetime(2025, 6, 10, 8, 0)


def _classifier(provider, fetch_url=None) -> IntentClassifier:
    fetch_url = fetch_url or (lambda url: UrlContent(url=url, title="Example", summary="desc", fetched=True))
    return IntentClassifier(LLMClient(provider=provider), fetch_url=fetch_url)


@pytest.mark.parametrize("text", [
    "明天下午三点开会讨论预算",
    "@工作 写季度总结",
    "buy milk tomorrow",
])
def test_ai_failure_falls_back_to_plain_task(failing_provider, text):
    outcome = _classifier(failing_provider).classify(text, NOW)
    assert outcome.kind == OutcomeKind.ITEM
    assert outcome.used_fallback
    draft = outcome.draft
    assert draft.type == "task"
    assert draft.tags == []
    assert draft.due_date is None
    assert draft.priority == "medium"
    assert draft.entities == {}


def test_invalid_json_falls_back(fake_provider_factory):
    outcome = _classifier(fake_provider_factory("抱歉，我无法处理")).classify("整理桌面" * 10, NOW)
    assert outcome.used_fallback
    assert outcome.draft.title == ("整理桌面" * 10)[:30]
    assert outcome.draft.description == "整理桌面" * 10


def test_help_command(failing_provider):
    assert _classifier(failing_provider).classify("  @HELP ", NOW).kind == OutcomeKind.HELP


def test_query_falls_back_to_text_search(failing_provider):
    outcome = _classifier(failing_provider).classify("? 本周的会议", NOW)
    assert outcome.kind == OutcomeKind.QUERY
    assert outcome.query_text == "本周的会议"
    assert outcome.query.search_text == "本周的会议"
    assert outcome.query.types == []


def test_template_commands(failing_provider):
    classifier = _classifier(failing_provider)
    all_templates = classifier.classify("/", NOW)
    assert all_templates.kind == OutcomeKind.TEMPLATE
    assert [t.trigger_word for t in all_templates.templates] == ["日报", "会议", "月报"]

    daily = classifier.classify("/日", NOW)
    assert [t.trigger_word for t in daily.templates] == ["日报"]


def test_unknown_command_is_not_a_template(failing_provider):
    outcome = _classifier(failing_provider).classify("/不存在的模板", NOW)
    assert outcome.kind == OutcomeKind.ITEM


def test_note_prefix_generates_title_and_default_tag(fake_provider_factory):
    outcome = _classifier(fake_provider_factory("“向量检索心得”")).classify(
        "笔记：今天学到了向量检索的几个技巧 /学习", NOW
    )
    draft = outcome.draft
    assert draft.type == "note"
    assert draft.title == "向量检索心得"
    assert draft.description == "今天学到了向量检索的几个技巧"
    assert draft.tags == ["笔记", "学习"]


def test_note_title_fallback_truncates(failing_provider):
    llm = LLMClient(provider=failing_provider)
    assert generate_note_title(llm, "短内容") == "短内容"
    assert generate_note_title(llm, "这是一段超过十五个字的很长很长的笔记内容") == "这是一段超过十五个字的很长很长..."


def test_data_prefix_uses_data_tag(fake_provider_factory):
    outcome = _classifier(fake_provider_factory("API 文档")).classify("@资料 OpenAPI 规范链接整理", NOW)
    assert outcome.draft.type == "data"
    assert outcome.draft.tags == ["资料"]


def test_event_prefix_forces_type_and_resolves_time(fake_provider_factory):
    provider = fake_provider_factory('{"type": "task", "title": "评审", "priority": "urgent"}')
    outcome = _classifier(provider).classify("日程: 明天下午3点评审", NOW)
    draft = outcome.draft
    assert not outcome.used_fallback
    assert draft.type == "event"
    assert draft.priority == "medium"
    assert draft.start_time == datetime(2025, 6, 11, 15, 0)
    assert draft.end_time == datetime(2025, 6, 11, 16, 0)
    assert draft.due_date == draft.start_time


def test_ai_timestamps_are_kept_as_local_clock_time(fake_provider_factory):
    provider = fake_provider_factory(
        '```json\n{"type": "task", "title": "交报告", "due_date": "2025-06-12T18:00:00Z", "tags": ["工作"]}\n```'
    )
    outcome = _classifier(provider).classify("@紧急 周四交报告", NOW)
    draft = outcome.draft
    assert draft.due_date == datetime(2025, 6, 12, 18, 0)
    assert draft.start_time == datetime(2025, 6, 12, 18, 0)
    assert draft.tags == ["工作", "紧急"]
    assert draft.raw_text == "@紧急 周四交报告"


def test_unknown_ai_type_becomes_task(fake_provider_factory):
    outcome = _classifier(fake_provider_factory('{"type": "meeting", "title": "x"}')).classify("随便写点什么", NOW)
    assert outcome.draft.type == "task"


def test_url_input_builds_url_item(fake_provider_factory):
    outcome = _classifier(fake_provider_factory("一个示例网站")).classify(
        "https://example.com/article /稍后读", NOW
    )
    assert outcome.kind == OutcomeKind.URL
    draft = outcome.draft
    assert draft.type == "url"
    assert draft.url == "https://example.com/article"
    assert draft.url_summary == "一个示例网站"
    assert draft.tags == ["链接", "网页", "稍后读"]


def test_url_fetcher_errors_do_not_escape(fake_provider_factory):
    def broken(url):
        raise RuntimeError("boom")

    outcome = _classifier(fake_provider_factory("摘要"), fetch_url=broken).classify("https://example.com/x", NOW)
    assert outcome.kind == OutcomeKind.URL
    assert outcome.draft.title == "网页链接"


def test_mock_provider_round_trip():
    outcome = _classifier(MockProvider()).classify("明天上午开会讨论预算", NOW)
    assert outcome.draft.type == "event"
    assert "工作" in outcome.draft.tags


def test_type_prefix_table():
    assert match_type_prefix("todo: buy milk") == ("task", "buy milk")
    assert match_type_prefix("/collection 读书清单") == ("collection", "读书清单")
    assert match_type_prefix("笔记：") is None
    assert match_type_prefix("笔记本电脑坏了") is None
