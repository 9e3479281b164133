import pytest

from llm.llm_client import LLMClient, LLMError, extract_json, get_provider, strip_code_fences
from llm.providers.mock_provider import MockProvider
from llm.providers.zhipu_provider import ZhipuProvider, collect_stream
from llm.schemas import AIClassification, AssistInfo


def test_complete_passes_prompts_and_temperature(fake_provider_factory):
    provider = fake_provider_factory("hello")
    client = LLMClient(provider=provider)
    assert client.complete("user text", system="sys", temperature=0.7) == "hello"
    assert provider.calls == [{"system": "sys", "user": "user text", "temperature": 0.7}]


def test_complete_wraps_unexpected_provider_errors():
    class Broken:
        def generate(self, *, system, user, temperature=None):
            raise ConnectionError("socket closed")

    with pytest.raises(LLMError, match="socket closed"):
        LLMClient(provider=Broken()).complete("x")


def test_complete_json_strips_fences(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory('```json\n{"type": "event"}\n```'))
    assert client.complete_json("x") == {"type": "event"}


def test_complete_model_returns_none_for_non_object(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory('["not", "an", "object"]'))
    assert client.complete_model(AIClassification, "x") is None


def test_complete_model_accepts_camel_case_aliases(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory(
        '{"knowledgePoints": ["a", "", "b"], "referenceInfo": "ref"}'
    ))
    info = client.complete_model(AssistInfo, "x")
    assert info.knowledge_points == ["a", "b"]
    assert info.reference_info == "ref"


def test_extract_json_handles_chatter_around_object():
    text = 'Sure! Here is the result: {"title": "Call mom"} Thanks.'
    assert extract_json(text) == {"title": "Call mom"}


def test_extract_json_returns_none_for_garbage():
    assert extract_json("INVALID OUTPUT") is None
    assert extract_json("") is None
    assert extract_json(None) is None
    assert extract_json("{broken") is None


def test_strip_code_fences_unterminated():
    assert strip_code_fences('```json\n{"a": 1}') == '{"a": 1}'


def test_classification_schema_normalizes_blanks():
    parsed = AIClassification.model_validate({
        "type": "task", "title": "  ", "tags": "not-a-list", "entities": [], "due_date": "",
    })
    assert parsed.title is None
    assert parsed.due_date is None
    assert parsed.tags == []
    assert parsed.entities == {}


def test_collect_stream_concatenates_deltas():
    lines = [
        'data: {"choices":[{"delta":{"content":"你"}}]}',
        "",
        ": keep-alive",
        "data: not json at all",
        'data: {"choices":[{"delta":{"content":"好"}}]}',
        "data: [DONE]",
    ]
    assert collect_stream(lines) == "你好"


def test_collect_stream_finish_reason_completes():
    lines = ['data: {"choices":[{"delta":{"content":"ok"},"finish_reason":"stop"}]}']
    assert collect_stream(lines) == "ok"


def test_collect_stream_truncated_raises():
    with pytest.raises(LLMError):
        collect_stream(['data: {"choices":[{"delta":{"content":"half"}}]}'])


def test_collect_stream_error_chunk_raises():
    with pytest.raises(LLMError, match="quota"):
        collect_stream(['data: {"error":{"message":"quota exceeded"}}'])


def test_zhipu_without_key_raises_llm_error():
    with pytest.raises(LLMError, match="ZHIPUAI_API_KEY"):
        ZhipuProvider(api_key="").generate(system="s", user="u")


def test_get_provider_by_name():
    assert isinstance(get_provider("mock"), MockProvider)
    assert isinstance(get_provider("zhipu"), ZhipuProvider)
    with pytest.raises(ValueError):
        get_provider("nope")
