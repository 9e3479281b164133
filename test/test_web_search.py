import json

import httpx
import pytest

from search.web_search import (
    SearchResult,
    WebSearchClient,
    WebSearchError,
    extract_search_links,
    format_search_results,
)


def _client(handler) -> WebSearchClient:
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return WebSearchClient(api_key="test-key", http_client=http_client)


def test_search_sends_contract_payload_and_parses_results():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"search_result": [
            {"title": "T1", "content": "C1", "link": "https://a", "media": "M1", "icon": "i"},
            "garbage",
        ]})

    results = _client(handler).search("x" * 100, count=5)

    assert seen["auth"] == "Bearer test-key"
    body = seen["body"]
    assert len(body["search_query"]) == 70
    assert body["search_intent"] is False
    assert body["count"] == 5
    assert body["content_size"] == "medium"
    assert body["search_recency_filter"] == "noLimit"
    assert body["request_id"].startswith("search-")
    assert body["user_id"]
    assert results == [SearchResult(title="T1", content="C1", link="https://a", media="M1", icon="i")]


def test_non_2xx_raises_with_vendor_message():
    def handler(request):
        return httpx.Response(429, json={"error": {"code": "1302", "message": "rate limited"}})

    with pytest.raises(WebSearchError, match="rate limited"):
        _client(handler).search("q")


def test_non_2xx_without_body_still_raises():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(WebSearchError, match="502"):
        _client(handler).search("q")


def test_transport_failure_is_normalized():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(WebSearchError):
        _client(handler).search("q")


def test_missing_key_raises_before_any_request():
    def handler(request):
        raise AssertionError("should not be called")

    client = WebSearchClient(api_key="", http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(WebSearchError, match="ZHIPUAI_API_KEY"):
        client.search("q")


def test_empty_results_and_formatting(sample_search_results):
    assert format_search_results([]) == "未找到相关信息。"
    text = format_search_results(sample_search_results[:1])
    assert "找到 1 条相关信息" in text
    assert "**大模型综述**" in text
    assert extract_search_links(sample_search_results[:1]) == [
        {"title": "大模型综述", "url": "https://example.com/a", "media": "示例网"}
    ]
