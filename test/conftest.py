import pytest

from llm.llm_client import LLMError
from search.web_search import SearchResult, WebSearchError


class FakeProvider:
    def __init__(self, response_text: str):
        self._response_text = response_text
        self.calls = []

    def generate(self, *, system: str, user: str, temperature=None) -> str:
        self.calls.append({"system": system, "user": user, "temperature": temperature})
        return self._response_text


class FailingProvider:
    def __init__(self, message: str = "gateway unavailable"):
        self._message = message

    def generate(self, *, system: str, user: str, temperature=None) -> str:
        raise LLMError(self._message)


class FakeSearch:
    def __init__(self, results=None, error: bool = False):
        self._results = results or []
        self._error = error
        self.queries = []

    def search(self, query: str, **kwargs):
        self.queries.append(query)
        if self._error:
            raise WebSearchError("search unavailable")
        return list(self._results)


@pytest.fixture
def fake_provider_factory():
    def _make(response_text: str):
        return FakeProvider(response_text)
    return _make


@pytest.fixture
def failing_provider():
    return FailingProvider()


@pytest.fixture
def fake_search_factory():
    def _make(results=None, error: bool = False):
        return FakeSearch(results, error)
    return _make


@pytest.fixture
def sample_search_results():
    return [
        SearchResult(title="大模型综述", content="大模型的发展历程与关键技术", link="https://example.com/a", media="示例网"),
        SearchResult(title="Transformer 详解", content="注意力机制原理", link="https://example.com/b", media="技术博客"),
        SearchResult(title="RAG 实践", content="检索增强生成落地经验", link="https://example.com/c", media="社区"),
        SearchResult(title="第四条", content="不会出现在链接里", link="https://example.com/d", media="其他"),
    ]
