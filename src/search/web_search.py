"""
Web search gateway client (Zhipu web_search API).

Failures are raised as WebSearchError; callers treat that as "no results".
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

ZHIPUAI_SEARCH_URL = os.getenv(
    "ZHIPUAI_SEARCH_URL", "https://open.bigmodel.cn/api/paas/v4/web_search"
).strip()
ZHIPUAI_SEARCH_ENGINE = os.getenv("ZHIPUAI_SEARCH_ENGINE", "search_std").strip()
SEARCH_USER_ID = "cogniflow-server"
MAX_QUERY_LENGTH = 70


class WebSearchError(RuntimeError):
    pass


@dataclass
class SearchResult:
    title: str
    content: str
    link: str
    media: str
    icon: Optional[str] = None
    refer: Optional[str] = None
    publish_date: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchResult":
        return cls(
            title=str(data.get("title") or ""),
            content=str(data.get("content") or ""),
            link=str(data.get("link") or ""),
            media=str(data.get("media") or ""),
            icon=data.get("icon"),
            refer=data.get("refer"),
            publish_date=data.get("publish_date"),
        )


def format_search_results(results: List[SearchResult]) -> str:
    if not results:
        return "未找到相关信息。"
    lines = [f"找到 {len(results)} 条相关信息：", ""]
    for i, r in enumerate(results, start=1):
        lines.append(f"{i}. **{r.title}**")
        lines.append(f"   {r.content}")
        lines.append(f"   来源: {r.media} | [链接]({r.link})")
        lines.append("")
    return "\n".join(lines)


def extract_search_links(results: List[SearchResult]) -> List[Dict[str, str]]:
    return [{"title": r.title, "url": r.link, "media": r.media} for r in results]


def _request_id() -> str:
    return f"search-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class WebSearchClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        search_url: Optional[str] = None,
        search_engine: Optional[str] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.api_key = (api_key if api_key is not None else os.getenv("ZHIPUAI_API_KEY", "")).strip()
        self.search_url = search_url or ZHIPUAI_SEARCH_URL
        self.search_engine = search_engine or ZHIPUAI_SEARCH_ENGINE
        self.timeout = timeout
        self._http_client = http_client

    def _post(self, payload: dict) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self._http_client is not None:
            return self._http_client.post(self.search_url, headers=headers, json=payload)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(self.search_url, headers=headers, json=payload)

    def search(
        self,
        query: str,
        *,
        count: int = 10,
        content_size: str = "medium",
        recency: str = "noLimit",
    ) -> List[SearchResult]:
        if not self.api_key:
            raise WebSearchError("ZHIPUAI_API_KEY is missing")

        payload = {
            "search_query": query[:MAX_QUERY_LENGTH],
            "search_engine": self.search_engine,
            "search_intent": False,
            "count": count,
            "content_size": content_size,
            "search_recency_filter": recency,
            "request_id": _request_id(),
            "user_id": SEARCH_USER_ID,
        }

        try:
            r = self._post(payload)
        except httpx.HTTPError as e:
            raise WebSearchError(f"Search request failed: {e}") from e

        if r.status_code >= 400:
            message = None
            try:
                error = r.json().get("error")
                if isinstance(error, dict):
                    message = error.get("message")
            except (ValueError, AttributeError):
                pass
            raise WebSearchError(message or f"Search failed: {r.status_code} {r.reason_phrase}")

        try:
            body = r.json()
        except ValueError as e:
            raise WebSearchError(f"Search returned invalid JSON: {e}") from e
        if not isinstance(body, dict):
            raise WebSearchError("Search returned an unexpected payload")

        results = [
            SearchResult.from_dict(entry)
            for entry in (body.get("search_result") or [])
            if isinstance(entry, dict)
        ]
        logger.info(f"Web search for {query[:30]!r} returned {len(results)} result(s)")
        return results
