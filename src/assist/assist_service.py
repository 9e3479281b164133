"""
AI-assist procedure: web search + AI summary -> categorized sub-items.

Sub-item text is prefixed with a category marker that clients rely on:
💡 knowledge point, 📚 reference summary, 🔗 source link.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cogniflow.models import SubItem
from extraction.keywords import extract_search_keywords
from llm.llm_client import LLMClient, LLMError
from llm.prompts import assist_prompt
from llm.schemas import AssistInfo
from search.web_search import SearchResult, WebSearchClient, WebSearchError, extract_search_links

logger = logging.getLogger(__name__)

KNOWLEDGE_MARKER = "💡"
REFERENCE_MARKER = "📚"
LINK_MARKER = "🔗"

SEARCH_RESULT_COUNT = 5
MAX_SOURCE_LINKS = 3
MAX_REFERENCE_PREVIEW = 100
ASSIST_TEMPERATURE = 0.7


@dataclass
class AssistResult:
    knowledge_points: List[str]
    reference_info: str
    source_links: List[Dict[str, str]] = field(default_factory=list)
    sub_items: List[SubItem] = field(default_factory=list)
    search_failed: bool = False
    used_fallback: bool = False

    def snapshot(self) -> dict:
        """What gets stored on a completed task."""
        return {
            "knowledgePoints": self.knowledge_points,
            "referenceInfo": self.reference_info,
            "sourceLinks": self.source_links,
            "subItemsCount": len(self.sub_items),
            "searchFailed": self.search_failed,
            "usedFallback": self.used_fallback,
        }


def _suffix() -> str:
    return uuid.uuid4().hex[:9]


def build_sub_items(
    knowledge_points: List[str],
    reference_info: str,
    source_links: List[Dict[str, str]],
) -> List[SubItem]:
    stamp = int(time.time() * 1000)
    sub_items = [
        SubItem(id=f"knowledge-{stamp}-{i}-{_suffix()}", text=f"{KNOWLEDGE_MARKER} {point}")
        for i, point in enumerate(knowledge_points)
    ]
    if reference_info:
        preview = reference_info[:MAX_REFERENCE_PREVIEW]
        if len(reference_info) > MAX_REFERENCE_PREVIEW:
            preview += "..."
        sub_items.append(
            SubItem(id=f"reference-{stamp}-{_suffix()}", text=f"{REFERENCE_MARKER} 参考信息：{preview}")
        )
    for i, link in enumerate(source_links[:MAX_SOURCE_LINKS]):
        sub_items.append(
            SubItem(
                id=f"link-{stamp}-{i}-{_suffix()}",
                text=f"{LINK_MARKER} {link['title']} ({link['media']}) - {link['url']}",
            )
        )
    return sub_items


def _topic(task_text: str) -> str:
    topic = extract_search_keywords(task_text) or task_text or "当前主题"
    return re.sub(r"\s+", " ", topic).strip() or "当前主题"


def fallback_assist_info(task_text: str, search_results: List[SearchResult]) -> AssistInfo:
    """Framework-style points used when the AI gives nothing usable."""
    topic = _topic(task_text)
    points = [
        f"明确目的：梳理「{topic}」要解决的问题和预期成果",
        f"框架拆解：把「{topic}」拆成背景、核心内容、实施步骤三个部分",
        f"数据与工具：列出「{topic}」需要的资料来源和可用工具",
        f"评估机制：为「{topic}」设定可检验的完成标准",
    ]
    if search_results:
        hints = "\n".join(
            f"{i}. {r.title} - {r.content[:60]}"
            for i, r in enumerate(search_results[:MAX_SOURCE_LINKS], start=1)
        )
        reference = f"根据在线检索，{topic} 可关注以下信息：\n{hints}"
    else:
        reference = (
            f"可按「场景需求 → 能力模块 → 数据/工具 → 评估迭代」四步推进 {topic}，"
            "确保概念、流程和验收标准一致。"
        )
    return AssistInfo(knowledge_points=points, reference_info=reference)


class AssistService:

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        search_client: Optional[WebSearchClient] = None,
    ):
        self.llm = llm if llm is not None else LLMClient()
        self.search_client = search_client if search_client is not None else WebSearchClient()

    def generate_assist_info(self, task_text: str, search_results: List[SearchResult]) -> Optional[AssistInfo]:
        system, user = assist_prompt(task_text, search_results)
        try:
            info = self.llm.complete_model(AssistInfo, user, system=system, temperature=ASSIST_TEMPERATURE)
        except LLMError as e:
            logger.warning(f"AI assist generation failed: {e}")
            return None
        if info is None or not info.knowledge_points:
            return None
        return info

    def perform_assist(self, task_text: str) -> AssistResult:
        keywords = extract_search_keywords(task_text)
        logger.info(f"Running AI assist for {task_text[:30]!r} (keywords: {keywords!r})")

        search_failed = False
        try:
            search_results = self.search_client.search(keywords, count=SEARCH_RESULT_COUNT)
        except WebSearchError as e:
            logger.warning(f"Web search failed, continuing without results: {e}")
            search_results = []
            search_failed = True

        info = self.generate_assist_info(task_text, search_results)
        used_fallback = info is None
        if info is None:
            info = fallback_assist_info(task_text, search_results)

        links = extract_search_links(search_results)
        sub_items = build_sub_items(info.knowledge_points, info.reference_info, links)
        return AssistResult(
            knowledge_points=info.knowledge_points,
            reference_info=info.reference_info,
            source_links=links[:MAX_SOURCE_LINKS],
            sub_items=sub_items,
            search_failed=search_failed,
            used_fallback=used_fallback,
        )
