"""
Smart-assist relevance engine.

Ranks a user's existing items against a topic by weighted substring hits,
and derives a heuristic knowledge-gap report plus a research outline.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
from urllib.parse import quote

from pydantic import BaseModel, Field

from cogniflow.models import Item
from extraction.keywords import extract_topic_keywords
from llm.llm_client import LLMClient, LLMError
from llm.prompts import outline_prompt
from storage.base import ItemStore

logger = logging.getLogger(__name__)

RESEARCH_KEYWORDS = [
    "调研", "研究", "分析", "了解", "学习", "梳理",
    "research", "study", "analyze", "investigate",
]
RESEARCH_TAGS = ["#调研", "#学习", "#分析"]

TITLE_WEIGHT = 30
DESCRIPTION_WEIGHT = 20
RAW_TEXT_WEIGHT = 15
TAG_WEIGHT = 10
RESEARCH_TAG_BONUS = 15

MAX_RELATED = 5
MAX_SUMMARY = 100
MAX_OUTLINE_LINES = 20
MAX_RECOMMENDATIONS = 3
SMART_ASSIST_MIN_CONTENT = 50
STALE_AFTER = timedelta(days=30)

_OUTLINE_LINE = re.compile(r"^[\d(（a-z\u4e00-\u9fa5]")
_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_OUTLINE_PREAMBLE = re.compile(r"^[^1-9]*")


class RelatedItem(BaseModel):
    id: str
    title: str
    created_at: Optional[datetime] = None
    summary: str
    relevance: int
    relevance_label: str


class Gap(BaseModel):
    type: str
    description: str
    priority: str


class Suggestion(BaseModel):
    action: str
    details: str


class Completeness(BaseModel):
    score: int
    gaps: List[Gap] = Field(default_factory=list)


class Timeliness(BaseModel):
    latest_date: Optional[datetime] = None
    needs_update: bool = False
    reason: str


class GapAnalysis(BaseModel):
    completeness: Completeness
    timeliness: Timeliness
    suggestions: List[Suggestion] = Field(default_factory=list)
    outline: List[str] = Field(default_factory=list)
    related_items: List[RelatedItem] = Field(default_factory=list)


class ExternalRecommendation(BaseModel):
    title: str
    url: str
    reason: str
    type: str


def _has(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def calculate_relevance(item: Item, keywords: Sequence[str]) -> int:
    """Weighted keyword hits across title, description, raw text and tags, capped at 100."""
    score = 0
    for keyword in keywords:
        kw = keyword.lower()
        if _has(item.title, kw):
            score += TITLE_WEIGHT
        if _has(item.description, kw):
            score += DESCRIPTION_WEIGHT
        if _has(item.raw_text, kw):
            score += RAW_TEXT_WEIGHT
        if any(kw in tag.lower() for tag in item.tags):
            score += TAG_WEIGHT
    if any(tag in RESEARCH_TAGS for tag in item.tags):
        score += RESEARCH_TAG_BONUS
    return max(0, min(100, score))


def _summary(item: Item) -> str:
    if not item.description:
        return "无描述"
    if len(item.description) > MAX_SUMMARY:
        return item.description[:MAX_SUMMARY] + "..."
    return item.description


def default_outline(topic: str) -> List[str]:
    return [
        f"(1) 搜索 {topic} 的基本定义、关键组件以及其工作原理",
        f"(2) 识别并列出当前市场上主流的 {topic} 相关框架/产品/方案",
        "(3) 调研这些主流框架/产品的背景：",
        "    (a) 它们的主要创建者和维护者（例如，是公司支持还是社区驱动）",
        "    (b) 它们的核心设计理念和目标（例如，是注重易用性、灵活性还是多智能体协作）",
        "(4) 比较分析这些框架/产品的主要功能和架构差异：",
        "    (a) 它们如何实现状态管理和记忆（短期和长期）",
        "    (b) 它们支持的工具集成（Tool Using）和函数调用（Function Calling）的机制",
        "    (c) 它们对多智能体（Multi-Agent）协作模式的支持程度",
        "(5) 搜索关于这些框架/产品的横向对比评测文章、技术博客和开发者社区（如 GitHub, Reddit）的讨论，重点关注它们的：",
        "    (a) 性能和效率",
        "    (b) 学习曲线和文档质量",
        "    (c) 社区活跃度和生态系统成熟度",
        "(6) 查找基于这些框架/产品构建的实际应用案例（Use Cases）和示例项目，以了解它们各自最适合的场景",
    ]


def parse_outline(text: str) -> List[str]:
    cleaned = _CODE_BLOCK.sub("", text.strip())
    cleaned = _OUTLINE_PREAMBLE.sub("", cleaned)
    lines = [line.strip() for line in cleaned.split("\n")]
    return [line for line in lines if line and _OUTLINE_LINE.match(line)][:MAX_OUTLINE_LINES]


def get_external_recommendations(topic: str) -> List[ExternalRecommendation]:
    keywords = extract_topic_keywords(topic)
    if not keywords:
        return []
    main = keywords[0] or topic[:10]
    encoded = quote(main, safe="")
    recommendations = [
        ExternalRecommendation(
            title=f"GitHub - {main} 相关项目",
            url=f"https://github.com/search?q={encoded}",
            reason="查找相关的开源项目和代码示例",
            type="GitHub",
        ),
        ExternalRecommendation(
            title=f"Google Scholar - {main} 学术论文",
            url=f"https://scholar.google.com/scholar?q={encoded}",
            reason="查找相关的学术研究和论文",
            type="学术",
        ),
        ExternalRecommendation(
            title=f"Wikipedia - {main}",
            url=f"https://en.wikipedia.org/wiki/{encoded}",
            reason="了解基础概念和背景知识",
            type="百科",
        ),
    ]
    return recommendations[:MAX_RECOMMENDATIONS]


def should_trigger_smart_assist(
    title: str,
    tags: Sequence[str],
    item_type: str,
    content: str,
    manual: bool = False,
) -> bool:
    if manual:
        return bool(content.strip())
    if len(content) < SMART_ASSIST_MIN_CONTENT:
        return False
    keyword_hit = any(k in title or k in content for k in RESEARCH_KEYWORDS)
    tag_hit = any(t in RESEARCH_TAGS for t in tags)
    type_hit = item_type in ("data", "资料")
    return keyword_hit or tag_hit or type_hit


class RelevanceEngine:

    def __init__(self, item_store: ItemStore, llm: Optional[LLMClient] = None):
        self.item_store = item_store
        self.llm = llm if llm is not None else LLMClient()

    async def get_related_items(self, user_id: str, topic: str) -> List[RelatedItem]:
        keywords = extract_topic_keywords(topic)
        if not keywords:
            return []

        candidates = await self.item_store.search_items(user_id, keywords)
        scored = [(item, calculate_relevance(item, keywords)) for item in candidates]
        scored = [pair for pair in scored if pair[1] > 0]
        scored.sort(key=lambda pair: pair[1], reverse=True)

        return [
            RelatedItem(
                id=item.id,
                title=item.title or "无标题",
                created_at=item.created_at,
                summary=_summary(item),
                relevance=score,
                relevance_label=f"{score}%",
            )
            for item, score in scored[:MAX_RELATED]
        ]

    def generate_research_outline(self, topic: str, related: Sequence[RelatedItem]) -> List[str]:
        titles = [r.title for r in related[:3]]
        system, user = outline_prompt(topic, titles)
        try:
            text = self.llm.complete(user, system=system)
        except LLMError as e:
            logger.warning(f"Outline generation failed, using default outline: {e}")
            return default_outline(topic)
        lines = parse_outline(text)
        if not lines:
            logger.warning("Outline response had no usable lines, using default outline")
            return default_outline(topic)
        return lines

    async def analyze_knowledge_gap(
        self,
        user_id: str,
        topic: str,
        now: Optional[datetime] = None,
    ) -> GapAnalysis:
        now = now or datetime.now()
        related = await self.get_related_items(user_id, topic)
        count = len(related)

        dates = [r.created_at for r in related if r.created_at is not None]
        latest = max(dates) if dates else None
        needs_update = latest is not None and now - latest > STALE_AFTER

        gaps: List[Gap] = []
        suggestions: List[Suggestion] = []
        if count == 0:
            gaps.append(Gap(type="维度缺失", description="暂无相关历史资料，建议开始收集基础信息", priority="high"))
            suggestions.append(Suggestion(action="补充资料", details="建议先收集该主题的基础资料和背景信息"))
        elif count < 3:
            gaps.append(Gap(type="深度不足", description="相关资料较少，建议补充更多维度的信息", priority="medium"))
            suggestions.append(Suggestion(action="深化研究", details="建议补充：技术实现、案例分析、实际应用场景"))
        if needs_update:
            suggestions.append(Suggestion(action="更新资料", details="最新资料已超过30天，建议查看是否有新的发展"))

        outline = await asyncio.to_thread(self.generate_research_outline, topic, related)

        return GapAnalysis(
            completeness=Completeness(score=min(100, count * 20), gaps=gaps),
            timeliness=Timeliness(
                latest_date=latest,
                needs_update=needs_update,
                reason="最新资料距今已超过30天，建议更新" if needs_update else "资料时效性良好",
            ),
            suggestions=suggestions,
            outline=outline,
            related_items=related,
        )
