"""
Natural-language queries over stored items ("? 本周的会议", "/q 标签:工作").
"""

import logging
import re
from datetime import datetime
from typing import Optional

from cogniflow.models import QueryIntent
from llm.llm_client import LLMClient, LLMError
from llm.prompts import query_intent_prompt
from llm.schemas import QueryIntentResult

logger = logging.getLogger(__name__)

_EXPLICIT_PREFIX = re.compile(r"^(?:[?？]|/q(?=\s|$))\s*", re.IGNORECASE)
_NATURAL_MARKERS = re.compile(r"^(?:查询|查找|显示所有|列出|show me\b|list all\b)", re.IGNORECASE)
_QUESTION = re.compile(r"(?:有哪些|有什么).*[?？]$")

_TYPE_LABELS = {
    "task": "任务", "event": "日程", "note": "笔记",
    "data": "资料", "url": "链接", "collection": "集合",
}
_STATUS_LABELS = {"pending": "未完成", "completed": "已完成"}


def detect_query_intent(text: str) -> bool:
    if not isinstance(text, str):
        return False
    stripped = text.strip()
    if not stripped:
        return False
    return bool(
        _EXPLICIT_PREFIX.match(stripped)
        or _NATURAL_MARKERS.match(stripped)
        or _QUESTION.search(stripped)
    )


def remove_query_prefix(text: str) -> str:
    return _EXPLICIT_PREFIX.sub("", text.strip(), count=1).strip()


def parse_query_intent(llm: LLMClient, query: str, now: Optional[datetime] = None) -> QueryIntent:
    """Structured filters for query; a plain text search when the AI cannot help."""
    fallback = QueryIntent(search_text=query or None)
    system, user = query_intent_prompt(query, now or datetime.now())
    try:
        result = llm.complete_model(QueryIntentResult, user, system=system, temperature=0.3)
    except LLMError as e:
        logger.warning(f"Query intent parsing failed, using text search: {e}")
        return fallback
    if result is None:
        return fallback

    intent = QueryIntent(
        types=result.types,
        statuses=[s for s in result.statuses if s],
        tags=result.tags,
        search_text=result.search_text or None,
    )
    if not (intent.types or intent.statuses or intent.tags or intent.search_text):
        return fallback
    return intent


def generate_query_summary(intent: QueryIntent, count: int) -> str:
    conditions = []
    if intent.types:
        conditions.append("类型：" + "、".join(_TYPE_LABELS.get(t, t) for t in intent.types))
    if intent.statuses:
        conditions.append("状态：" + "、".join(_STATUS_LABELS.get(s, s) for s in intent.statuses))
    if intent.tags:
        conditions.append("标签：" + "、".join(intent.tags))
    if intent.search_text:
        conditions.append(f"关键词：{intent.search_text}")

    if count == 0:
        head = "未找到匹配的记录"
    else:
        head = f"找到 {count} 条记录"
    return f"{head}（{'；'.join(conditions)}）" if conditions else head
