"""
Deterministic text utilities: inline tag extraction, search keyword
derivation and the assist trigger policy.

Nothing here calls the AI gateway, and none of the functions raise for
string input.
"""

from __future__ import annotations

import re
from typing import Iterable, List, NamedTuple

# Any of these (substring, case-insensitive) queues an assist task on creation
ASSIST_KEYWORDS = [
    "写一篇", "写", "调研", "研究", "了解", "学习", "分析", "总结", "整理",
    "准备", "制定", "规划", "设计", "开发", "实现", "评估", "讨论", "探讨",
    "write", "research", "study", "learn", "analyze", "analyse", "summarize",
    "summarise", "plan", "design", "develop", "implement", "evaluate", "discuss",
]

# Leading verbs removed from a task before it is used as a search query
ACTION_WORDS = [
    "写", "调研", "研究", "了解", "学习", "分析", "总结", "整理", "准备",
    "制定", "规划", "设计", "开发", "实现", "评估", "讨论", "探讨",
]

STOP_WORDS = frozenset([
    "的", "了", "在", "是", "我", "有", "和", "就", "不", "人", "都", "一",
    "一个", "上", "也", "很", "到", "说", "要", "去", "你", "会", "着",
    "没有", "看", "好", "自己", "这",
])

MAX_SEARCH_KEYWORDS_LENGTH = 50
MAX_TOPIC_KEYWORDS = 5

_TAG_TOKEN = re.compile(r"(?<!\S)[/@]([^\s/@]+)")
_LEADING_TIME = re.compile(r"^(今天|明天|后天|本周|下周|这个|那个)\s*", re.IGNORECASE)
_LEADING_INTENT = re.compile(r"^(要|需要|准备|打算|计划)\s*", re.IGNORECASE)
_MEASURE_WORDS = re.compile(r"\s*(一篇|一个|一份|一次|一下)\s*", re.IGNORECASE)
_TOPIC_SPLIT = re.compile(r"[\s，。、；：！？\n]")


class TagPhrases(NamedTuple):
    tags: List[str]
    text: str


def extract_tag_phrases(text: str, reserved: Iterable[str] = ()) -> TagPhrases:
    """Pull `/token` and `@token` phrases out of text as tags.

    Tokens in `reserved` (type-prefix keywords such as "笔记" or "task") are
    left in place for the type-prefix step. A lone command such as "/日报"
    with nothing else around it is also left alone, since that is a
    template trigger rather than a tag.
    """
    if not isinstance(text, str):
        return TagPhrases([], "")
    stripped = text.strip()
    if not stripped or _TAG_TOKEN.fullmatch(stripped) and stripped.startswith("/"):
        return TagPhrases([], stripped)

    reserved_lower = {r.lower() for r in reserved}
    tags: List[str] = []

    def _take(match: re.Match) -> str:
        token = match.group(1)
        if token.lower() in reserved_lower:
            return match.group(0)
        if token not in tags:
            tags.append(token)
        return ""

    remaining = _TAG_TOKEN.sub(_take, stripped)
    remaining = re.sub(r"\s{2,}", " ", remaining).strip()
    return TagPhrases(tags, remaining)


def extract_search_keywords(task_text: str) -> str:
    """Reduce a task description to a web-search query.

    "明天要写一篇关于大模型的报告" -> "关于大模型的报告". Falls back to the full
    text when the reduction leaves fewer than three characters.
    """
    if not isinstance(task_text, str):
        return ""
    keywords = _LEADING_TIME.sub("", task_text)
    keywords = _LEADING_INTENT.sub("", keywords)
    keywords = _MEASURE_WORDS.sub(" ", keywords).strip()

    for word in ACTION_WORDS:
        if keywords.lower().startswith(word):
            keywords = keywords[len(word):].strip()
            break

    if len(keywords) < 3:
        keywords = task_text
    return keywords[:MAX_SEARCH_KEYWORDS_LENGTH]


def should_trigger_assist(text: str) -> bool:
    # No negation handling: "不要写" still matches "写"
    if not isinstance(text, str) or not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in ASSIST_KEYWORDS)


def extract_topic_keywords(text: str, limit: int = MAX_TOPIC_KEYWORDS) -> List[str]:
    """2-4 character words of text that are not stop words, deduplicated in order."""
    if not isinstance(text, str):
        return []
    words: List[str] = []
    for word in _TOPIC_SPLIT.split(text):
        if 2 <= len(word) <= 4 and word not in STOP_WORDS and word not in words:
            words.append(word)
    return words[:limit]
