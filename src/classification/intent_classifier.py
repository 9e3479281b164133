"""
Intent classifier: turns one line of raw user input into an outcome.

Decision order, first match wins:
  @help -> query -> (tag phrases pulled out) -> URL -> explicit type prefix
  -> template command -> full AI classification.

classify() never raises. When the AI gateway fails or answers with
something unusable the input still becomes a plain task.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable, List, Optional, Pattern, Sequence, Tuple

from classification import query_processor
from classification.templates import DEFAULT_TEMPLATES, match_templates
from classification.url_processor import (
    UrlContent,
    build_url_draft,
    detect_url,
    fetch_url_content,
    generate_url_summary,
    is_mainly_url,
)
from cogniflow.models import ClassificationOutcome, ItemDraft, OutcomeKind, Template
from extraction.keywords import extract_tag_phrases
from llm.llm_client import LLMClient, LLMError
from llm.prompts import classification_prompt, note_title_prompt
from llm.schemas import AIClassification
from scheduling.time_resolver import EVENT_DEFAULT_DURATION, parse_local_timestamp, resolve_times

logger = logging.getLogger(__name__)

HELP_COMMAND = "@help"
FALLBACK_TITLE_LENGTH = 30
NOTE_TITLE_MAX = 20
NOTE_TITLE_FALLBACK = 15

AI_ITEM_TYPES = ("task", "event", "note", "data", "url")

# Evaluated in order; the first matching keyword decides the type
TYPE_PREFIXES: List[Tuple[str, List[str]]] = [
    ("note", ["笔记", "note"]),
    ("task", ["任务", "task", "待办", "todo"]),
    ("event", ["日程", "event", "活动", "会议"]),
    ("data", ["资料", "data", "文档"]),
    ("collection", ["集合", "collection"]),
]

# Types whose items only get a generated title, not a full classification
TITLE_ONLY_TYPES = {"note": "笔记", "data": "资料"}

RESERVED_PREFIX_WORDS = [kw for _, keywords in TYPE_PREFIXES for kw in keywords]


def _compile_prefixes() -> List[Tuple[str, Pattern]]:
    compiled = []
    for item_type, keywords in TYPE_PREFIXES:
        for kw in keywords:
            pattern = re.compile(
                rf"^(?:{re.escape(kw)}\s*[：:]|[@/]{re.escape(kw)}(?=[\s：:]))[\s：:]*",
                re.IGNORECASE,
            )
            compiled.append((item_type, pattern))
    return compiled


_PREFIX_PATTERNS = _compile_prefixes()


def match_type_prefix(text: str) -> Optional[Tuple[str, str]]:
    """(type, remaining text) when text starts with an explicit type prefix."""
    for item_type, pattern in _PREFIX_PATTERNS:
        m = pattern.match(text)
        if m:
            content = text[m.end():].strip()
            if content:
                return item_type, content
    return None


def generate_note_title(llm: LLMClient, content: str) -> str:
    system, user = note_title_prompt(content)
    try:
        title = llm.complete(user, system=system, temperature=0.7)
    except LLMError as e:
        logger.warning(f"Note title generation failed: {e}")
        title = ""
    title = re.sub(r"^[\"'“”]|[\"'“”]$", "", title.strip()).strip()
    if not title:
        return content[:NOTE_TITLE_FALLBACK] + "..." if len(content) > NOTE_TITLE_FALLBACK else content
    return title[:NOTE_TITLE_MAX]


def fallback_draft(text: str, item_type: str = "task", raw_text: Optional[str] = None) -> ItemDraft:
    return ItemDraft(
        raw_text=raw_text if raw_text is not None else text,
        type=item_type,
        title=text[:FALLBACK_TITLE_LENGTH],
        description=text,
        priority="medium",
        tags=[],
        entities={},
    )


def _merge_tags(*groups: Sequence[str]) -> List[str]:
    merged: List[str] = []
    for group in groups:
        for tag in group:
            if tag and tag not in merged:
                merged.append(tag)
    return merged


class IntentClassifier:

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        fetch_url: Callable[[str], UrlContent] = fetch_url_content,
        templates: Sequence[Template] = DEFAULT_TEMPLATES,
    ):
        self.llm = llm if llm is not None else LLMClient()
        self.fetch_url = fetch_url
        self.templates = templates

    def classify(self, raw_text: str, now: Optional[datetime] = None) -> ClassificationOutcome:
        text = (raw_text or "").strip()
        now = now or datetime.now()

        if text.lower() == HELP_COMMAND:
            return ClassificationOutcome(kind=OutcomeKind.HELP, raw_text=text)

        if query_processor.detect_query_intent(text):
            query_text = query_processor.remove_query_prefix(text)
            intent = query_processor.parse_query_intent(self.llm, query_text, now)
            return ClassificationOutcome(
                kind=OutcomeKind.QUERY,
                raw_text=text,
                query=intent,
                query_text=query_text,
            )

        tags, working = extract_tag_phrases(text, reserved=RESERVED_PREFIX_WORDS)
        if not working:
            # only tags were typed; classify the raw text instead of nothing
            working = text

        url = detect_url(working)
        if url and is_mainly_url(working):
            return self._classify_url(text, url, tags)

        prefixed = match_type_prefix(working)
        if prefixed:
            item_type, content = prefixed
            if item_type in TITLE_ONLY_TYPES:
                title = generate_note_title(self.llm, content)
                draft = ItemDraft(
                    raw_text=content,
                    type=item_type,
                    title=title,
                    description=content,
                    tags=_merge_tags([TITLE_ONLY_TYPES[item_type]], tags),
                )
                return ClassificationOutcome(
                    kind=OutcomeKind.ITEM, raw_text=text, draft=draft, extracted_tags=tags
                )
            return self._classify_with_ai(text, content, tags, now, forced_type=item_type)

        templates = match_templates(working, self.templates)
        if templates:
            return ClassificationOutcome(
                kind=OutcomeKind.TEMPLATE, raw_text=text, templates=templates, extracted_tags=tags
            )

        return self._classify_with_ai(text, working, tags, now)

    def _classify_url(self, raw_text: str, url: str, tags: List[str]) -> ClassificationOutcome:
        try:
            content = self.fetch_url(url)
        except Exception as e:
            logger.warning(f"URL fetch raised for {url}: {e}")
            content = UrlContent(url=url, title="网页链接", summary="无法提取链接信息")
        summary = generate_url_summary(self.llm, content.url, content.title, raw_text, content.content)
        draft = build_url_draft(raw_text, content, summary, tags)
        return ClassificationOutcome(kind=OutcomeKind.URL, raw_text=raw_text, draft=draft, extracted_tags=tags)

    def _classify_with_ai(
        self,
        raw_text: str,
        content: str,
        tags: List[str],
        now: datetime,
        forced_type: Optional[str] = None,
    ) -> ClassificationOutcome:
        try:
            draft = self._ai_draft(raw_text, content, tags, now, forced_type)
        except Exception as e:
            logger.exception(f"Classification failed, using fallback: {e}")
            draft = None

        used_fallback = draft is None
        if draft is None:
            draft = fallback_draft(content, forced_type or "task", raw_text=raw_text)
        return ClassificationOutcome(
            kind=OutcomeKind.ITEM,
            raw_text=raw_text,
            draft=draft,
            extracted_tags=tags,
            used_fallback=used_fallback,
        )

    def _ai_draft(
        self,
        raw_text: str,
        content: str,
        tags: List[str],
        now: datetime,
        forced_type: Optional[str],
    ) -> Optional[ItemDraft]:
        system, user = classification_prompt(content, now)
        try:
            result = self.llm.complete_model(AIClassification, user, system=system)
        except LLMError as e:
            logger.warning(f"AI classification unavailable: {e}")
            return None
        if result is None:
            return None

        ai_type = (result.type or "").lower()
        item_type = forced_type or (ai_type if ai_type in AI_ITEM_TYPES else "task")

        due = parse_local_timestamp(result.due_date)
        start = parse_local_timestamp(result.start_time) or due
        end = parse_local_timestamp(result.end_time)

        if due is None and start is None and end is None:
            resolved = resolve_times(content, now, item_type)
            due, start, end = resolved.due_date, resolved.start_time, resolved.end_time
        if item_type == "event" and start is not None and end is None:
            end = start + EVENT_DEFAULT_DURATION

        return ItemDraft(
            raw_text=raw_text,
            type=item_type,
            title=result.title or content[:FALLBACK_TITLE_LENGTH],
            description=result.description or content,
            due_date=due,
            start_time=start,
            end_time=end,
            priority=result.priority or "medium",
            tags=_merge_tags(result.tags, tags),
            entities=result.entities,
        )
