import asyncio
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from assist.task_processor import AssistTaskProcessor
from classification.intent_classifier import IntentClassifier
from classification.query_processor import generate_query_summary, parse_query_intent
from classification.templates import build_item_from_template, find_template
from cogniflow.models import AssistTask, ClassificationOutcome, Item, ItemDraft, OutcomeKind, QueryIntent
from extraction.keywords import should_trigger_assist
from scheduling.conflicts import ConflictResolver, affects_conflicts
from storage.base import AssistTaskStore, ItemStore

logger = logging.getLogger(__name__)

HELP_SHORTCUTS = [
    {"key": "/", "desc": "触发模板菜单"},
    {"key": "/日报", "desc": "创建日报模板"},
    {"key": "/会议", "desc": "创建会议纪要模板"},
    {"key": "/月报", "desc": "创建月报模板"},
    {"key": "?关键词 或 /q 关键词", "desc": "搜索包含关键词的内容"},
    {"key": "查询 今天的任务", "desc": "自然语言查询"},
    {"key": "笔记: / 任务: / 日程: / 资料:", "desc": "指定卡片类型"},
    {"key": "/标签 @标签", "desc": "快速添加标签"},
    {"key": "今天/明天/后天/下周五 下午3点", "desc": "自动识别时间"},
    {"key": "@help", "desc": "打开使用帮助"},
]


class TemplateNotFound(LookupError):
    pass


class IntakeService:
    """Central orchestration: classify raw input, persist it, and keep the
    derived state (conflict flags, assist tasks) in step with item changes."""

    def __init__(
        self,
        classifier: IntentClassifier,
        item_store: ItemStore,
        task_store: AssistTaskStore,
        conflicts: ConflictResolver,
        processor: AssistTaskProcessor,
    ):
        self.classifier = classifier
        self.item_store = item_store
        self.task_store = task_store
        self.conflicts = conflicts
        self.processor = processor

    async def submit(self, user_id: str, text: str, now: Optional[datetime] = None) -> Tuple[ClassificationOutcome, Dict[str, Any]]:
        """Classify text and act on the outcome."""
        outcome = await asyncio.to_thread(self.classifier.classify, text, now)

        if outcome.kind == OutcomeKind.HELP:
            return outcome, {"kind": outcome.kind.value, "shortcuts": HELP_SHORTCUTS}

        if outcome.kind == OutcomeKind.QUERY:
            items = await self.item_store.query_items(user_id, outcome.query)
            return outcome, {
                "kind": outcome.kind.value,
                "query": outcome.query_text,
                "intent": outcome.query.model_dump(),
                "summary": generate_query_summary(outcome.query, len(items)),
                "items": items,
            }

        if outcome.kind == OutcomeKind.TEMPLATE:
            return outcome, {
                "kind": outcome.kind.value,
                "templates": [asdict(t) for t in outcome.templates],
                "tags": outcome.extracted_tags,
            }

        item, task = await self.create_item(user_id, outcome.draft)
        return outcome, {
            "kind": outcome.kind.value,
            "item": item,
            "used_fallback": outcome.used_fallback,
            "assist_task_id": task.id if task else None,
        }

    async def create_item(self, user_id: str, draft: ItemDraft) -> Tuple[Item, Optional[AssistTask]]:
        item = await self.item_store.create_item(user_id, draft)
        logger.info(f"Created {item.type} item {item.id} for user {user_id}")

        if affects_conflicts(None, item):
            await self.conflicts.recompute_conflicts(user_id)
            item = await self.item_store.get_item(user_id, item.id) or item

        task = None
        if should_trigger_assist(draft.raw_text or item.title or ""):
            task = await self.processor.create_task(item.id, user_id, draft.raw_text or item.title)
        return item, task

    async def create_from_template(
        self,
        user_id: str,
        trigger_word: str,
        title: str,
        description: str = "",
        tags: Sequence[str] = (),
        sub_items: Optional[Sequence[str]] = None,
    ) -> Item:
        template = find_template(trigger_word, self.classifier.templates)
        if template is None:
            raise TemplateNotFound(trigger_word)
        draft = build_item_from_template(template, title, description, tags, sub_items)
        item, _ = await self.create_item(user_id, draft)
        return item

    async def update_item(self, user_id: str, item_id: str, changes: Dict[str, Any]) -> Optional[Item]:
        before = await self.item_store.get_item(user_id, item_id)
        if before is None:
            return None
        after = await self.item_store.update_item(user_id, item_id, changes)
        if after is None:
            return None

        if affects_conflicts(before, after):
            await self.conflicts.recompute_conflicts(user_id)
            after = await self.item_store.get_item(user_id, item_id) or after
        if after.status == "completed" and before.status != "completed":
            await self.task_store.cancel_tasks_for_item(item_id)
        return after

    async def delete_item(self, user_id: str, item_id: str) -> Optional[Item]:
        item = await self.item_store.soft_delete(user_id, item_id)
        if item is not None:
            await self._retire(user_id, item)
        return item

    async def archive_item(self, user_id: str, item_id: str) -> Optional[Item]:
        item = await self.item_store.archive(user_id, item_id)
        if item is not None:
            await self._retire(user_id, item)
        return item

    async def unarchive_item(self, user_id: str, item_id: str) -> Optional[Item]:
        item = await self.item_store.unarchive(user_id, item_id)
        if item is not None and item.type == "event":
            await self.conflicts.recompute_conflicts(user_id)
            item = await self.item_store.get_item(user_id, item_id) or item
        return item

    async def _retire(self, user_id: str, item: Item) -> None:
        await self.task_store.cancel_tasks_for_item(item.id)
        if item.type == "event":
            await self.conflicts.recompute_conflicts(user_id)

    async def run_query(self, user_id: str, text: Optional[str] = None, intent: Optional[QueryIntent] = None) -> Dict[str, Any]:
        """Run a structured query, parsing free text into filters first when given."""
        if text:
            intent = await asyncio.to_thread(parse_query_intent, self.classifier.llm, text)
        intent = intent or QueryIntent()
        items = await self.item_store.query_items(user_id, intent)
        return {
            "intent": intent.model_dump(),
            "summary": generate_query_summary(intent, len(items)),
            "items": items,
        }

    async def search(self, user_id: str, q: str) -> List[Item]:
        terms = [t for t in q.split() if t]
        return await self.item_store.search_items(user_id, terms)
