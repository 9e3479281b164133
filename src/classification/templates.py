"""
Collection templates opened with a leading "/" command.
"""

import re
import uuid
from typing import List, Optional, Sequence

from cogniflow.models import ItemDraft, SubItem, Template

DEFAULT_TEMPLATES: List[Template] = [
    Template(
        trigger_word="日报",
        template_name="每日工作日志",
        icon="📰",
        collection_type="日报",
        default_tags=["工作", "日报"],
        default_sub_items=["总结今日完成的工作", "记录遇到的问题", "规划明日工作计划"],
    ),
    Template(
        trigger_word="会议",
        template_name="会议纪要",
        icon="👥",
        collection_type="会议",
        default_tags=["会议", "工作"],
        default_sub_items=["记录会议议题", "记录讨论要点", "记录行动项"],
    ),
    Template(
        trigger_word="月报",
        template_name="月度总结",
        icon="📅",
        collection_type="月报",
        default_tags=["工作", "月报"],
        default_sub_items=["本月工作完成情况", "重点成果与亮点", "下月工作计划"],
    ),
]

_COMMAND = re.compile(r"/(\S*)")


def match_templates(text: str, templates: Sequence[Template] = DEFAULT_TEMPLATES) -> Optional[List[Template]]:
    """Templates selected by a template command, or None if text is not one.

    "/" alone lists every template; "/日" lists those whose trigger word
    starts with "日". A command that matches nothing is not a template trigger.
    """
    if not isinstance(text, str):
        return None
    m = _COMMAND.fullmatch(text.strip())
    if not m:
        return None
    prefix = m.group(1)
    matched = [t for t in templates if t.trigger_word.startswith(prefix)]
    return matched or None


def find_template(trigger_word: str, templates: Sequence[Template] = DEFAULT_TEMPLATES) -> Optional[Template]:
    for template in templates:
        if template.trigger_word == trigger_word:
            return template
    return None


def build_item_from_template(
    template: Template,
    title: str,
    description: str = "",
    extra_tags: Sequence[str] = (),
    sub_items: Optional[Sequence[str]] = None,
) -> ItemDraft:
    texts = list(sub_items) if sub_items is not None else template.default_sub_items
    return ItemDraft(
        raw_text=title,
        type="collection",
        title=title,
        description=description,
        tags=[*template.default_tags, *extra_tags],
        collection_type=template.collection_type,
        sub_items=[SubItem(id=str(uuid.uuid4()), text=text) for text in texts],
    )
