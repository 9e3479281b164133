from __future__ import annotations
import json
from datetime import datetime
from typing import Optional
from llm.providers.base import LLMProvider


class MockProvider(LLMProvider):
    def generate(self, *, system: str, user: str, temperature: Optional[float] = None) -> str:
        """
        Returns canned responses based on which prompt is being answered.
        """
        # Classification request
        if "结构化数据" in system:
            lowered = user.lower()
            item_type = "task"
            if any(k in user for k in ("开会", "会议", "面试", "汇报")) or "meeting" in lowered:
                item_type = "event"
            elif any(k in user for k in ("想到", "灵感", "记录")):
                item_type = "note"
            today = datetime.now().strftime("%Y-%m-%d")
            payload = {
                "type": item_type,
                "title": user[:10],
                "description": user,
                "due_date": None,
                "start_time": f"{today}T10:00:00" if item_type == "event" else None,
                "end_time": f"{today}T11:00:00" if item_type == "event" else None,
                "priority": "high" if "紧急" in user else "medium",
                "tags": ["工作"],
                "entities": {},
            }
            return "```json\n" + json.dumps(payload, ensure_ascii=False) + "\n```"

        if "标题生成助手" in system:
            return "\"" + user.split("\n\n")[1][:12] + "\"" if "\n\n" in user else "笔记"

        if "内容梗概" in system:
            return "离线模式生成的链接梗概"

        if "查询解析助手" in system:
            return json.dumps({"types": [], "statuses": [], "tags": [], "searchText": user})

        if "任务辅助助手" in system:
            return json.dumps({
                "knowledgePoints": ["明确目标与范围", "收集权威资料", "整理关键结论"],
                "referenceInfo": "离线模式：建议先界定问题，再按资料收集、分析、总结的顺序推进。",
            }, ensure_ascii=False)

        if "调研规划助手" in system:
            return "1. 基础调研\n   (1) 基本定义\n2. 对比分析\n   (1) 主流方案"

        # Default fallback
        return "{}"
