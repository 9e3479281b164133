"""
Prompt contracts for every AI call site.

Each builder returns (system, user). The system prompts ask for bare JSON
where the caller parses structure; callers still strip fences because
models add them anyway.
"""

from datetime import datetime, timedelta
from typing import List, Sequence, Tuple

_WEEKDAY_NAMES = ["一", "二", "三", "四", "五", "六", "日"]


def _this_friday(now: datetime) -> str:
    delta = (4 - now.weekday()) % 7
    return (now + timedelta(days=delta)).strftime("%Y-%m-%d")


def classification_prompt(text: str, now: datetime) -> Tuple[str, str]:
    today = now.strftime("%Y-%m-%d")
    friday = _this_friday(now)
    system = f"""你是一个智能信息处理助手。用户会输入一段文本，你需要分析并返回JSON格式的结构化数据。

当前时间信息：
- 当前日期：{now.year}年{now.month}月{now.day}日 星期{_WEEKDAY_NAMES[now.weekday()]}
- 当前时间：{now.strftime("%H:%M")}
- ISO格式基准日期：{today}
- 本周五（或下周五）：{friday}

分析规则：
1. type：必填，取值 task / event / note / data。无法确定时使用 task。
   - task：需要完成的具体任务，带有动作意图（买、做、写、整理、学习、提醒）
   - event：有明确时间的活动安排（开会、会议、面试、聚会、汇报、培训）
   - note：想法、灵感、记录，没有明确动作
   - data：信息、资料、参考内容
2. title：核心主题（10字以内）
3. description：详细描述
4. due_date：时间信息，格式 YYYY-MM-DDTHH:mm:ss，不带时区
   - "今天"、"今晚"、"今天晚上" 都使用 {today}
   - "明天" 加1天，"后天" 加2天
   - "周五"、"星期五" 为今天或之后最近的周五，例如 {friday}
   - "下周一" 为下一周的周一
   - 早上/上午 09:00，中午 12:00，下午 14:00，晚上 19:00，凌晨 01:00（没有具体时间时）
   - 有具体时间点时使用具体时间，如 "晚上十点" 为 22:00
   - 完全没有时间信息返回 null
5. start_time / end_time：event 的开始和结束时间；只有一个时间点时 end_time 为一小时后
6. priority：high（紧急、重要、马上、立即）/ low（不急、有空、随时）/ medium
7. tags：3-5个关键词标签
8. entities：people / location / project / other

只返回纯JSON，不要markdown代码块。示例：
输入："今天晚上十点开会"
{{"type": "event", "title": "开会", "description": "今天晚上十点开会", "due_date": "{today}T22:00:00", "start_time": "{today}T22:00:00", "end_time": "{today}T23:00:00", "priority": "medium", "tags": ["会议", "工作"], "entities": {{}}}}"""
    return system, text


def note_title_prompt(content: str) -> Tuple[str, str]:
    system = """你是一个专业的标题生成助手。用户会提供笔记内容，你需要为这段内容生成一个简洁、准确的标题。

要求：
1. 标题长度：10-20个字
2. 准确概括核心内容
3. 不要添加"笔记："、"关于"等前缀
4. 直接返回标题文本，不要使用引号或其他标记

示例：
输入："今天学习了 React Hooks，特别是 useEffect 的依赖数组机制很重要"
输出：React Hooks 学习笔记"""
    user = f"请为以下笔记内容生成一个简洁的标题：\n\n{content}\n\n只返回标题文本，不要包含任何其他内容。"
    return system, user


def url_summary_prompt(
    url: str,
    title: str,
    hostname: str,
    content_hint: str = "",
    page_text: str = "",
    user_context: str = "",
) -> Tuple[str, str]:
    system = """你是一个专业的内容梗概生成助手。根据提供的URL信息和网页内容，生成一个简洁、有用的内容梗概。

要求：
1. 梗概长度：30-80字
2. 必须包含核心价值点
3. 有网页正文时以正文为准，不要只根据URL猜测
4. 不要使用"这是一个链接"等废话

示例：
- GitHub仓库 → "开源项目：基于React的UI组件库，提供50+高质量组件"
- 技术博客 → "深度解析：微服务架构设计模式与最佳实践\""""
    lines = [f"URL: {url}", f"标题: {title}", f"域名: {hostname}"]
    if content_hint:
        lines.append(f"内容类型提示: {content_hint}")
    if page_text:
        lines.append(f"网页正文节选: {page_text}")
    if user_context:
        lines.append(f"用户备注: {user_context}")
    lines.append("")
    lines.append("请生成一个简洁有用的内容梗概（30-80字）：")
    return system, "\n".join(lines)


def query_intent_prompt(query: str, now: datetime) -> Tuple[str, str]:
    system = f"""你是一个查询解析助手。把用户的自然语言查询转换为结构化筛选条件。
当前日期：{now.strftime("%Y-%m-%d")}

返回JSON：
{{"types": [], "statuses": [], "tags": [], "searchText": null}}

- types：task / event / note / data / url / collection 中的若干个（"会议"、"日程" 为 event，"任务"、"待办" 为 task，"笔记" 为 note，"链接" 为 url）
- statuses：pending / completed 中的若干个（"未完成" 为 pending，"已完成" 为 completed）
- tags：用户明确提到的标签（如 "标签:工作" 为 ["工作"]）
- searchText：剩余的关键词，没有则为 null

只返回JSON。"""
    return system, query


def assist_prompt(task_text: str, search_results: Sequence) -> Tuple[str, str]:
    system = """你是一个智能任务辅助助手。用户输入了一个任务，你需要基于以下信息提供帮助：

1. 相关知识点：列出3-5个与任务相关的关键知识点或注意事项
2. 参考信息摘要：基于搜索结果（如果有）和你的知识，生成一段简洁的参考信息摘要（100-200字）

要求：
- 知识点要具体、实用
- 如果提供了搜索结果，优先基于搜索结果总结
- 输出格式为JSON：
{
  "knowledgePoints": ["知识点1", "知识点2", "知识点3"],
  "referenceInfo": "参考信息摘要..."
}"""
    context = ""
    if search_results:
        entries = [
            f"{i}. {r.title}\n   {r.content}\n   来源: {r.media} - {r.link}"
            for i, r in enumerate(search_results, start=1)
        ]
        context = "\n\n搜索到的相关信息：\n" + "\n\n".join(entries)
    user = f"用户任务：{task_text}{context}\n\n请提供相关知识点和参考信息摘要。"
    return system, user


def outline_prompt(topic: str, related_titles: List[str]) -> Tuple[str, str]:
    history = f"已有相关历史资料：{'、'.join(related_titles)}" if related_titles else "暂无相关历史资料"
    system = f"""你是一个专业的调研规划助手。用户要进行一个调研任务，你需要生成一个详细、结构化的调研大纲。

调研主题：{topic}

{history}

大纲应覆盖：基础调研、市场调研、背景调研、对比分析、社区调研、案例调研。

格式（使用编号和缩进）：
1. 第一级标题
   (1) 第二级标题
      (a) 第三级标题

只返回大纲内容，不要添加其他说明文字。每个条目一行。"""
    return system, f"请为\"{topic}\"生成详细的调研大纲"
