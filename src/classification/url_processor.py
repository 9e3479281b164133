"""
URL detection, best-effort page fetching and AI summaries for URL items.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from cogniflow.models import ItemDraft
from llm.llm_client import LLMClient, LLMError
from llm.prompts import url_summary_prompt

logger = logging.getLogger(__name__)

URL_FETCH_TIMEOUT_S = float(os.getenv("URL_FETCH_TIMEOUT_S", "5"))
URL_DEFAULT_TAGS = ["链接", "网页"]
MAX_PAGE_TEXT = 2000

URL_REGEX = re.compile(
    r"https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*)",
    re.IGNORECASE,
)

_USER_AGENT = "Mozilla/5.0 (compatible; CogniFlow/1.0)"
_NOISE_TAGS = ["script", "style", "nav", "header", "footer", "aside", "iframe", "noscript"]
_CONTENT_CLASSES = [
    re.compile(r"article[_-]?(body|content|text)", re.I),
    re.compile(r"post[_-]?(body|content|text)", re.I),
    re.compile(r"(main[_-]?content|content[_-]?area)", re.I),
]


@dataclass
class UrlContent:
    url: str
    title: str
    summary: str
    thumbnail: Optional[str] = None
    content: str = ""
    fetched: bool = False


def detect_url(text: str) -> Optional[str]:
    if not isinstance(text, str):
        return None
    m = URL_REGEX.search(text)
    return m.group(0) if m else None


def is_mainly_url(text: str) -> bool:
    """True when the first URL dominates the text.

    The URL must be more than half of the trimmed characters and more than
    half of the whitespace-separated words, so a short comment in front of a
    link ("看看这个 https://...") keeps the text a normal note.
    """
    url = detect_url(text)
    if not url:
        return False
    trimmed = text.strip()
    words = trimmed.split()
    url_words = sum(1 for w in words if URL_REGEX.search(w))
    return len(url) / len(trimmed) > 0.5 and url_words / len(words) > 0.5


def _title_from_path(url: str, hostname: str) -> str:
    path = urlparse(url).path
    parts = [p for p in path.split("/") if p]
    title = hostname
    if parts:
        title = re.sub(r"[-_]", " ", parts[-1])
        title = re.sub(r"\.[^.]+$", "", title)
        title = re.sub(r"\b\w", lambda m: m.group(0).upper(), title)
    if len(title) < 3:
        title = hostname
    return title or "网页链接"


def favicon_url(hostname: str) -> str:
    return f"https://www.google.com/s2/favicons?domain={hostname}&sz=128"


def _page_text(soup: BeautifulSoup) -> str:
    for tag in soup.find_all(_NOISE_TAGS):
        tag.decompose()

    article = soup.find("article")
    if article:
        text = article.get_text(separator="\n", strip=True)
        if len(text) >= 100:
            return text

    for pattern in _CONTENT_CLASSES:
        container = soup.find("div", class_=pattern)
        if container:
            text = container.get_text(separator="\n", strip=True)
            if len(text) >= 100:
                return text

    paragraphs = soup.find_all("p")
    return "\n".join(p.get_text(strip=True) for p in paragraphs if p.get_text(strip=True))


def parse_html(html: str) -> dict:
    """Title, description and readable text of an HTML page."""
    soup = BeautifulSoup(html, "html.parser")

    title = ""
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content"):
        title = og_title["content"].strip()
    elif soup.title and soup.title.string:
        title = soup.title.string.strip()

    description = ""
    for attrs in ({"name": "description"}, {"property": "og:description"}):
        meta = soup.find("meta", attrs=attrs)
        if meta and meta.get("content"):
            description = meta["content"].strip()
            break

    return {"title": title, "description": description, "text": _page_text(soup)[:MAX_PAGE_TEXT]}


def fetch_url_content(url: str, timeout: float = URL_FETCH_TIMEOUT_S) -> UrlContent:
    """Fetch title/description/text for url.

    Never raises: blocked or failing fetches fall back to metadata inferred
    from the URL itself.
    """
    hostname = urlparse(url).hostname if isinstance(url, str) else None
    if not hostname:
        return UrlContent(url=url, title="网页链接", summary="无法提取链接信息")

    result = UrlContent(
        url=url,
        title=_title_from_path(url, hostname),
        summary=f"来自 {hostname} 的链接",
        thumbnail=favicon_url(hostname),
    )

    try:
        r = requests.get(url, timeout=timeout, headers={"User-Agent": _USER_AGENT})
        r.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f"Could not fetch {url}, using URL metadata: {e}")
        return result

    if "html" not in r.headers.get("Content-Type", "html").lower():
        return result

    page = parse_html(r.text)
    if page["title"]:
        result.title = page["title"][:200]
    if page["description"]:
        result.summary = page["description"][:500]
    result.content = page["text"]
    result.fetched = True
    return result


def content_type_hint(url: str) -> str:
    parsed = urlparse(url)
    hostname = parsed.hostname or ""
    path = parsed.path.lower()
    if "github.com" in hostname:
        return "这可能是一个GitHub仓库或代码项目"
    if "youtube.com" in hostname or "youtu.be" in hostname:
        return "这可能是一个YouTube视频"
    if "medium.com" in hostname or "blog" in hostname:
        return "这可能是一篇博客文章"
    if re.search(r"\.(pdf|doc|docx)$", path):
        return "这可能是一个文档文件"
    if re.search(r"\.(jpg|jpeg|png|gif|svg)$", path):
        return "这可能是一张图片"
    return ""


def generate_url_summary(
    llm: LLMClient,
    url: str,
    title: str,
    user_context: str = "",
    page_text: str = "",
) -> str:
    hostname = urlparse(url).hostname or url
    hint = content_type_hint(url)
    system, user = url_summary_prompt(url, title, hostname, hint, page_text[:800], user_context)
    try:
        summary = llm.complete(user, system=system, temperature=0.7)
    except LLMError as e:
        logger.warning(f"URL summary failed for {url}: {e}")
        return hint or f"来自 {hostname} 的链接"
    summary = summary.strip().strip("\"'“”").strip()
    return summary or f"来自 {hostname} 的内容"


def build_url_draft(raw_text: str, content: UrlContent, summary: str, extra_tags: List[str]) -> ItemDraft:
    return ItemDraft(
        raw_text=raw_text,
        type="url",
        title=content.title,
        description=content.summary,
        tags=[*URL_DEFAULT_TAGS, *extra_tags],
        url=content.url,
        url_title=content.title,
        url_summary=summary,
        url_thumbnail=content.thumbnail,
        url_fetched_at=datetime.now(),
    )
