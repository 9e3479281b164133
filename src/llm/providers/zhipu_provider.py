from __future__ import annotations

import json
import logging
import os
from typing import Iterable, Optional

import httpx

from llm.llm_client import LLMError
from .base import LLMProvider

logger = logging.getLogger(__name__)

ZHIPUAI_API_URL = os.getenv(
    "ZHIPUAI_API_URL", "https://open.bigmodel.cn/api/paas/v4/chat/completions"
).strip()
ZHIPUAI_MODEL = os.getenv("ZHIPUAI_MODEL", "glm-4-flash").strip()
DEFAULT_TEMPERATURE = 0.95


def collect_stream(lines: Iterable[str]) -> str:
    """Concatenate choices[0].delta.content over a server-sent event stream.

    Non-JSON data lines are skipped. A stream that ends without [DONE] or a
    finish_reason is truncated and raises LLMError.
    """
    parts = []
    finished = False
    for raw in lines:
        line = raw.strip() if isinstance(raw, str) else raw.decode("utf-8", "replace").strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            finished = True
            break
        try:
            chunk = json.loads(data)
        except ValueError:
            logger.debug(f"Skipping non-JSON stream chunk: {data[:80]!r}")
            continue
        if not isinstance(chunk, dict):
            continue
        if chunk.get("error"):
            error = chunk["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise LLMError(f"AI gateway stream error: {message}")

        choices = chunk.get("choices") or []
        if not choices:
            continue
        choice = choices[0]
        content = (choice.get("delta") or {}).get("content")
        if content:
            parts.append(content)
        if choice.get("finish_reason"):
            finished = True

    if not finished:
        raise LLMError("AI gateway stream ended before completion")
    return "".join(parts)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return response.reason_phrase


class ZhipuProvider(LLMProvider):
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.api_key = (api_key if api_key is not None else os.getenv("ZHIPUAI_API_KEY", "")).strip()
        self.model = model or ZHIPUAI_MODEL
        self.api_url = api_url or ZHIPUAI_API_URL
        self.timeout = timeout

    def generate(self, *, system: str, user: str, temperature: Optional[float] = None) -> str:
        if not self.api_key:
            raise LLMError("ZHIPUAI_API_KEY is missing")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
            "stream": True,
        }

        try:
            with httpx.Client(timeout=self.timeout) as client:
                with client.stream("POST", self.api_url, headers=headers, json=payload) as r:
                    if r.status_code >= 400:
                        r.read()
                        raise LLMError(f"AI gateway returned {r.status_code}: {_error_message(r)}")
                    return collect_stream(r.iter_lines())
        except httpx.HTTPError as e:
            raise LLMError(f"AI gateway request failed: {e}") from e
