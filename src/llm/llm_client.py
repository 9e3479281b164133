"""
AI gateway client.

LLMClient wraps a provider (Zhipu streaming chat completion in production,
canned responses offline) and offers one way to get structured JSON out of
model text: extract_json, which strips markdown fences and returns None
instead of raising when the text is not usable.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from llm.providers.base import LLMProvider

logger = logging.getLogger(__name__)

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "zhipu").strip().lower()

DEFAULT_SYSTEM_PROMPT = "你是一个智能信息处理助手。"

_FENCE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

M = TypeVar("M", bound=BaseModel)


class LLMError(RuntimeError):
    """Any failure talking to the AI gateway (missing key, HTTP, transport, truncated stream)."""


def strip_code_fences(text: str) -> str:
    if not isinstance(text, str):
        return ""
    stripped = text.strip()
    m = _FENCE.search(stripped)
    if m:
        return m.group(1).strip()
    # unterminated fence
    if stripped.startswith("```"):
        stripped = re.sub(r"^```(?:json|JSON)?\s*", "", stripped)
    return stripped.strip()


def extract_json(text: str) -> Optional[Any]:
    """Parse the JSON payload in model output.

    Handles ```json fences and chatter around a single {...} object.
    Returns None when nothing parseable is found; never raises.
    """
    candidate = strip_code_fences(text)
    if not candidate:
        return None
    try:
        return json.loads(candidate)
    except ValueError:
        pass

    start, end = candidate.find("{"), candidate.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(candidate[start:end + 1])
        except ValueError:
            pass
    return None


def get_provider(name: Optional[str] = None) -> LLMProvider:
    name = (name or LLM_PROVIDER).lower()
    if name == "mock":
        from llm.providers.mock_provider import MockProvider
        return MockProvider()
    if name == "zhipu":
        from llm.providers.zhipu_provider import ZhipuProvider
        return ZhipuProvider()
    raise ValueError(f"Unknown LLM_PROVIDER: {name}")


class LLMClient:

    def __init__(self, provider: Optional[LLMProvider] = None):
        self.provider = provider if provider is not None else get_provider()

    def complete(
        self,
        user: str,
        system: str = DEFAULT_SYSTEM_PROMPT,
        temperature: Optional[float] = None,
    ) -> str:
        """Return the full model text. Raises LLMError on any gateway failure."""
        try:
            if temperature is None:
                return self.provider.generate(system=system, user=user)
            return self.provider.generate(system=system, user=user, temperature=temperature)
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"AI gateway call failed: {e}") from e

    def complete_json(
        self,
        user: str,
        system: str = DEFAULT_SYSTEM_PROMPT,
        temperature: Optional[float] = None,
    ) -> Optional[Any]:
        """Model output parsed as JSON, or None when it is not parseable."""
        text = self.complete(user, system=system, temperature=temperature)
        data = extract_json(text)
        if data is None:
            logger.warning(f"AI output is not valid JSON: {text[:200]!r}")
        return data

    def complete_model(
        self,
        model: Type[M],
        user: str,
        system: str = DEFAULT_SYSTEM_PROMPT,
        temperature: Optional[float] = None,
    ) -> Optional[M]:
        """Model output validated into `model`, or None when it does not fit."""
        data = self.complete_json(user, system=system, temperature=temperature)
        if not isinstance(data, dict):
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning(f"AI output does not match {model.__name__}: {e}")
            return None
