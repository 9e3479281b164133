from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional


class LLMProvider(ABC):
    @abstractmethod
    def generate(self, *, system: str, user: str, temperature: Optional[float] = None) -> str:
        """
        Must return the complete model output as TEXT (JSON is parsed in LLMClient).
        """
        raise NotImplementedError
