from __future__ import annotations
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _string_list(v: Any) -> List[str]:
    if not isinstance(v, list):
        return []
    return [str(x).strip() for x in v if x is not None and str(x).strip()]


class AIClassification(BaseModel):
    """Raw classification as returned by the model; normalized by the classifier."""
    type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    priority: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    entities: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def tags_must_be_list(cls, v):
        return _string_list(v)

    @field_validator("entities", mode="before")
    @classmethod
    def entities_must_be_dict(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator("type", "title", "description", "due_date", "start_time", "end_time", "priority", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class AssistInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    knowledge_points: List[str] = Field(default_factory=list, alias="knowledgePoints")
    reference_info: str = Field(default="", alias="referenceInfo")

    @field_validator("knowledge_points", mode="before")
    @classmethod
    def points_must_be_list(cls, v):
        return _string_list(v)

    @field_validator("reference_info", mode="before")
    @classmethod
    def reference_as_text(cls, v):
        return "" if v is None else str(v).strip()


class QueryIntentResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    types: List[str] = Field(default_factory=list)
    statuses: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    search_text: Optional[str] = Field(default=None, alias="searchText")

    @field_validator("types", "statuses", "tags", mode="before")
    @classmethod
    def lists_only(cls, v):
        return _string_list(v)
