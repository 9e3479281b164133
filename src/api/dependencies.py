from typing import Optional

from fastapi import Header, HTTPException

from api import state
from api.backend import IntakeService
from api.workers import AssistScheduler
from smart_assist.relevance import RelevanceEngine
from storage.base import AssistTaskStore, ItemStore

DEFAULT_USER_ID = "default"


def _require(value, name: str):
    if value is None:
        raise HTTPException(status_code=503, detail=f"{name} is not initialized")
    return value


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    return (x_user_id or "").strip() or DEFAULT_USER_ID


def get_item_store() -> ItemStore:
    return _require(state.item_store, "item store")


def get_task_store() -> AssistTaskStore:
    return _require(state.task_store, "assist task store")


def get_intake_service() -> IntakeService:
    return _require(state.intake_service, "intake service")


def get_relevance_engine() -> RelevanceEngine:
    return _require(state.relevance_engine, "relevance engine")


def get_scheduler() -> AssistScheduler:
    return _require(state.scheduler, "assist scheduler")
