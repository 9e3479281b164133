import logging

from fastapi import APIRouter, Depends, HTTPException

from api import state
from api.dependencies import get_item_store, get_scheduler, get_task_store, get_user_id
from api.workers import AssistScheduler
from storage.base import AssistTaskStore, ItemStore

router = APIRouter(prefix="/ai-assist")
logger = logging.getLogger(__name__)


@router.get("/status/{item_id}")
async def assist_status(
    item_id: str,
    task_store: AssistTaskStore = Depends(get_task_store),
) -> dict:
    """Latest assist task state for an item, polled by clients until terminal."""
    view = await task_store.get_item_assist_status(item_id)
    return view.to_dict()


@router.post("/items/{item_id}")
async def request_assist(
    item_id: str,
    user_id: str = Depends(get_user_id),
    item_store: ItemStore = Depends(get_item_store),
) -> dict:
    """Queue assist work for an item regardless of its keywords."""
    item = await item_store.get_item(user_id, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item {item_id} not found")
    if state.task_processor is None:
        raise HTTPException(status_code=503, detail="assist task processor is not initialized")
    task = await state.task_processor.create_task(item.id, user_id, item.raw_text or item.title or "")
    return {"created": task is not None, "task_id": task.id if task else None}


@router.post("/process")
async def process_now(scheduler: AssistScheduler = Depends(get_scheduler)) -> dict:
    try:
        summary = await scheduler.trigger()
    except Exception as e:
        logger.error(f"Manual assist processing failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "ok", **summary}


@router.get("/stats")
async def assist_stats(
    task_store: AssistTaskStore = Depends(get_task_store),
) -> dict:
    stats = await task_store.get_stats()
    stats["scheduler_running"] = state.scheduler.running if state.scheduler else False
    return stats
