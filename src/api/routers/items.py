import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.backend import IntakeService
from api.dependencies import get_intake_service, get_item_store, get_user_id
from cogniflow.models import Item, ItemDraft, ItemType, Priority, QueryIntent, SubItem
from storage.base import ItemStore

router = APIRouter()
logger = logging.getLogger(__name__)


class ItemUpdateIn(BaseModel):
    type: Optional[ItemType] = None
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[str] = None
    tags: Optional[List[str]] = None
    entities: Optional[Dict[str, Any]] = None
    sub_items: Optional[List[SubItem]] = None


class QueryIn(QueryIntent):
    text: Optional[str] = None


def _found(item: Optional[Item], item_id: str) -> Item:
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item {item_id} not found")
    return item


@router.post("/items")
async def create_item(
    payload: ItemDraft,
    user_id: str = Depends(get_user_id),
    service: IntakeService = Depends(get_intake_service),
) -> dict:
    try:
        item, task = await service.create_item(user_id, payload)
    except Exception as e:
        logger.error(f"Error creating item: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"item": item, "assist_task_id": task.id if task else None}


@router.get("/items")
async def list_items(
    type: Optional[str] = None,
    status: Optional[str] = None,
    tag: Optional[str] = None,
    archived: bool = False,
    limit: int = 100,
    user_id: str = Depends(get_user_id),
    store: ItemStore = Depends(get_item_store),
) -> dict:
    items = await store.list_items(
        user_id, item_type=type, status=status, tag=tag, archived=archived, limit=limit
    )
    return {"items": items, "total": len(items)}


@router.get("/items/search")
async def search_items(
    q: str,
    user_id: str = Depends(get_user_id),
    service: IntakeService = Depends(get_intake_service),
) -> dict:
    if not q.strip():
        raise HTTPException(status_code=400, detail="q must not be empty")
    items = await service.search(user_id, q)
    return {"items": items, "total": len(items)}


@router.post("/items/query")
async def query_items(
    payload: QueryIn,
    user_id: str = Depends(get_user_id),
    service: IntakeService = Depends(get_intake_service),
) -> dict:
    intent = QueryIntent(**payload.model_dump(exclude={"text"}))
    try:
        return await service.run_query(user_id, text=payload.text, intent=intent)
    except Exception as e:
        logger.error(f"Error running query: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/items/{item_id}")
async def get_item(
    item_id: str,
    user_id: str = Depends(get_user_id),
    store: ItemStore = Depends(get_item_store),
) -> dict:
    return {"item": _found(await store.get_item(user_id, item_id), item_id)}


@router.put("/items/{item_id}")
async def update_item(
    item_id: str,
    payload: ItemUpdateIn,
    user_id: str = Depends(get_user_id),
    service: IntakeService = Depends(get_intake_service),
) -> dict:
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    item = await service.update_item(user_id, item_id, changes)
    return {"item": _found(item, item_id)}


@router.delete("/items/{item_id}")
async def delete_item(
    item_id: str,
    user_id: str = Depends(get_user_id),
    service: IntakeService = Depends(get_intake_service),
) -> dict:
    _found(await service.delete_item(user_id, item_id), item_id)
    return {"status": "deleted", "id": item_id}


@router.post("/items/{item_id}/archive")
async def archive_item(
    item_id: str,
    user_id: str = Depends(get_user_id),
    service: IntakeService = Depends(get_intake_service),
) -> dict:
    return {"item": _found(await service.archive_item(user_id, item_id), item_id)}


@router.post("/items/{item_id}/unarchive")
async def unarchive_item(
    item_id: str,
    user_id: str = Depends(get_user_id),
    service: IntakeService = Depends(get_intake_service),
) -> dict:
    return {"item": _found(await service.unarchive_item(user_id, item_id), item_id)}
