import logging
import time
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.backend import IntakeService, TemplateNotFound
from api.dependencies import get_intake_service, get_user_id
from api.metrics import (
    CLASSIFICATION_FALLBACK_TOTAL,
    ITEMS_CLASSIFIED_TOTAL,
    REQUEST_LATENCY_SECONDS,
    REQUESTS_TOTAL,
)
from classification.templates import DEFAULT_TEMPLATES
from cogniflow.models import OutcomeKind

router = APIRouter()
logger = logging.getLogger(__name__)


class IntakeIn(BaseModel):
    text: str


class TemplateItemIn(BaseModel):
    trigger_word: str
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    sub_items: Optional[List[str]] = None


@router.post("/intake")
async def submit_intake(
    payload: IntakeIn,
    user_id: str = Depends(get_user_id),
    service: IntakeService = Depends(get_intake_service),
) -> dict:
    start = time.time()
    text = payload.text.strip()
    if not text:
        REQUESTS_TOTAL.labels(endpoint="/intake", status="400").inc()
        raise HTTPException(status_code=400, detail="text must not be empty")

    logger.info(f"Received intake from user {user_id}: {text[:50]}")
    try:
        outcome, result = await service.submit(user_id, text)
    except Exception as e:
        logger.error(f"Error processing intake: {e}")
        REQUESTS_TOTAL.labels(endpoint="/intake", status="500").inc()
        raise HTTPException(status_code=500, detail=str(e))

    if outcome.kind in (OutcomeKind.ITEM, OutcomeKind.URL):
        ITEMS_CLASSIFIED_TOTAL.labels(type=result["item"].type).inc()
        if outcome.used_fallback:
            CLASSIFICATION_FALLBACK_TOTAL.inc()

    REQUESTS_TOTAL.labels(endpoint="/intake", status="200").inc()
    REQUEST_LATENCY_SECONDS.labels(endpoint="/intake").observe(time.time() - start)
    return result


@router.get("/templates")
async def list_templates() -> dict:
    return {"templates": [asdict(t) for t in DEFAULT_TEMPLATES]}


@router.post("/intake/template")
async def create_from_template(
    payload: TemplateItemIn,
    user_id: str = Depends(get_user_id),
    service: IntakeService = Depends(get_intake_service),
) -> dict:
    if not payload.title.strip():
        raise HTTPException(status_code=400, detail="title must not be empty")
    try:
        item = await service.create_from_template(
            user_id,
            payload.trigger_word,
            payload.title.strip(),
            payload.description,
            payload.tags,
            payload.sub_items,
        )
    except TemplateNotFound:
        raise HTTPException(status_code=404, detail=f"Unknown template: {payload.trigger_word}")
    except Exception as e:
        logger.error(f"Error creating item from template: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    ITEMS_CLASSIFIED_TOTAL.labels(type=item.type).inc()
    return {"item": item}
