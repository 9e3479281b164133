import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.dependencies import get_relevance_engine, get_user_id
from smart_assist.relevance import (
    RelevanceEngine,
    get_external_recommendations,
    should_trigger_smart_assist,
)

router = APIRouter(prefix="/smart-assist")
logger = logging.getLogger(__name__)


class TopicIn(BaseModel):
    topic: str


class TriggerCheckIn(BaseModel):
    title: str = ""
    tags: List[str] = Field(default_factory=list)
    type: str = ""
    content: str = ""
    manual: bool = False


def _topic(payload: TopicIn) -> str:
    topic = payload.topic.strip()
    if not topic:
        raise HTTPException(status_code=400, detail="topic must not be empty")
    return topic


@router.post("/related")
async def related_items(
    payload: TopicIn,
    user_id: str = Depends(get_user_id),
    engine: RelevanceEngine = Depends(get_relevance_engine),
) -> dict:
    topic = _topic(payload)
    try:
        related = await engine.get_related_items(user_id, topic)
    except Exception as e:
        logger.error(f"Error finding related items: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"topic": topic, "items": related}


@router.post("/gap-analysis")
async def gap_analysis(
    payload: TopicIn,
    user_id: str = Depends(get_user_id),
    engine: RelevanceEngine = Depends(get_relevance_engine),
) -> dict:
    topic = _topic(payload)
    try:
        analysis = await engine.analyze_knowledge_gap(user_id, topic)
    except Exception as e:
        logger.error(f"Error analyzing knowledge gap: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"topic": topic, "analysis": analysis}


@router.post("/recommendations")
async def recommendations(payload: TopicIn) -> dict:
    topic = _topic(payload)
    return {"topic": topic, "recommendations": get_external_recommendations(topic)}


@router.post("/should-trigger")
async def should_trigger(payload: TriggerCheckIn) -> dict:
    return {
        "trigger": should_trigger_smart_assist(
            payload.title, payload.tags, payload.type, payload.content, manual=payload.manual
        )
    }
