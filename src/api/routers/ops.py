import logging
import os

from fastapi import APIRouter, Depends, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from api import state
from api.dependencies import get_task_store
from api.metrics import ASSIST_QUEUE_DEPTH
from storage import db
from storage.base import AssistTaskStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(task_store: AssistTaskStore = Depends(get_task_store)) -> dict:
    """Health check endpoint for container orchestration."""
    health = {
        "status": "healthy",
        "profile": os.getenv("DEPLOYMENT_PROFILE", "unknown"),
        "storage": "postgres" if db.is_configured() else "in-memory",
        "scheduler_running": state.scheduler.running if state.scheduler else False,
    }

    if db.is_configured():
        try:
            db_health = await db.health_check()
            health["database"] = db_health
            if db_health["status"] != "healthy":
                health["status"] = "degraded"
        except Exception as e:
            health["status"] = "degraded"
            health["database"] = {"status": "error", "error": str(e)}

    try:
        health["assist_queue_size"] = await task_store.get_pending_count()
    except Exception as e:
        health["status"] = "degraded"
        health["assist_queue_size"] = 0
        logger.warning(f"Could not read assist queue size: {e}")
    return health


@router.get("/metrics")
async def metrics(task_store: AssistTaskStore = Depends(get_task_store)) -> Response:
    """
    Prometheus scrape endpoint.
    """
    try:
        ASSIST_QUEUE_DEPTH.set(await task_store.get_pending_count())
    except Exception as e:
        logger.warning(f"Could not refresh assist queue depth: {e}")

    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
