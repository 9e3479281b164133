import logging
import os
from typing import Callable, Optional

from fastapi import FastAPI

from api import state
from api.backend import IntakeService
from api.routers import ai_assist, intake, items, ops, smart_assist
from api.workers import AssistScheduler
from assist.assist_service import AssistService
from assist.task_processor import AssistTaskProcessor
from classification.intent_classifier import IntentClassifier
from classification.url_processor import UrlContent, fetch_url_content
from llm.llm_client import LLMClient
from scheduling.conflicts import ConflictResolver
from search.web_search import WebSearchClient
from smart_assist.relevance import RelevanceEngine
from storage import db
from storage.assist_task_store import PostgresAssistTaskStore
from storage.base import AssistTaskStore, ItemStore
from storage.item_store import PostgresItemStore
from storage.memory import InMemoryAssistTaskStore, InMemoryItemStore

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

ASSIST_SCHEDULER_ENABLED = os.getenv("ASSIST_SCHEDULER_ENABLED", "true").lower() in {
    "1",
    "true",
    "yes",
}

app = FastAPI(title="CogniFlow")
app.include_router(ops.router)
app.include_router(intake.router)
app.include_router(items.router)
app.include_router(ai_assist.router)
app.include_router(smart_assist.router)


def build_services(
    item_store: ItemStore,
    task_store: AssistTaskStore,
    llm: Optional[LLMClient] = None,
    search_client: Optional[WebSearchClient] = None,
    fetch_url: Callable[[str], UrlContent] = fetch_url_content,
    task_delay_s: Optional[float] = None,
) -> None:
    """Wire the service graph and publish it through api.state."""
    llm = llm if llm is not None else LLMClient()
    assist_service = AssistService(llm, search_client)
    processor = AssistTaskProcessor(item_store, task_store, assist_service)
    if task_delay_s is not None:
        processor.task_delay_s = task_delay_s

    state.item_store = item_store
    state.task_store = task_store
    state.task_processor = processor
    state.intake_service = IntakeService(
        IntentClassifier(llm, fetch_url=fetch_url),
        item_store,
        task_store,
        ConflictResolver(item_store),
        processor,
    )
    state.relevance_engine = RelevanceEngine(item_store, llm)
    state.scheduler = AssistScheduler(processor)


@app.on_event("startup")
async def startup() -> None:
    if state.intake_service is None:
        if db.is_configured():
            await db.init_db_pool()
            await db.init_schema()
            build_services(PostgresItemStore(), PostgresAssistTaskStore())
            logger.info("Using PostgreSQL stores")
        else:
            build_services(InMemoryItemStore(), InMemoryAssistTaskStore())
            logger.warning("DATABASE_URL not set, using in-memory stores (data is not persisted)")

    if ASSIST_SCHEDULER_ENABLED:
        state.scheduler.start()
    else:
        logger.info("Assist scheduler disabled")


@app.on_event("shutdown")
async def shutdown() -> None:
    if state.scheduler is not None:
        await state.scheduler.stop()
    if db.is_configured():
        await db.close_db_pool()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
