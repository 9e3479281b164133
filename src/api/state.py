from typing import Optional

from api.backend import IntakeService
from api.workers import AssistScheduler
from assist.task_processor import AssistTaskProcessor
from smart_assist.relevance import RelevanceEngine
from storage.base import AssistTaskStore, ItemStore

# Global instances initialized at startup
item_store: Optional[ItemStore] = None
task_store: Optional[AssistTaskStore] = None
intake_service: Optional[IntakeService] = None
task_processor: Optional[AssistTaskProcessor] = None
relevance_engine: Optional[RelevanceEngine] = None
scheduler: Optional[AssistScheduler] = None
