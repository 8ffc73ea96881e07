"""Call Center Core - Configuration, Models, and Persistence."""

from .config import Settings, get_settings
from .db import (
    CALLS_COLLECTION,
    CUSTOMERS_COLLECTION,
    SCHEDULED_EVENTS_COLLECTION,
    DocumentStore,
    SupabaseDocumentStore,
    get_document_store,
)
from .models import (
    BatchRunResult,
    CallDocument,
    CallRecord,
    CallStatus,
    Customer,
    CustomerKnowledgeBase,
    ExtractedCallData,
    ProcessedCall,
    QuestionStats,
    ScheduledEvent,
    ScheduledEventRecord,
)

__all__ = [
    "Settings",
    "get_settings",
    "DocumentStore",
    "SupabaseDocumentStore",
    "get_document_store",
    "CUSTOMERS_COLLECTION",
    "CALLS_COLLECTION",
    "SCHEDULED_EVENTS_COLLECTION",
    "BatchRunResult",
    "CallDocument",
    "CallRecord",
    "CallStatus",
    "Customer",
    "CustomerKnowledgeBase",
    "ExtractedCallData",
    "ProcessedCall",
    "QuestionStats",
    "ScheduledEvent",
    "ScheduledEventRecord",
]
