"""Domain models for calls, customers and AI-extracted call data."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Retell call records (external, read-only)
# ============================================================================

class CallStatus(str, Enum):
    """Lifecycle states reported by the voice-agent platform."""

    REGISTERED = "registered"
    RINGING = "ringing"
    ONGOING = "ongoing"
    ENDED = "ended"


class CallRecord(BaseModel):
    """A call as returned by the Retell API.

    ``transcript`` is only populated when the call is fetched individually;
    list responses leave it empty.
    """

    model_config = ConfigDict(extra="ignore")

    call_id: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    call_type: Optional[str] = None
    direction: Optional[str] = None
    call_status: Optional[str] = None
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    duration_ms: Optional[int] = None
    transcript: Optional[str] = None
    recording_url: Optional[str] = None
    recording_multi_channel_url: Optional[str] = None
    scrubbed_recording_url: Optional[str] = None
    scrubbed_recording_multi_channel_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    call_cost: Optional[Dict[str, Any]] = None
    disconnection_reason: Optional[str] = None
    call_analysis: Optional[Dict[str, Any]] = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, value: Any) -> Any:
        return value or {}

    @property
    def phone_number(self) -> Optional[str]:
        return self.to_number or self.from_number or None

    @property
    def is_ended(self) -> bool:
        return self.call_status == CallStatus.ENDED.value

    @property
    def has_transcript(self) -> bool:
        return bool(self.transcript and self.transcript.strip())

    @property
    def duration_seconds(self) -> int:
        if not self.duration_ms:
            return 0
        return round(self.duration_ms / 1000)

    @property
    def started_at(self) -> Optional[datetime]:
        if self.start_timestamp is None:
            return None
        return datetime.fromtimestamp(self.start_timestamp / 1000, tz=timezone.utc)

    @property
    def best_recording_url(self) -> Optional[str]:
        return (
            self.recording_url
            or self.recording_multi_channel_url
            or self.scrubbed_recording_url
            or self.scrubbed_recording_multi_channel_url
        )


# ============================================================================
# AI extraction output
# ============================================================================

class ScheduledEvent(BaseModel):
    """An appointment, meeting or callback mentioned during a call."""

    model_config = ConfigDict(extra="ignore")

    date: Optional[str] = Field(None, description="YYYY-MM-DD when known")
    time: Optional[str] = Field(None, description="Best-effort HH:MM or as spoken")
    timezone: Optional[str] = None
    duration: Optional[int] = Field(None, description="Duration in minutes")
    type: str = Field(default="appointment")
    description: str = Field(default="")
    location: Optional[str] = None

    @field_validator("date", "time", "timezone", "location", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("", "null", "none", "n/a"):
            return None
        return value

    @field_validator("duration", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> str:
        return value or "appointment"

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, value: Any) -> str:
        return value or ""


class ExtractedCallData(BaseModel):
    """Structured data extracted from a call transcript by the LLM.

    Accepts both the camelCase keys the extraction prompt asks for and the
    snake_case field names used for storage.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    customer_name: Optional[str] = Field(None, alias="customerName")
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    intent: str = "general"
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    summary: str = ""
    key_points: List[str] = Field(default_factory=list, alias="keyPoints")
    action_items: List[str] = Field(default_factory=list, alias="actionItems")
    next_steps: Optional[str] = Field(None, alias="nextSteps")
    scheduled_events: List[ScheduledEvent] = Field(default_factory=list, alias="scheduledEvents")
    important_dates: List[str] = Field(default_factory=list, alias="importantDates")
    deadlines: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("customer_name", "email", "phone", "company", "next_steps", mode="before")
    @classmethod
    def _null_strings(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("", "null", "none", "unknown"):
            return None
        return value

    @field_validator("sentiment", mode="before")
    @classmethod
    def _normalize_sentiment(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in ("positive", "neutral", "negative"):
            return value.strip().lower()
        return "neutral"

    @field_validator("intent", mode="before")
    @classmethod
    def _default_intent(cls, value: Any) -> str:
        return value or "general"

    @field_validator(
        "key_points", "action_items", "scheduled_events", "important_dates", "deadlines",
        mode="before",
    )
    @classmethod
    def _list_or_empty(cls, value: Any) -> Any:
        if value is None:
            return []
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _dict_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @property
    def is_degraded(self) -> bool:
        return bool(self.metadata.get("degraded"))


# ============================================================================
# Persisted documents
# ============================================================================

class Customer(BaseModel):
    """A caller, keyed by phone number."""

    id: str
    phone_number: str
    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    total_calls: int = 0
    last_call_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("total_calls", mode="before")
    @classmethod
    def _zero_when_missing(cls, value: Any) -> Any:
        return value or 0

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, value: Any) -> Any:
        return value or {}


class CallDocument(BaseModel):
    """A processed call, stored once per Retell call id."""

    id: str
    customer_id: str
    phone_number: str
    retell_call_id: str
    date: datetime = Field(default_factory=utcnow)
    duration: int = 0
    transcript: str
    extracted_data: ExtractedCallData
    status: Literal["completed", "failed", "no-answer"] = "completed"


class EventStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ScheduledEventRecord(ScheduledEvent):
    """A scheduled event persisted with links to its call and customer."""

    id: str
    customer_id: str
    call_id: str
    phone_number: str
    created_at: datetime = Field(default_factory=utcnow)
    status: EventStatus = EventStatus.SCHEDULED


# ============================================================================
# Pipeline results
# ============================================================================

class ProcessedCall(BaseModel):
    """Outcome of reconciling one call.

    ``warnings`` names the non-fatal steps that failed; an empty list means
    every write succeeded.
    """

    customer: Customer
    call_record: CallDocument
    warnings: List[str] = Field(default_factory=list)


class BatchRunResult(BaseModel):
    """Counters for one pass of the batch processor."""

    processed: int = 0
    failed: int = 0
    skipped: int = 0
    total_fetched: int = 0
    eligible: int = 0
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    skipped_reason: Optional[str] = None


class CustomerKnowledgeBase(BaseModel):
    """Everything known about a caller, plus a prompt-ready context block."""

    customer: Optional[Customer] = None
    scheduled_events: List[ScheduledEventRecord] = Field(default_factory=list)
    call_history: List[CallDocument] = Field(default_factory=list)
    context: Optional[str] = None


class QuestionStats(BaseModel):
    question: str
    count: int = 0
    percentage: float = 0.0
