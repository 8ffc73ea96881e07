"""
Shared pytest configuration and fixtures for pipeline tests.

Provides an in-memory document store, a scripted LLM provider and a
settings object that never reads the developer's .env file.
"""

import copy
import json
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from call_center.core.config import Settings
from call_center.core.db import DocumentStore
from call_center.core.models import CallRecord
from call_center.llm.llm_providers import LLMProvider
from call_center.llm.transcript_extractor import TranscriptExtractor
from call_center.services.call_reconciler import CallReconciler
from call_center.services.customer_service import CustomerRepository


# =============================================================================
# Fakes
# =============================================================================

class InMemoryDocumentStore(DocumentStore):
    """DocumentStore backed by dicts. ``fail_on`` holds (operation, collection) pairs that raise."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.fail_on = set()

    def _check(self, operation: str, collection: str) -> None:
        if (operation, collection) in self.fail_on:
            raise RuntimeError(f"{operation} on {collection} failed")

    def docs(self, collection: str) -> List[Dict[str, Any]]:
        return list(self.collections.get(collection, {}).values())

    async def query(self, collection, filters=None, order_by=None, descending=False, limit=None):
        self._check("query", collection)
        rows = [
            copy.deepcopy(doc)
            for doc in self.collections.get(collection, {}).values()
            if all(doc.get(key) == value for key, value in (filters or {}).items())
        ]
        if order_by:
            rows.sort(key=lambda doc: (doc.get(order_by) is None, doc.get(order_by) or ""), reverse=descending)
        if limit:
            rows = rows[:limit]
        return rows

    async def get(self, collection, doc_id):
        self._check("get", collection)
        doc = self.collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection, doc_id, data):
        self._check("set", collection)
        self.collections.setdefault(collection, {})[doc_id] = {**copy.deepcopy(data), "id": doc_id}

    async def update(self, collection, doc_id, data):
        self._check("update", collection)
        docs = self.collections.get(collection, {})
        if doc_id not in docs:
            raise KeyError(f"{collection}/{doc_id} not found")
        docs[doc_id].update(copy.deepcopy(data))

    async def delete(self, collection, doc_id):
        self._check("delete", collection)
        self.collections.get(collection, {}).pop(doc_id, None)


Reply = Union[str, Dict[str, Any], Exception]


class ScriptedProvider(LLMProvider):
    """LLM provider that answers from a script and records every request.

    ``replies`` maps a model name to its reply; ``default`` answers any
    other model. A reply may be a string, a dict (sent as JSON) or an
    exception to raise. A callable default receives the user message.
    """

    def __init__(
        self,
        replies: Optional[Dict[str, Reply]] = None,
        default: Union[Reply, Callable[[str], Reply], None] = None,
    ):
        super().__init__("scripted")
        self.replies = replies or {}
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    def generate_response(
        self,
        system_prompt,
        user_message,
        temperature=0.3,
        max_tokens=None,
        model=None,
        json_mode=False,
    ):
        self.calls.append({"model": model, "user_message": user_message, "json_mode": json_mode})
        reply = self.replies.get(model, self.default)
        if callable(reply) and not isinstance(reply, Exception):
            reply = reply(user_message)
        if reply is None:
            raise RuntimeError(f"No scripted reply for model {model}")
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply

    @property
    def models_called(self) -> List[str]:
        return [call["model"] for call in self.calls]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings():
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        retell_api_key="test-retell-key",
        retell_from_number="+15550000000",
        openai_api_key="sk-test",
        gemini_api_key="gemini-test",
        question_min_interval_seconds=0,
        rate_limit_base_delay_seconds=0,
        auto_process_calls=False,
    )


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def extraction_reply():
    """A well-formed extraction response in the camelCase format the prompt asks for."""
    return {
        "customerName": "Alice",
        "email": None,
        "phone": None,
        "company": None,
        "intent": "appointment",
        "sentiment": "positive",
        "summary": "Alice called to book a checkup. An appointment was offered for next week.",
        "keyPoints": ["Wants a checkup"],
        "actionItems": ["Send confirmation"],
        "nextSteps": "Confirm the booking",
        "scheduledEvents": [],
        "importantDates": [],
        "deadlines": [],
        "metadata": {"questionsAsked": []},
    }


@pytest.fixture
def extraction_provider(extraction_reply):
    return ScriptedProvider(default=extraction_reply)


@pytest.fixture
def extractor(extraction_provider, settings):
    return TranscriptExtractor(provider=extraction_provider, settings=settings)


@pytest.fixture
def repository(store, extractor):
    return CustomerRepository(store=store, extractor=extractor)


@pytest.fixture
def reconciler(repository, extractor):
    return CallReconciler(repository, extractor)


def make_call(call_id: str, **overrides: Any) -> CallRecord:
    """Build a Retell call record with sensible defaults for an ended inbound call."""
    data: Dict[str, Any] = {
        "call_id": call_id,
        "agent_id": "agent_1",
        "call_status": "ended",
        "from_number": "+15551234567",
        "to_number": None,
        "duration_ms": 65_400,
        "transcript": None,
    }
    data.update(overrides)
    return CallRecord.model_validate(data)


@pytest.fixture
def call_factory():
    return make_call
