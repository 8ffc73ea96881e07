"""Tests for the FastAPI surface with dependency overrides."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from call_center.api.main import app, get_call_processor
from call_center.core.config import get_settings
from call_center.core.exceptions import (
    AnalysisInProgressError,
    RateLimitExceededError,
    RetellAPIError,
)
from call_center.core.models import QuestionStats, ScheduledEvent
from call_center.services.call_processor import CallProcessor

RETELL_METHODS = (
    "list_calls",
    "list_all_calls",
    "get_call",
    "get_active_calls",
    "create_phone_call",
    "end_call",
    "list_agents",
    "get_agent",
    "update_agent",
    "list_phone_numbers",
    "close",
)


@pytest.fixture
def retell():
    client = MagicMock()
    for name in RETELL_METHODS:
        setattr(client, name, AsyncMock())
    return client


@pytest.fixture
def processor(settings, repository, reconciler, retell):
    return CallProcessor(retell, repository, reconciler, settings=settings)


@pytest.fixture
def api(settings, processor):
    app.dependency_overrides[get_call_processor] = lambda: processor
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestProcessing:
    def test_health(self, api):
        response = api.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["processor"]["running"] is False
        assert body["processor"]["stats"]["processed"] == 0

    def test_process_calls(self, api, retell):
        retell.list_all_calls.return_value = []
        response = api.post("/process-calls")
        assert response.status_code == 200
        assert response.json()["processed"] == 0
        assert response.json()["skipped_reason"] is None

    def test_process_call_success(self, api, retell, call_factory):
        retell.get_call.return_value = call_factory("c1", transcript="User: this is Alice")
        response = api.post("/process-call/c1")
        assert response.status_code == 200
        body = response.json()
        assert body["customer"]["name"] == "Alice"
        assert body["call_record"]["retell_call_id"] == "c1"
        assert body["warnings"] == []

    def test_process_call_without_transcript(self, api, retell, call_factory):
        retell.get_call.return_value = call_factory("c1")
        response = api.post("/process-call/c1")
        assert response.status_code == 400
        assert "no transcript" in response.json()["detail"]

    def test_process_call_twice_conflicts(self, api, retell, call_factory):
        retell.get_call.return_value = call_factory("c1", transcript="User: hi")
        assert api.post("/process-call/c1").status_code == 200
        response = api.post("/process-call/c1")
        assert response.status_code == 409

    def test_process_call_platform_error(self, api, retell):
        retell.get_call.side_effect = RetellAPIError(404, {"error_message": "not found"}, "/v2/get-call/x")
        assert api.post("/process-call/x").status_code == 502


class TestQuestionStatistics:
    def test_success(self, api, processor):
        processor.get_question_statistics = AsyncMock(
            return_value=[QuestionStats(question="Q", count=2, percentage=50.0)]
        )
        response = api.post("/question-statistics", json={"questions": ["Q"]})
        assert response.status_code == 200
        assert response.json() == [{"question": "Q", "count": 2, "percentage": 50.0}]

    def test_in_progress(self, api, processor):
        processor.get_question_statistics = AsyncMock(side_effect=AnalysisInProgressError())
        response = api.post("/question-statistics", json={"questions": ["Q"]})
        assert response.status_code == 409

    def test_rate_limited(self, api, processor):
        processor.get_question_statistics = AsyncMock(side_effect=RateLimitExceededError(45))
        response = api.post("/question-statistics", json={"questions": ["Q"]})
        assert response.status_code == 429
        assert response.headers["retry-after"] == "45"
        assert "45 seconds" in response.json()["detail"]

    def test_empty_catalog_rejected(self, api):
        assert api.post("/question-statistics", json={"questions": []}).status_code == 422


class TestCallAdministration:
    def test_get_call_not_found(self, api, retell):
        retell.get_call.side_effect = RetellAPIError(404, "missing", "/v2/get-call/x")
        assert api.get("/calls/x").status_code == 404

    def test_platform_failure_is_bad_gateway(self, api, retell):
        retell.list_calls.side_effect = RetellAPIError(500, "oops", "/v2/list-calls")
        assert api.get("/calls").status_code == 502

    def test_active_calls_use_target_agents(self, api, retell, settings, call_factory):
        settings.target_agent_ids = "a1,a2"
        retell.get_active_calls.return_value = [call_factory("live", call_status="ongoing")]

        response = api.get("/calls/active")

        assert response.status_code == 200
        assert response.json()[0]["call_id"] == "live"
        retell.get_active_calls.assert_awaited_once_with(["a1", "a2"])

    def test_start_call(self, api, retell, call_factory):
        retell.create_phone_call.return_value = call_factory("new", call_status="registered")
        response = api.post("/calls", json={"to_number": "+15557654321"})
        assert response.status_code == 202
        assert response.json()["call_id"] == "new"

    def test_start_call_without_from_number(self, api, retell):
        retell.create_phone_call.side_effect = ValueError("from_number is required")
        assert api.post("/calls", json={"to_number": "+15557654321"}).status_code == 400

    def test_end_call(self, api, retell):
        response = api.post("/calls/c1/end")
        assert response.json() == {"status": "ending", "call_id": "c1"}
        retell.end_call.assert_awaited_once_with("c1")

    def test_update_agent_requires_changes(self, api):
        assert api.patch("/agents/a1", json={}).status_code == 400

    def test_update_agent(self, api, retell):
        retell.update_agent.return_value = {"agent_id": "a1", "language": "es-ES"}
        response = api.patch("/agents/a1", json={"language": "es-ES"})
        assert response.status_code == 200
        retell.update_agent.assert_awaited_once_with("a1", {"language": "es-ES"})


class TestPersistedData:
    async def seed(self, repository):
        customer = await repository.create_customer("+15551234567", name="Alice")
        await repository.save_scheduled_event(
            ScheduledEvent(date="2099-03-01", time="9:00 AM"), customer.id, "call_1", customer.phone_number
        )
        return customer

    async def test_customers_and_events(self, api, repository):
        customer = await self.seed(repository)

        assert [c["id"] for c in api.get("/customers").json()] == [customer.id]
        assert [e["date"] for e in api.get("/events/upcoming").json()] == ["2099-03-01"]

        knowledge_base = api.get("/customers/+15551234567/knowledge-base").json()
        assert knowledge_base["customer"]["name"] == "Alice"
        assert "APPOINTMENT 1" in knowledge_base["context"]

        context = api.get("/customers/15551234567/context").json()
        assert context["context"].startswith("CUSTOMER INFORMATION:")

    async def test_delete_customer(self, api, repository):
        customer = await self.seed(repository)

        response = api.delete(f"/customers/{customer.id}")

        assert response.json() == {"status": "deleted", "customer_id": customer.id, "deleted_calls": 0}
        assert api.get("/customers").json() == []

    def test_call_records_empty(self, api):
        assert api.get("/call-records").json() == []
