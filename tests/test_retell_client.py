"""Tests for the Retell REST client using httpx.MockTransport."""

import json

import httpx
import pytest

from call_center.core.exceptions import RetellAPIError
from call_center.services.retell_client import RetellClient


def make_client(settings, handler):
    return RetellClient(settings, transport=httpx.MockTransport(handler))


def call_json(call_id, **overrides):
    data = {"call_id": call_id, "call_status": "ended", "from_number": "+15551234567"}
    data.update(overrides)
    return data


class TestListCalls:
    async def test_posts_filter_criteria_with_auth(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=[call_json("c1")])

        async with make_client(settings, handler) as client:
            calls = await client.list_calls(agent_id="agent_1", statuses=["ended"], limit=10)

        assert seen["method"] == "POST"
        assert seen["path"] == "/v2/list-calls"
        assert seen["auth"] == "Bearer test-retell-key"
        assert seen["body"] == {
            "filter_criteria": {"agent_id": ["agent_1"], "call_status": ["ended"]},
            "limit": 10,
        }
        assert [c.call_id for c in calls] == ["c1"]
        assert calls[0].transcript is None

    async def test_accepts_wrapped_list(self, settings):
        def handler(request):
            return httpx.Response(200, json={"calls": [call_json("c1"), call_json("c2")]})

        async with make_client(settings, handler) as client:
            calls = await client.list_calls()
        assert len(calls) == 2

    async def test_paginates_until_short_batch(self, settings):
        offsets = []

        def handler(request):
            body = json.loads(request.content)
            offset = body.get("offset", 0)
            offsets.append(offset)
            total = 5
            page = [call_json(f"c{i}") for i in range(offset, min(offset + body["limit"], total))]
            return httpx.Response(200, json=page)

        async with make_client(settings, handler) as client:
            calls = await client.list_all_calls(page_size=2)

        assert offsets == [0, 2, 4]
        assert [c.call_id for c in calls] == ["c0", "c1", "c2", "c3", "c4"]

    async def test_stops_on_empty_batch(self, settings):
        requests = []

        def handler(request):
            requests.append(request)
            body = json.loads(request.content)
            if body.get("offset"):
                return httpx.Response(200, json=[])
            return httpx.Response(200, json=[call_json("c0"), call_json("c1")])

        async with make_client(settings, handler) as client:
            calls = await client.list_all_calls(page_size=2)

        assert len(calls) == 2
        assert len(requests) == 2


class TestCallOperations:
    async def test_get_call_includes_transcript(self, settings):
        def handler(request):
            assert request.url.path == "/v2/get-call/c1"
            return httpx.Response(200, json=call_json("c1", transcript="User: hi"))

        async with make_client(settings, handler) as client:
            call = await client.get_call("c1")
        assert call.has_transcript

    async def test_error_status_raises(self, settings):
        def handler(request):
            return httpx.Response(404, json={"error_message": "Call not found"})

        async with make_client(settings, handler) as client:
            with pytest.raises(RetellAPIError) as exc_info:
                await client.get_call("missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.body == {"error_message": "Call not found"}
        assert exc_info.value.path == "/v2/get-call/missing"

    async def test_end_call(self, settings):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(204)

        async with make_client(settings, handler) as client:
            assert await client.end_call("c1") is None

        assert seen == {"method": "PATCH", "path": "/v2/update-call/c1", "body": {"end_call": True}}

    async def test_create_phone_call_uses_defaults(self, settings):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json=call_json("c9", call_status="registered"))

        settings = settings.model_copy(update={"retell_agent_id": "agent_7"})
        async with make_client(settings, handler) as client:
            call = await client.create_phone_call("+15557654321", metadata={"source": "test"})

        assert seen["body"] == {
            "from_number": "+15550000000",
            "to_number": "+15557654321",
            "override_agent_id": "agent_7",
            "metadata": {"source": "test"},
        }
        assert call.call_status == "registered"

    async def test_create_phone_call_requires_from_number(self, settings):
        settings = settings.model_copy(update={"retell_from_number": None})
        client = make_client(settings, lambda request: httpx.Response(500))
        with pytest.raises(ValueError):
            await client.create_phone_call("+15557654321")
        await client.close()

    async def test_active_calls_filtered_per_agent(self, settings):
        def handler(request):
            body = json.loads(request.content)
            agent = body["filter_criteria"]["agent_id"][0]
            assert body["filter_criteria"]["call_status"] == ["ongoing"]
            return httpx.Response(200, json=[
                call_json(f"{agent}-live", agent_id=agent, call_status="ongoing"),
                call_json("stray", agent_id="other", call_status="ongoing"),
            ])

        async with make_client(settings, handler) as client:
            calls = await client.get_active_calls(["a1", "a2"])

        assert [c.call_id for c in calls] == ["a1-live", "a2-live"]

    async def test_recording_url_none_on_error(self, settings):
        async with make_client(settings, lambda request: httpx.Response(500, text="oops")) as client:
            assert await client.get_call_recording_url("c1") is None

    async def test_call_analytics(self, settings):
        def handler(request):
            return httpx.Response(200, json=[
                call_json("c1", duration_ms=60_000, call_cost={"total_cost": 1.25}),
                call_json("c2", duration_ms=120_000, call_cost={"total_cost": 2.5}),
                call_json("c3", call_status="ongoing"),
            ])

        async with make_client(settings, handler) as client:
            analytics = await client.get_call_analytics()

        assert analytics == {
            "total_calls": 3,
            "completed_calls": 2,
            "avg_duration_ms": 90_000,
            "total_cost": 3.75,
        }


class TestAgentsAndNumbers:
    async def test_agent_routes(self, settings):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            if request.url.path == "/list-agents":
                return httpx.Response(200, json=[{"agent_id": "a1"}])
            if request.method == "DELETE":
                return httpx.Response(204)
            return httpx.Response(200, json={"agent_id": "a1", "voice_id": "11labs-Adrian"})

        async with make_client(settings, handler) as client:
            assert await client.list_agents() == [{"agent_id": "a1"}]
            await client.get_agent("a1")
            await client.update_agent("a1", {"voice_id": "11labs-Adrian"})
            await client.create_agent({"agent_name": "Front desk"})
            await client.delete_agent("a1")

        assert seen == [
            ("GET", "/list-agents"),
            ("GET", "/get-agent/a1"),
            ("PATCH", "/update-agent/a1"),
            ("POST", "/create-agent"),
            ("DELETE", "/delete-agent/a1"),
        ]

    async def test_phone_numbers_and_knowledge_base(self, settings):
        def handler(request):
            if request.url.path == "/list-phone-numbers":
                return httpx.Response(200, json=[{"phone_number": "+15550000000"}])
            return httpx.Response(200, json={"path": request.url.path})

        async with make_client(settings, handler) as client:
            assert await client.list_phone_numbers() == [{"phone_number": "+15550000000"}]
            assert (await client.get_phone_number("+15550000000"))["path"] == "/get-phone-number/+15550000000"
            assert (await client.get_knowledge_base("kb_1"))["path"] == "/get-knowledge-base/kb_1"
