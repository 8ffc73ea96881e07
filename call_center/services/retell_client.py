"""Async client for the Retell voice-agent REST API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..core.config import Settings, get_settings
from ..core.exceptions import RetellAPIError
from ..core.models import CallRecord, CallStatus

logger = logging.getLogger(__name__)


def _as_list(data: Any, key: str) -> List[Dict[str, Any]]:
    """List endpoints answer with a bare array or an object wrapping one."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get(key), list):
        return data[key]
    return []


class RetellClient:
    """Client for interacting with the Retell API.

    Calls, agents, phone numbers and knowledge bases are exposed as thin
    request/response wrappers. Nothing is retried here; callers decide.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the Retell client.

        Args:
            settings: Settings instance (uses cached defaults if not provided)
            transport: Optional httpx transport, mainly for tests
        """
        self.settings = settings or get_settings()
        self.base_url = self.settings.retell_base_url.rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> RetellClient:
        self._get_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.settings.retell_api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.settings.http_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        client = self._get_client()
        logger.debug(f"Retell API request: {method} {path}")
        response = await client.request(method, path, json=json, params=params)
        if response.is_error:
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            logger.error(f"Retell API error {response.status_code} on {path}: {body}")
            raise RetellAPIError(response.status_code, body, path)
        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------ #
    #  Calls                                                              #
    # ------------------------------------------------------------------ #

    async def list_calls(
        self,
        agent_id: Optional[str] = None,
        statuses: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[CallRecord]:
        """List calls. Transcripts are NOT included in list responses.

        Args:
            agent_id: Only calls handled by this agent
            statuses: Only calls in these statuses (e.g. ["ended"])
            limit: Page size
            offset: Number of calls to skip

        Returns:
            CallRecords for this page
        """
        body: Dict[str, Any] = {}
        filter_criteria: Dict[str, Any] = {}
        if agent_id:
            filter_criteria["agent_id"] = [agent_id]
        if statuses:
            filter_criteria["call_status"] = list(statuses)
        if filter_criteria:
            body["filter_criteria"] = filter_criteria
        if limit:
            body["limit"] = limit
        if offset:
            body["offset"] = offset

        data = await self._request("POST", "/v2/list-calls", json=body)
        return [CallRecord.model_validate(item) for item in _as_list(data, "calls")]

    async def list_all_calls(
        self,
        agent_id: Optional[str] = None,
        statuses: Optional[Sequence[str]] = None,
        page_size: Optional[int] = None,
    ) -> List[CallRecord]:
        """Walk every page of ``list_calls``.

        The offset advances by the size of each batch returned; paging stops
        on an empty batch or one shorter than ``page_size``.
        """
        page_size = page_size or self.settings.call_page_size
        all_calls: List[CallRecord] = []
        offset = 0
        while True:
            logger.debug(f"Fetching calls batch: offset {offset}, limit {page_size}")
            batch = await self.list_calls(
                agent_id=agent_id, statuses=statuses, limit=page_size, offset=offset
            )
            if not batch:
                break
            all_calls.extend(batch)
            offset += len(batch)
            if len(batch) < page_size:
                break

        logger.info(f"📞 Found {len(all_calls)} total calls from Retell")
        return all_calls

    async def get_call(self, call_id: str) -> CallRecord:
        """Fetch a single call with full details, including its transcript."""
        data = await self._request("GET", f"/v2/get-call/{call_id}")
        return CallRecord.model_validate(data)

    async def end_call(self, call_id: str) -> None:
        """Ask Retell to hang up an active call. Fire-and-forget."""
        logger.info(f"Ending call {call_id}")
        await self._request("PATCH", f"/v2/update-call/{call_id}", json={"end_call": True})

    async def create_phone_call(
        self,
        to_number: str,
        from_number: Optional[str] = None,
        agent_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        dynamic_variables: Optional[Dict[str, str]] = None,
    ) -> CallRecord:
        """Start an outbound phone call.

        Args:
            to_number: Destination in E.164 format
            from_number: Caller id; falls back to RETELL_FROM_NUMBER
            agent_id: Agent override; falls back to RETELL_AGENT_ID
            metadata: Arbitrary data stored on the call
            dynamic_variables: Values injected into the agent prompt

        Raises:
            ValueError: If no from-number is available
        """
        resolved_from = from_number or self.settings.retell_from_number
        if not resolved_from:
            raise ValueError("from_number is required; set RETELL_FROM_NUMBER or pass it explicitly.")

        payload: Dict[str, Any] = {"from_number": resolved_from, "to_number": to_number}
        resolved_agent = agent_id or self.settings.retell_agent_id
        if resolved_agent:
            payload["override_agent_id"] = resolved_agent
        if metadata:
            payload["metadata"] = metadata
        if dynamic_variables:
            payload["retell_llm_dynamic_variables"] = dynamic_variables

        logger.info(f"Initiating Retell call | to={to_number} | agent={resolved_agent}")
        data = await self._request("POST", "/v2/create-phone-call", json=payload)
        call = CallRecord.model_validate(data)
        logger.info(f"Retell call created | call_id={call.call_id} | status={call.call_status}")
        return call

    async def get_active_calls(self, agent_ids: Optional[Sequence[str]] = None) -> List[CallRecord]:
        """Ongoing calls, optionally restricted to the given agents."""
        if not agent_ids:
            return await self.list_calls(statuses=[CallStatus.ONGOING.value])
        calls: List[CallRecord] = []
        for agent_id in agent_ids:
            batch = await self.list_calls(agent_id=agent_id, statuses=[CallStatus.ONGOING.value])
            calls.extend(call for call in batch if call.agent_id == agent_id)
        return calls

    async def get_completed_calls(self, limit: int = 50) -> List[CallRecord]:
        return await self.list_calls(statuses=[CallStatus.ENDED.value], limit=limit)

    async def get_call_recording_url(self, call_id: str) -> Optional[str]:
        """Best available recording URL, preferring the unscrubbed recording."""
        try:
            call = await self.get_call(call_id)
        except (RetellAPIError, httpx.HTTPError) as e:
            logger.error(f"Error fetching call recording for {call_id}: {e}")
            return None
        return call.best_recording_url

    async def get_call_analytics(self, agent_id: Optional[str] = None) -> Dict[str, Any]:
        """Aggregate counts, average duration and cost over all calls."""
        calls = await self.list_all_calls(agent_id=agent_id)
        completed = [call for call in calls if call.is_ended]
        avg_duration = (
            sum(call.duration_ms or 0 for call in completed) / len(completed) if completed else 0
        )
        total_cost = sum(
            float((call.call_cost or {}).get("total_cost") or 0) for call in calls
        )
        return {
            "total_calls": len(calls),
            "completed_calls": len(completed),
            "avg_duration_ms": round(avg_duration),
            "total_cost": round(total_cost, 2),
        }

    # ------------------------------------------------------------------ #
    #  Agents                                                             #
    # ------------------------------------------------------------------ #

    async def list_agents(self) -> List[Dict[str, Any]]:
        return _as_list(await self._request("GET", "/list-agents"), "agents")

    async def get_agent(self, agent_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/get-agent/{agent_id}")

    async def create_agent(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"Creating agent {payload.get('agent_name', '')}")
        return await self._request("POST", "/create-agent", json=payload)

    async def update_agent(self, agent_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"Updating agent {agent_id}: {sorted(payload)}")
        return await self._request("PATCH", f"/update-agent/{agent_id}", json=payload)

    async def delete_agent(self, agent_id: str) -> None:
        logger.info(f"Deleting agent {agent_id}")
        await self._request("DELETE", f"/delete-agent/{agent_id}")

    # ------------------------------------------------------------------ #
    #  Phone numbers & knowledge bases                                    #
    # ------------------------------------------------------------------ #

    async def list_phone_numbers(self) -> List[Dict[str, Any]]:
        return _as_list(await self._request("GET", "/list-phone-numbers"), "phone_numbers")

    async def get_phone_number(self, phone_number: str) -> Dict[str, Any]:
        return await self._request("GET", f"/get-phone-number/{phone_number}")

    async def get_knowledge_base(self, knowledge_base_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/get-knowledge-base/{knowledge_base_id}")

    async def close(self) -> None:
        """Close the HTTP client connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
