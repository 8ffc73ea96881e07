"""Tests for coarse and fine call eligibility filtering."""

from unittest.mock import AsyncMock, MagicMock

from call_center.services.eligibility import (
    EligibilityDecision,
    filter_ended_with_phone,
    resolve_eligible_call,
)


def make_repository(processed_ids=()):
    repository = MagicMock()
    repository.is_call_processed = AsyncMock(side_effect=lambda call_id: call_id in processed_ids)
    return repository


class TestFilterEndedWithPhone:
    def test_keeps_ended_calls_with_a_number(self, call_factory):
        calls = [
            call_factory("ended_inbound"),
            call_factory("ended_outbound", from_number=None, to_number="+15550001111"),
            call_factory("ongoing", call_status="ongoing"),
            call_factory("no_number", from_number=None),
            call_factory("blank_number", from_number=""),
        ]

        kept = filter_ended_with_phone(calls)

        assert [c.call_id for c in kept] == ["ended_inbound", "ended_outbound"]

    def test_does_not_require_transcript(self, call_factory):
        assert filter_ended_with_phone([call_factory("c1", transcript=None)])


class TestResolveEligibleCall:
    async def test_list_without_transcript_is_fetched_individually(self, call_factory):
        listed = call_factory("c1", transcript=None)
        client = MagicMock()
        client.get_call = AsyncMock(return_value=call_factory("c1", transcript="User: hi there"))

        decision, full_call = await resolve_eligible_call(client, make_repository(), listed)

        assert decision is EligibilityDecision.ELIGIBLE
        assert full_call.transcript == "User: hi there"
        client.get_call.assert_awaited_once_with("c1")

    async def test_processed_call_is_not_fetched(self, call_factory):
        client = MagicMock()
        client.get_call = AsyncMock()

        decision, full_call = await resolve_eligible_call(
            client, make_repository({"c1"}), call_factory("c1")
        )

        assert decision is EligibilityDecision.ALREADY_PROCESSED
        assert full_call is None
        client.get_call.assert_not_awaited()

    async def test_blank_transcript_after_fetch(self, call_factory):
        client = MagicMock()
        client.get_call = AsyncMock(return_value=call_factory("c1", transcript="   "))

        decision, full_call = await resolve_eligible_call(client, make_repository(), call_factory("c1"))

        assert decision is EligibilityDecision.NO_TRANSCRIPT
        assert full_call is None

    async def test_fetched_call_without_number(self, call_factory):
        client = MagicMock()
        client.get_call = AsyncMock(
            return_value=call_factory("c1", transcript="User: hi", from_number=None)
        )

        decision, _ = await resolve_eligible_call(client, make_repository(), call_factory("c1"))

        assert decision is EligibilityDecision.NO_PHONE_NUMBER
