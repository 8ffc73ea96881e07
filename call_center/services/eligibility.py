"""Decide which platform calls still need processing."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..core.models import CallRecord

logger = logging.getLogger(__name__)


class EligibilityDecision(str, Enum):
    ELIGIBLE = "eligible"
    ALREADY_PROCESSED = "already_processed"
    NO_TRANSCRIPT = "no_transcript"
    NO_PHONE_NUMBER = "no_phone_number"


def filter_ended_with_phone(calls: Iterable[CallRecord]) -> List[CallRecord]:
    """Coarse filter over list results: ended calls that carry a phone number.

    List responses have no transcripts, so transcripts are not looked at here.
    """
    return [call for call in calls if call.is_ended and call.phone_number]


async def resolve_eligible_call(
    client, repository, call: CallRecord
) -> Tuple[EligibilityDecision, Optional[CallRecord]]:
    """Fine filter for one call that passed ``filter_ended_with_phone``.

    Checks the store first so already-processed calls cost no platform
    request, then fetches the full record to get the transcript.

    Args:
        client: RetellClient (anything with ``get_call``)
        repository: CustomerRepository (anything with ``is_call_processed``)
        call: Call from a list response

    Returns:
        The decision, and the full call record when it is eligible
    """
    if await repository.is_call_processed(call.call_id):
        logger.debug(f"Call {call.call_id} already processed, skipping")
        return EligibilityDecision.ALREADY_PROCESSED, None

    full_call = await client.get_call(call.call_id)

    if not full_call.has_transcript:
        logger.info(f"⚠️ Call {call.call_id} has no transcript, skipping")
        return EligibilityDecision.NO_TRANSCRIPT, None

    if not full_call.phone_number:
        logger.info(f"⚠️ Call {call.call_id} has no phone number, skipping")
        return EligibilityDecision.NO_PHONE_NUMBER, None

    return EligibilityDecision.ELIGIBLE, full_call
