"""Persist one enriched call: customer upsert, call record, events and counters."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from ..core.exceptions import CallValidationError, ReconciliationError
from ..core.models import CallDocument, Customer, ExtractedCallData, ProcessedCall, utcnow
from ..llm.transcript_extractor import TranscriptExtractor, degraded_extraction
from .customer_service import CustomerRepository, new_document_id

logger = logging.getLogger(__name__)

NonFatalStep = Tuple[str, Callable[[], Awaitable[object]]]


class CallReconciler:
    """Turns an ended call into stored customer, call and event documents.

    Customer resolution and the call write are fatal. Scheduled events and
    customer counters are best effort: each failure is logged and named in
    ``ProcessedCall.warnings``.
    """

    def __init__(
        self,
        repository: CustomerRepository,
        extractor: Optional[TranscriptExtractor] = None,
    ):
        self.repository = repository
        self.extractor = extractor or TranscriptExtractor()

    async def _extract(self, transcript: str) -> ExtractedCallData:
        try:
            return await self.extractor.extract(transcript)
        except Exception as e:
            logger.error(f"⚠️ Transcript analysis failed, using fallback: {e}")
            return degraded_extraction(transcript)

    async def _resolve_customer(self, phone_number: str, extracted: ExtractedCallData) -> Customer:
        try:
            customer = await self.repository.get_customer_by_phone(phone_number)
        except Exception as e:
            raise ReconciliationError(f"Failed to look up customer: {e}") from e

        if customer is None:
            logger.info(f"👤 New customer detected for {phone_number}, creating profile")
            try:
                return await self.repository.create_customer(
                    phone_number=phone_number,
                    name=extracted.customer_name,
                    email=extracted.email,
                    company=extracted.company,
                )
            except Exception as e:
                raise ReconciliationError(f"Failed to create customer: {e}") from e

        logger.info(f"👤 Existing customer found: {customer.id}")
        updates = {}
        if extracted.customer_name and not customer.name:
            updates["name"] = extracted.customer_name
        if extracted.email and not customer.email:
            updates["email"] = extracted.email
        if extracted.company and not customer.company:
            updates["company"] = extracted.company

        if updates:
            try:
                await self.repository.update_customer(customer.id, updates)
                customer = customer.model_copy(update=updates)
            except Exception as e:
                logger.error(f"⚠️ Failed to update customer {customer.id}: {e}")
        return customer

    async def process_and_save_call(
        self,
        phone_number: str,
        retell_call_id: str,
        transcript: str,
        duration_seconds: int,
    ) -> ProcessedCall:
        """Extract, then persist a call and everything derived from it.

        Args:
            phone_number: Caller's number as reported by the platform
            retell_call_id: Platform call id, used for deduplication
            transcript: Full transcript
            duration_seconds: Call length

        Returns:
            The saved customer and call, plus the names of any non-fatal
            steps that failed

        Raises:
            CallValidationError: Phone number or transcript missing
            ReconciliationError: Customer or call record could not be written
        """
        if not phone_number:
            raise CallValidationError("Phone number is required")
        if not transcript or not transcript.strip():
            raise CallValidationError("Transcript is required")

        logger.info(
            f"📞 Processing call {retell_call_id} from {phone_number} "
            f"({duration_seconds}s, {len(transcript)} chars)"
        )

        extracted = await self._extract(transcript)
        customer = await self._resolve_customer(phone_number, extracted)

        call_record = CallDocument(
            id=new_document_id("call"),
            customer_id=customer.id,
            phone_number=phone_number,
            retell_call_id=retell_call_id,
            date=utcnow(),
            duration=duration_seconds,
            transcript=transcript,
            extracted_data=extracted,
            status="completed",
        )
        try:
            await self.repository.save_call_record(call_record)
        except Exception as e:
            raise ReconciliationError(f"Failed to save call record: {e}") from e

        async def _increment_stats() -> None:
            nonlocal customer
            customer = await self.repository.increment_call_stats(customer)

        steps: List[NonFatalStep] = []
        for idx, event in enumerate(extracted.scheduled_events):
            steps.append((
                f"scheduled_event[{idx}]",
                lambda event=event: self.repository.save_scheduled_event(
                    event, customer.id, call_record.id, phone_number
                ),
            ))
        steps.append(("customer_stats", _increment_stats))

        warnings: List[str] = []
        for name, step in steps:
            try:
                await step()
            except Exception as e:
                logger.error(f"⚠️ Step {name} failed for call {retell_call_id}: {e}")
                warnings.append(name)

        if warnings:
            logger.warning(f"⚠️ Call {retell_call_id} saved with warnings: {warnings}")
        else:
            logger.info(f"✅ Call {retell_call_id} processed and saved as {call_record.id}")
        return ProcessedCall(customer=customer, call_record=call_record, warnings=warnings)
