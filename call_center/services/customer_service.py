"""Customer, call and scheduled-event persistence on top of the document store."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import uuid4

from ..core.db import (
    CALLS_COLLECTION,
    CUSTOMERS_COLLECTION,
    SCHEDULED_EVENTS_COLLECTION,
    DocumentStore,
    get_document_store,
)
from ..core.models import (
    CallDocument,
    Customer,
    CustomerKnowledgeBase,
    EventStatus,
    ScheduledEvent,
    ScheduledEventRecord,
    utcnow,
)
from ..core.phone import normalize_phone_number, phone_lookup_candidates

if TYPE_CHECKING:
    from ..llm.transcript_extractor import TranscriptExtractor

logger = logging.getLogger(__name__)

HISTORY_IN_CONTEXT = 5


def new_document_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def _long_date(value: str) -> str:
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        return value
    return f"{parsed:%A, %B} {parsed.day}, {parsed.year}"


def _short_date(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value.year}"


def format_knowledge_base_context(
    customer: Customer,
    scheduled_events: List[ScheduledEventRecord],
    call_history: List[CallDocument],
) -> str:
    """Render the block of text handed to the voice agent before a call."""
    lines = ["CUSTOMER INFORMATION:"]
    if customer.name:
        lines.append(f"- Name: {customer.name}")
    if customer.email:
        lines.append(f"- Email: {customer.email}")
    if customer.company:
        lines.append(f"- Company: {customer.company}")
    lines.append(f"- Phone: {customer.phone_number}")
    lines.append(f"- Total Previous Calls: {customer.total_calls}")

    if scheduled_events:
        lines.append("\n=== UPCOMING APPOINTMENTS (USE THESE EXACT DETAILS) ===")
        for idx, event in enumerate(scheduled_events, 1):
            details = [event.description or event.type or "appointment"]
            if event.date and event.time:
                details.append(f"on {_long_date(event.date)} at {event.time}")
            elif event.date:
                details.append(f"on {_long_date(event.date)}")
            elif event.time:
                details.append(f"at {event.time}")
            if event.location:
                details.append(f"({event.location})")
            lines.append(f"APPOINTMENT {idx}: {' '.join(details)}")

            if event.date:
                lines.append(f"  - Full date: {_long_date(event.date)}")
            if event.time:
                lines.append(f"  - Time: {event.time}")
            if event.description:
                lines.append(f"  - What: {event.description}")
        lines.append("=== END OF APPOINTMENTS ===")
    else:
        lines.append("\n=== UPCOMING APPOINTMENTS ===")
        lines.append("NONE - This customer has NO scheduled appointments in the database.")

    if call_history:
        lines.append("\nPREVIOUS CALL HISTORY:")
        for idx, call in enumerate(call_history[:HISTORY_IN_CONTEXT], 1):
            data = call.extracted_data
            lines.append(f"{idx}. Call on {_short_date(call.date)}")
            lines.append(f"   Intent: {data.intent}")
            lines.append(f"   Summary: {data.summary}")
            for event in data.scheduled_events:
                if event.date and event.time:
                    lines.append(f"   - Scheduled: {event.date} at {event.time}")
            if data.action_items:
                lines.append(f"   Action Items: {', '.join(data.action_items)}")

    return "\n".join(lines)


class CustomerRepository:
    """Reads and writes customers, calls and scheduled events."""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        extractor: Optional[TranscriptExtractor] = None,
    ):
        """Initialize the repository.

        Args:
            store: Document store (shared Supabase store if not provided)
            extractor: TranscriptExtractor used for next-call greeting context
        """
        self.store = store or get_document_store()
        self._extractor = extractor

    @property
    def extractor(self) -> TranscriptExtractor:
        """Lazy load the transcript extractor."""
        if self._extractor is None:
            from ..llm.transcript_extractor import TranscriptExtractor

            self._extractor = TranscriptExtractor()
        return self._extractor

    # ------------------------------------------------------------------ #
    #  Customers                                                          #
    # ------------------------------------------------------------------ #

    async def get_customer_by_phone(self, phone_number: str) -> Optional[Customer]:
        """Find a customer by phone, trying each lookup variant in order.

        ``+15551234567``, ``15551234567`` and ``+1 (555) 123-4567`` all
        resolve to the same stored customer. Rows stored before numbers were
        normalized are still found through the ``+``-toggled variants.
        """
        for key in phone_lookup_candidates(phone_number):
            rows = await self.store.query(CUSTOMERS_COLLECTION, {"phone_number": key}, limit=1)
            if rows:
                logger.debug(f"Found customer for {phone_number} using key {key}")
                return Customer.model_validate(rows[0])

        logger.info(f"No customer found for {phone_number}")
        return None

    async def create_customer(
        self,
        phone_number: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        company: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Customer:
        """Create and persist a new customer with zero calls.

        The phone number is stored normalized so every representation of it
        finds this customer again.
        """
        customer = Customer(
            id=new_document_id("cust"),
            phone_number=normalize_phone_number(phone_number),
            name=name,
            email=email,
            company=company,
            metadata=metadata or {},
        )
        await self.store.set(CUSTOMERS_COLLECTION, customer.id, customer.model_dump(mode="json"))
        logger.info(f"Created customer: {customer.id} ({phone_number})")
        return customer

    async def update_customer(self, customer_id: str, updates: Dict[str, Any]) -> None:
        """Merge non-null ``updates`` into a customer and bump ``updated_at``."""
        data = {key: value for key, value in updates.items() if value is not None}
        data["updated_at"] = utcnow().isoformat()
        await self.store.update(CUSTOMERS_COLLECTION, customer_id, data)
        logger.info(f"Updated customer {customer_id}: {sorted(updates)}")

    async def increment_call_stats(self, customer: Customer) -> Customer:
        now = utcnow()
        total_calls = customer.total_calls + 1
        await self.store.update(
            CUSTOMERS_COLLECTION,
            customer.id,
            {
                "total_calls": total_calls,
                "last_call_date": now.isoformat(),
                "updated_at": now.isoformat(),
            },
        )
        return customer.model_copy(
            update={"total_calls": total_calls, "last_call_date": now, "updated_at": now}
        )

    async def get_all_customers(self, limit: int = 100) -> List[Customer]:
        rows = await self.store.query(
            CUSTOMERS_COLLECTION, order_by="updated_at", descending=True, limit=limit
        )
        return [Customer.model_validate(row) for row in rows]

    async def delete_customer(self, customer_id: str) -> int:
        """Delete a customer and every call linked to it.

        Returns:
            Number of call records removed
        """
        await self.store.delete(CUSTOMERS_COLLECTION, customer_id)
        calls = await self.store.query(CALLS_COLLECTION, {"customer_id": customer_id})
        for row in calls:
            await self.store.delete(CALLS_COLLECTION, row["id"])
        logger.info(f"Deleted customer {customer_id} and {len(calls)} call record(s)")
        return len(calls)

    # ------------------------------------------------------------------ #
    #  Calls                                                              #
    # ------------------------------------------------------------------ #

    async def save_call_record(self, call: CallDocument) -> CallDocument:
        await self.store.set(CALLS_COLLECTION, call.id, call.model_dump(mode="json"))
        logger.info(f"Saved call record {call.id} (retell call {call.retell_call_id})")
        return call

    async def is_call_processed(self, retell_call_id: str) -> bool:
        """Whether a call record already exists for this platform call id.

        A store failure is logged and treated as "not processed".
        """
        try:
            rows = await self.store.query(
                CALLS_COLLECTION, {"retell_call_id": retell_call_id}, limit=1
            )
        except Exception as e:
            logger.error(f"Error checking if call {retell_call_id} is processed: {e}")
            return False
        return bool(rows)

    async def get_customer_call_history(self, customer_id: str, limit: int = 10) -> List[CallDocument]:
        rows = await self.store.query(
            CALLS_COLLECTION,
            {"customer_id": customer_id},
            order_by="date",
            descending=True,
            limit=limit,
        )
        return [CallDocument.model_validate(row) for row in rows]

    async def get_all_call_records(self, limit: int = 1000) -> List[CallDocument]:
        rows = await self.store.query(CALLS_COLLECTION, order_by="date", descending=True, limit=limit)
        return [CallDocument.model_validate(row) for row in rows]

    # ------------------------------------------------------------------ #
    #  Scheduled events                                                   #
    # ------------------------------------------------------------------ #

    async def save_scheduled_event(
        self,
        event: ScheduledEvent,
        customer_id: str,
        call_id: str,
        phone_number: str,
    ) -> ScheduledEventRecord:
        record = ScheduledEventRecord(
            **event.model_dump(),
            id=new_document_id("event"),
            customer_id=customer_id,
            call_id=call_id,
            phone_number=phone_number,
        )
        await self.store.set(SCHEDULED_EVENTS_COLLECTION, record.id, record.model_dump(mode="json"))
        logger.info(
            f"Saved {record.type} for {record.date or 'TBD'} at {record.time or 'TBD'} "
            f"(call {call_id})"
        )
        return record

    async def get_customer_scheduled_events(self, customer_id: str) -> List[ScheduledEventRecord]:
        rows = await self.store.query(
            SCHEDULED_EVENTS_COLLECTION,
            {"customer_id": customer_id, "status": EventStatus.SCHEDULED.value},
            order_by="date",
        )
        return [ScheduledEventRecord.model_validate(row) for row in rows]

    async def get_upcoming_scheduled_events(self, limit: int = 50) -> List[ScheduledEventRecord]:
        """Scheduled events dated today or later, soonest first.

        Events without a date are never upcoming. The store only filters on
        equality, so the date cut happens here and ``limit`` applies after it.
        """
        today = utcnow().date().isoformat()
        rows = await self.store.query(
            SCHEDULED_EVENTS_COLLECTION,
            {"status": EventStatus.SCHEDULED.value},
            order_by="date",
        )
        upcoming = [row for row in rows if row.get("date") and row["date"] >= today]
        return [ScheduledEventRecord.model_validate(row) for row in upcoming[:limit]]

    # ------------------------------------------------------------------ #
    #  Agent context                                                      #
    # ------------------------------------------------------------------ #

    async def get_customer_knowledge_base(self, phone_number: str) -> CustomerKnowledgeBase:
        """Customer profile, upcoming appointments and recent calls for a phone number.

        ``context`` stays None for unknown callers and for customers with
        neither calls nor scheduled events.
        """
        customer = await self.get_customer_by_phone(phone_number)
        if customer is None:
            logger.info(f"No customer on file for {phone_number}, knowledge base is empty")
            return CustomerKnowledgeBase()

        scheduled_events = await self.get_customer_scheduled_events(customer.id)
        call_history = await self.get_customer_call_history(customer.id, limit=10)
        logger.info(
            f"Knowledge base for {customer.id}: {len(scheduled_events)} event(s), "
            f"{len(call_history)} call(s)"
        )

        context = None
        if call_history or scheduled_events:
            context = format_knowledge_base_context(customer, scheduled_events, call_history)

        return CustomerKnowledgeBase(
            customer=customer,
            scheduled_events=scheduled_events,
            call_history=call_history,
            context=context,
        )

    async def get_customer_context_for_next_call(self, phone_number: str) -> Optional[str]:
        knowledge_base = await self.get_customer_knowledge_base(phone_number)
        if not knowledge_base.context:
            return None
        if not knowledge_base.call_history:
            return knowledge_base.context

        customer = knowledge_base.customer
        ai_context = await self.extractor.generate_customer_context(
            name=customer.name if customer else None,
            company=customer.company if customer else None,
            previous_calls=[
                {
                    "date": call.date.isoformat(),
                    "summary": call.extracted_data.summary,
                    "intent": call.extracted_data.intent,
                }
                for call in knowledge_base.call_history
            ],
        )
        return f"{knowledge_base.context}\n\nAI-GENERATED CONTEXT:\n{ai_context}"
