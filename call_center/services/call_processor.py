"""Batch driver: pull ended calls from Retell and reconcile the new ones."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..core.config import Settings, get_settings
from ..core.exceptions import (
    AnalysisInProgressError,
    CallAlreadyProcessedError,
    CallValidationError,
)
from ..core.models import BatchRunResult, CallStatus, ProcessedCall, QuestionStats, utcnow
from ..llm.question_classifier import QuestionClassifier
from .call_reconciler import CallReconciler
from .customer_service import CustomerRepository
from .eligibility import EligibilityDecision, filter_ended_with_phone, resolve_eligible_call
from .retell_client import RetellClient

logger = logging.getLogger(__name__)


class CallProcessor:
    """Processes ended calls once each, on demand or on a fixed interval.

    Only one batch runs at a time per processor; an overlapping request
    returns immediately without doing anything. Manual single-call
    processing waits on the same lock.
    """

    def __init__(
        self,
        client: Optional[RetellClient] = None,
        repository: Optional[CustomerRepository] = None,
        reconciler: Optional[CallReconciler] = None,
        classifier: Optional[QuestionClassifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or RetellClient(self.settings)
        self.repository = repository or CustomerRepository()
        self.reconciler = reconciler or CallReconciler(self.repository)
        self.classifier = classifier or QuestionClassifier(settings=self.settings)

        self._batch_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.stats: Dict[str, Any] = {"processed": 0, "failed": 0, "last_run": None}

    @property
    def is_processing(self) -> bool:
        return self._batch_lock.locked()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------ #
    #  Batch                                                              #
    # ------------------------------------------------------------------ #

    async def run_batch(self) -> BatchRunResult:
        """Process every ended call that has not been stored yet.

        Calls are handled one after another. A failing call is counted and
        logged; the rest of the batch still runs.
        """
        if self._batch_lock.locked():
            logger.info("⏭️ Call processing already running, skipping this run")
            return BatchRunResult(skipped_reason="already_running", finished_at=utcnow())

        async with self._batch_lock:
            result = BatchRunResult()
            logger.info("🔄 Checking for new calls to process...")

            try:
                calls = await self.client.list_all_calls(statuses=[CallStatus.ENDED.value])
            except Exception as e:
                logger.error(f"❌ Failed to list calls: {e}")
                result.failed = 1
                return self._finish(result)

            result.total_fetched = len(calls)
            candidates = filter_ended_with_phone(calls)
            logger.info(f"Found {len(candidates)} ended calls with phone numbers")

            for call in candidates:
                try:
                    decision, full_call = await resolve_eligible_call(
                        self.client, self.repository, call
                    )
                    if decision is not EligibilityDecision.ELIGIBLE:
                        result.skipped += 1
                        continue

                    result.eligible += 1
                    await self.reconciler.process_and_save_call(
                        phone_number=full_call.phone_number,
                        retell_call_id=full_call.call_id,
                        transcript=full_call.transcript,
                        duration_seconds=full_call.duration_seconds,
                    )
                    result.processed += 1
                    logger.info(f"✅ Processed call {call.call_id}")
                except Exception as e:
                    result.failed += 1
                    logger.error(f"❌ Failed to process call {call.call_id}: {e}")

            if result.processed or result.failed:
                logger.info(
                    f"✅ Processing complete: {result.processed} processed, "
                    f"{result.failed} failed, {result.skipped} skipped"
                )
            else:
                logger.info("No new calls to process")
            return self._finish(result)

    def _finish(self, result: BatchRunResult) -> BatchRunResult:
        result.finished_at = utcnow()
        self.stats["processed"] += result.processed
        self.stats["failed"] += result.failed
        self.stats["last_run"] = result.finished_at
        return result

    async def process_single_call(self, call_id: str) -> ProcessedCall:
        """Manually process one call by id.

        Shares the batch lock, so a call picked up by a running batch is
        reported as already processed once that batch finishes.

        Raises:
            CallValidationError: The call has no transcript or no phone number
            CallAlreadyProcessedError: The call is already stored
            RetellAPIError: The platform rejected the fetch
        """
        call_id = call_id.strip()
        if not call_id:
            raise CallValidationError("Please enter a call ID")

        if self._batch_lock.locked():
            logger.info(f"⏳ Call processing in progress, waiting before processing {call_id}")

        async with self._batch_lock:
            logger.info(f"Fetching call details for {call_id}")
            call = await self.client.get_call(call_id)

            if not call.has_transcript:
                raise CallValidationError(
                    "Call has no transcript. Only completed calls with transcripts can be processed."
                )
            if not call.phone_number:
                raise CallValidationError("Call has no phone number")
            if await self.repository.is_call_processed(call.call_id):
                raise CallAlreadyProcessedError(call.call_id)

            return await self.reconciler.process_and_save_call(
                phone_number=call.phone_number,
                retell_call_id=call.call_id,
                transcript=call.transcript,
                duration_seconds=call.duration_seconds,
            )

    # ------------------------------------------------------------------ #
    #  Periodic processing                                                #
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Run a batch now and then every ``poll_interval_seconds``."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_periodically(self._stop_event))
        logger.info(
            f"🚀 Automatic call processing started (every {self.settings.poll_interval_seconds:g}s)"
        )

    async def stop(self) -> None:
        """Stop the periodic loop, letting an in-flight batch finish."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Automatic call processing stopped")

    async def _run_periodically(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.run_batch()
            except Exception as e:
                logger.error(f"❌ Periodic call processing failed: {e}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.settings.poll_interval_seconds)
            except asyncio.TimeoutError:
                pass

    # ------------------------------------------------------------------ #
    #  Question statistics                                                #
    # ------------------------------------------------------------------ #

    async def get_question_statistics(self, question_catalog: Sequence[str]) -> List[QuestionStats]:
        """How often each catalog question is asked across the target agents' calls.

        Returns an empty list when no call has a transcript.

        Raises:
            AnalysisInProgressError: Another analysis is running
            RateLimitExceededError: The question-analysis provider rate limited us
        """
        if self.classifier.in_progress:
            raise AnalysisInProgressError()

        agent_ids: List[Optional[str]] = list(self.settings.target_agent_id_list) or [None]
        calls = []
        for agent_id in agent_ids:
            batch = await self.client.list_all_calls(agent_id=agent_id)
            calls.extend(call for call in batch if agent_id is None or call.agent_id == agent_id)
        logger.info(f"📊 Fetching transcripts for {len(calls)} call(s)")

        transcripts = []
        for call in calls:
            if not call.has_transcript:
                try:
                    call = await self.client.get_call(call.call_id)
                except Exception as e:
                    logger.warning(f"⚠️ Could not fetch transcript for {call.call_id}: {e}")
                    continue
            if call.has_transcript:
                transcripts.append({"id": call.call_id, "transcript": call.transcript})

        logger.info(f"📝 Found {len(transcripts)} call(s) with transcripts")
        if not transcripts:
            return []

        return await self.classifier.batch_classify_questions(transcripts, question_catalog)
