"""FAQ statistics: which catalog questions callers ask, across many transcripts."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import openai

from ..core.config import Settings, get_settings
from ..core.exceptions import (
    AnalysisInProgressError,
    ProviderConfigError,
    RateLimitExceededError,
)
from ..core.models import QuestionStats
from .llm_providers import (
    GeminiProvider,
    LLMProvider,
    is_rate_limit_error,
    parse_json_response,
    retry_after_seconds,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SYSTEM_PROMPT = (
    "You are an expert at analyzing customer service transcripts and identifying "
    "specific questions. Always return valid JSON with the exact format requested."
)

BATCH_PROMPT = """Analyze ALL the customer service call transcripts below and identify which questions from the provided list are asked or mentioned in EACH transcript.

TRANSCRIPTS:
\"\"\"
{transcripts}
\"\"\"

QUESTIONS LIST:
{questions}

Your task:
1. For EACH transcript, identify which questions from the list are asked, mentioned, or discussed
2. Match questions even if they are paraphrased or use synonyms; match the intent, not the exact wording
3. Return ONLY the exact question text from the provided list
4. Count a question at most once per transcript
5. Use an empty array for a transcript where no questions match

Return a JSON object with this format:
{{
  "results": [
    {{"transcript_id": "call_123", "questions": ["exact question from the list"]}},
    {{"transcript_id": "call_456", "questions": []}}
  ]
}}"""

SINGLE_PROMPT = """Identify which questions from the list below are asked or discussed in this call transcript.

TRANSCRIPT:
\"\"\"
{transcript}
\"\"\"

QUESTIONS LIST:
{questions}

Match paraphrases by meaning, return each matching question once using the exact text from the list, and return an empty array when nothing matches.

Return a JSON object: {{"questions": ["exact question from the list"]}}"""


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 5,
    base_delay: float = 2.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Retry ``fn`` on rate-limit errors, doubling the delay each attempt.

    Non rate-limit errors, and the last rate-limit error, are re-raised.
    """
    for attempt in range(max_retries):
        try:
            return await fn()
        except Exception as e:
            if is_rate_limit_error(e) and attempt < max_retries - 1:
                delay = base_delay * (2 ** attempt)
                logger.warning(
                    f"⚠️ Rate limit hit, waiting {delay:.0f}s before retry {attempt + 1}/{max_retries}"
                )
                await sleep(delay)
                continue
            raise
    raise RuntimeError("Max retries exceeded")


def format_transcripts(transcripts: Sequence[Dict[str, str]]) -> str:
    return "\n\n".join(
        f"--- TRANSCRIPT {idx} (ID: {item['id']}) ---\n{item['transcript']}\n"
        for idx, item in enumerate(transcripts, 1)
    )


def aggregate_question_counts(
    payload: Dict[str, Any],
    question_catalog: Sequence[str],
    transcript_count: int,
) -> List[QuestionStats]:
    """Turn the model's per-transcript matches into per-question statistics.

    Only exact catalog strings are counted, at most once per transcript.
    Results are sorted by count, highest first; ties keep catalog order.
    """
    counts: Dict[str, int] = {question: 0 for question in question_catalog}
    results = payload.get("results")
    if not isinstance(results, list):
        logger.warning(f"⚠️ Unexpected response format from question analysis: {payload}")
        results = []

    seen = set()
    for entry in results:
        if not isinstance(entry, dict):
            continue
        transcript_id = str(entry.get("transcript_id", id(entry)))
        for question in entry.get("questions") or []:
            key = (transcript_id, question)
            if question in counts and key not in seen:
                seen.add(key)
                counts[question] += 1

    stats = [
        QuestionStats(
            question=question,
            count=counts[question],
            percentage=(counts[question] / transcript_count * 100) if transcript_count else 0.0,
        )
        for question in question_catalog
    ]
    return sorted(stats, key=lambda s: s.count, reverse=True)


class QuestionClassifier:
    """Batch question classification on the secondary provider.

    At most one batch runs at a time; concurrent callers are rejected, not
    queued. Successive batches are spaced by ``min_interval_seconds``
    measured from the end of the previous batch.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        settings: Optional[Settings] = None,
        models: Optional[Sequence[str]] = None,
        min_interval_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self._provider = provider
        self.models = list(models) if models is not None else self.settings.question_model_list
        self.min_interval_seconds = (
            min_interval_seconds
            if min_interval_seconds is not None
            else self.settings.question_min_interval_seconds
        )
        self._sleep = sleep
        self._clock = clock
        self._in_progress = False
        self._last_finished_at: Optional[float] = None

    @property
    def provider(self) -> LLMProvider:
        """Lazy load the secondary provider."""
        if self._provider is None:
            self._provider = GeminiProvider(self.settings)
        return self._provider

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def _wait_for_spacing(self, request_id: str) -> None:
        if self._last_finished_at is None:
            return
        elapsed = self._clock() - self._last_finished_at
        remaining = self.min_interval_seconds - elapsed
        if remaining > 0:
            logger.info(f"⏳ [{request_id}] Waiting {remaining:.2f}s before question analysis")
            await self._sleep(remaining)

    async def batch_classify_questions(
        self,
        transcripts: Sequence[Dict[str, str]],
        question_catalog: Sequence[str],
    ) -> List[QuestionStats]:
        """Classify every transcript against the catalog in ONE LLM request.

        Args:
            transcripts: Items with ``id`` and ``transcript`` keys
            question_catalog: Questions to look for

        Returns:
            One QuestionStats per catalog question, sorted by count

        Raises:
            AnalysisInProgressError: Another batch is running
            RateLimitExceededError: Every model failed and the last failure was a rate limit
            ProviderConfigError: The provider rejected or lacks credentials
        """
        if self._in_progress:
            logger.warning("⚠️ Question analysis already in progress, rejecting duplicate call")
            raise AnalysisInProgressError()

        self._in_progress = True
        request_id = f"req_{uuid.uuid4().hex[:12]}"
        dispatched = False
        try:
            valid = [
                item for item in transcripts
                if item.get("transcript") and item["transcript"].strip()
            ]
            if not valid:
                logger.info(f"[{request_id}] No valid transcripts to analyze")
                return [QuestionStats(question=q) for q in question_catalog]

            await self._wait_for_spacing(request_id)
            dispatched = True

            prompt = BATCH_PROMPT.format(
                transcripts=format_transcripts(valid),
                questions=json.dumps(list(question_catalog), indent=2),
            )
            logger.info(
                f"🤖 [{request_id}] Analyzing {len(valid)} transcripts in a single request "
                f"({len(prompt)} chars)"
            )

            payload = await self._request_with_model_fallback(prompt, request_id)
            stats = aggregate_question_counts(payload, question_catalog, len(valid))
            logger.info(f"✅ [{request_id}] Question analysis complete")
            return stats
        finally:
            if dispatched:
                self._last_finished_at = self._clock()
            self._in_progress = False

    async def _request_with_model_fallback(self, prompt: str, request_id: str) -> Dict[str, Any]:
        last_error: Optional[BaseException] = None
        for model in self.models:
            try:
                logger.info(f"🔄 [{request_id}] Trying model {model}")
                response = await asyncio.to_thread(
                    self.provider.generate_response,
                    system_prompt=SYSTEM_PROMPT,
                    user_message=prompt,
                    temperature=0.2,
                    model=model,
                )
                return parse_json_response(response)
            except ProviderConfigError:
                raise
            except Exception as e:
                logger.warning(f"⚠️ [{request_id}] Model {model} failed: {e}")
                last_error = e

        logger.error(f"❌ [{request_id}] All question-analysis models failed")
        if last_error is None:
            raise ProviderConfigError("No question-analysis models configured")
        if is_rate_limit_error(last_error):
            raise RateLimitExceededError(retry_after_seconds(last_error)) from last_error
        if isinstance(last_error, openai.AuthenticationError) or "api key" in str(last_error).lower():
            raise ProviderConfigError(
                "Invalid or missing Gemini API key. Set GEMINI_API_KEY."
            ) from last_error
        raise last_error

    async def classify_transcript_questions(
        self,
        transcript: str,
        question_catalog: Sequence[str],
    ) -> List[str]:
        """Catalog questions asked in a single transcript.

        Rate limits are retried with exponential backoff; any other failure
        is logged and yields an empty list so callers can keep going.
        """
        if not transcript or not transcript.strip() or not question_catalog:
            return []

        prompt = SINGLE_PROMPT.format(
            transcript=transcript,
            questions=json.dumps(list(question_catalog), indent=2),
        )
        model = self.models[0] if self.models else None

        async def _call() -> str:
            return await asyncio.to_thread(
                self.provider.generate_response,
                system_prompt=SYSTEM_PROMPT,
                user_message=prompt,
                temperature=0.2,
                model=model,
                json_mode=True,
            )

        try:
            response = await retry_with_backoff(
                _call,
                max_retries=self.settings.rate_limit_max_retries,
                base_delay=self.settings.rate_limit_base_delay_seconds,
                sleep=self._sleep,
            )
            payload = parse_json_response(response)
        except Exception as e:
            logger.error(f"Error analyzing questions from transcript: {e}")
            return []

        matched = payload.get("questions") or payload.get("matchedQuestions") or []
        catalog = set(question_catalog)
        return [q for q in dict.fromkeys(matched) if q in catalog]
