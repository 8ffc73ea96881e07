"""Structured data extraction from call transcripts with ordered model fallback."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..core.config import Settings, get_settings
from ..core.exceptions import ProviderConfigError
from ..core.models import ExtractedCallData
from .llm_providers import LLMProvider, OpenAIProvider, parse_json_response

logger = logging.getLogger(__name__)

DEGRADED_SUMMARY_CHARS = 200

SYSTEM_PROMPT = (
    "You are an expert at analyzing customer service call transcripts and "
    "extracting structured data. Always return valid JSON."
)

EXTRACTION_PROMPT = """Analyze this customer service call transcript and extract the key information, paying special attention to scheduling and appointment details.

TRANSCRIPT:
\"\"\"
{transcript}
\"\"\"

Return a JSON object with exactly this structure:
{{
  "customerName": "caller's name if mentioned, otherwise null",
  "email": "email address if mentioned, otherwise null",
  "phone": "phone number if mentioned, otherwise null",
  "company": "company name if mentioned, otherwise null",
  "intent": "primary reason for the call (support/sales/inquiry/appointment/complaint/scheduling/follow-up/other)",
  "sentiment": "positive|neutral|negative",
  "summary": "2-3 sentence summary of what happened on the call",
  "keyPoints": ["important point", "..."],
  "actionItems": ["action item", "..."],
  "nextSteps": "what should happen next, or null",
  "scheduledEvents": [
    {{
      "date": "YYYY-MM-DD if a date is mentioned, otherwise null",
      "time": "time as mentioned, e.g. '10:30 AM' or '14:00', otherwise null",
      "timezone": "timezone if mentioned, otherwise null",
      "duration": "duration in minutes as a number if mentioned, otherwise null",
      "type": "appointment|meeting|call|follow-up|other",
      "description": "what the event is about, e.g. 'General health check with Dr. Patel'",
      "location": "phone/video/in-person address if mentioned, otherwise null"
    }}
  ],
  "importantDates": ["date mentioned", "..."],
  "deadlines": ["deadline mentioned", "..."],
  "metadata": {{
    "productsMentioned": [],
    "issuesRaised": [],
    "questionsAsked": [],
    "pricingMentioned": [],
    "promisesMade": [],
    "doctorName": "provider name if mentioned, otherwise null",
    "appointmentType": "kind of appointment if mentioned, otherwise null"
  }}
}}

RULES:
- Normalize every date to YYYY-MM-DD (e.g. "November 8, 2024" becomes "2024-11-08").
- Keep times as spoken ("10:30 AM") or as 24-hour HH:MM.
- If the caller offers several time options (e.g. "Wednesday at 10:30 AM or Thursday at 2 PM"), create a SEPARATE scheduledEvents entry for EACH option, each with its own date and time.
- Always include the scheduledEvents array, even when it is empty.
- The "summary" must be 2-3 sentences in your own words. NEVER copy the transcript into it.
- Extract only what is explicitly said. Respond ONLY with the JSON object."""

CONTEXT_SYSTEM_PROMPT = (
    "You are helping an AI assistant prepare for a customer call by providing "
    "relevant context from previous interactions."
)

CONTEXT_PROMPT = """Generate a brief context summary for an AI assistant about this repeat customer:

Customer: {name}
Company: {company}

Previous Call History:
{history}

Write 2-3 conversational sentences covering what they needed before, any outstanding issues or promises, and how to personalize the greeting."""


def build_extraction_prompt(transcript: str) -> str:
    return EXTRACTION_PROMPT.format(transcript=transcript)


def degraded_extraction(transcript: str) -> ExtractedCallData:
    """Minimal valid extraction used when every model has failed.

    The summary is a raw transcript excerpt, which the extraction prompt
    forbids for real summaries; ``metadata.degraded`` marks it so consumers
    can tell the two apart.
    """
    excerpt = (transcript or "").strip()[:DEGRADED_SUMMARY_CHARS]
    return ExtractedCallData(
        intent="general",
        sentiment="neutral",
        summary=f"{excerpt}..." if excerpt else "Call analysis unavailable",
        metadata={"degraded": True},
    )


def _is_transcript_copy(summary: str, transcript: str) -> bool:
    summary = " ".join(summary.split())
    transcript = " ".join(transcript.split())
    return len(transcript) > DEGRADED_SUMMARY_CHARS and summary == transcript


@dataclass
class ExtractionResult:
    """Outcome of one model attempt: either ``data`` or ``error`` is set."""

    model: str
    data: Optional[ExtractedCallData] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.data is not None


class ExtractionStrategy:
    """One model on one provider, tried as a single attempt."""

    def __init__(self, provider: LLMProvider, model: str):
        self.provider = provider
        self.model = model

    async def try_extract(self, transcript: str) -> ExtractionResult:
        try:
            response = await asyncio.to_thread(
                self.provider.generate_response,
                system_prompt=SYSTEM_PROMPT,
                user_message=build_extraction_prompt(transcript),
                temperature=0.3,
                model=self.model,
                json_mode=True,
            )
            data = ExtractedCallData.model_validate(parse_json_response(response))
        except (ValueError, ValidationError) as e:
            return ExtractionResult(model=self.model, error=f"invalid response: {e}")
        except Exception as e:
            return ExtractionResult(model=self.model, error=str(e))

        if _is_transcript_copy(data.summary, transcript):
            return ExtractionResult(model=self.model, error="summary copies the transcript")
        return ExtractionResult(model=self.model, data=data)


class TranscriptExtractor:
    """Extract ExtractedCallData from transcripts, falling back model by model."""

    def __init__(
        self,
        strategies: Optional[Sequence[ExtractionStrategy]] = None,
        provider: Optional[LLMProvider] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._provider = provider
        self._strategies = list(strategies) if strategies is not None else None

    @property
    def provider(self) -> LLMProvider:
        """Lazy load the primary provider."""
        if self._provider is None:
            self._provider = OpenAIProvider(self.settings)
        return self._provider

    @property
    def strategies(self) -> List[ExtractionStrategy]:
        if self._strategies is None:
            self._strategies = [
                ExtractionStrategy(self.provider, model)
                for model in self.settings.extraction_model_list
            ]
        return self._strategies

    async def extract(self, transcript: str) -> ExtractedCallData:
        """Extract structured call data. Never raises.

        Args:
            transcript: Full call transcript

        Returns:
            The first successful model's extraction, or the degraded record
            once every model in the preference list has failed
        """
        try:
            strategies = self.strategies
        except ProviderConfigError as e:
            logger.error(f"❌ Extraction provider unavailable: {e}")
            return degraded_extraction(transcript)

        logger.info(f"Analyzing call transcript ({len(transcript)} chars)...")
        for strategy in strategies:
            result = await strategy.try_extract(transcript)
            if result.ok:
                logger.info(
                    f"✅ Extracted call data using {result.model}: intent={result.data.intent}, "
                    f"{len(result.data.scheduled_events)} scheduled event(s)"
                )
                return result.data
            logger.warning(f"⚠️ Model {result.model} failed: {result.error}")

        logger.error("❌ All extraction models failed, using degraded extraction")
        return degraded_extraction(transcript)

    async def generate_customer_context(
        self,
        name: Optional[str],
        company: Optional[str],
        previous_calls: Sequence[Dict[str, Any]],
    ) -> str:
        """Short greeting context for a repeat caller.

        Args:
            name: Customer name, if known
            company: Customer company, if known
            previous_calls: Dicts with ``date``, ``intent`` and ``summary``

        Returns:
            LLM-written context, or a plain sentence if the LLM is unavailable
        """
        history = "\n".join(
            f"Call {idx} ({call.get('date', 'unknown date')}):\n"
            f"- Intent: {call.get('intent', 'unknown')}\n"
            f"- Summary: {call.get('summary', '')}"
            for idx, call in enumerate(previous_calls, 1)
        )
        prompt = CONTEXT_PROMPT.format(
            name=name or "Unknown", company=company or "Unknown", history=history
        )
        try:
            return await asyncio.to_thread(
                self.provider.generate_response,
                system_prompt=CONTEXT_SYSTEM_PROMPT,
                user_message=prompt,
                temperature=0.7,
                max_tokens=150,
                model=self.settings.context_model,
            )
        except Exception as e:
            logger.error(f"Error generating customer context: {e}")
            return (
                f"This is {name or 'a repeat customer'}. "
                f"They've called {len(previous_calls)} time(s) before."
            )
