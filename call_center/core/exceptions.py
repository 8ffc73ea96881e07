"""Exception hierarchy for the call ingestion pipeline."""

from __future__ import annotations

from typing import Any, Optional


class CallCenterError(Exception):
    """Base class for all pipeline errors."""


class CallValidationError(CallCenterError):
    """Raised when a call is missing a phone number or transcript."""


class CallAlreadyProcessedError(CallCenterError):
    """Raised when a Retell call id already has a persisted call record."""

    def __init__(self, retell_call_id: str):
        super().__init__(f"Call {retell_call_id} has already been processed")
        self.retell_call_id = retell_call_id


class ReconciliationError(CallCenterError):
    """Raised when a fatal persistence step (customer or call write) fails."""


class RetellAPIError(CallCenterError):
    """Raised when the Retell API answers with a non-2xx status."""

    def __init__(self, status_code: int, body: Any, path: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        self.path = path
        super().__init__(f"Retell API error {status_code} on {path or 'request'}: {body}")


class ProviderConfigError(CallCenterError):
    """Raised when an LLM provider is missing credentials or rejects them."""


class AnalysisInProgressError(CallCenterError):
    """Raised when a batch question analysis is already running."""

    def __init__(self) -> None:
        super().__init__(
            "Analysis already in progress. Please wait for the current analysis to complete."
        )


class RateLimitExceededError(CallCenterError):
    """Raised when the question-classification provider rate limits us."""

    def __init__(self, retry_after: int = 60):
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded. Please wait {retry_after} seconds and try again. "
            "Check your Gemini API key and quota."
        )
