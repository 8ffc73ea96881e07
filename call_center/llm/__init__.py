"""Call Center LLM - transcript extraction and question analysis."""

from .llm_providers import GeminiProvider, OpenAIProvider, get_llm_provider, strip_code_fences
from .question_classifier import QuestionClassifier, retry_with_backoff
from .transcript_extractor import (
    ExtractionResult,
    ExtractionStrategy,
    TranscriptExtractor,
    degraded_extraction,
)

__all__ = [
    "GeminiProvider",
    "OpenAIProvider",
    "get_llm_provider",
    "strip_code_fences",
    "QuestionClassifier",
    "retry_with_backoff",
    "ExtractionResult",
    "ExtractionStrategy",
    "TranscriptExtractor",
    "degraded_extraction",
]
