"""LLM provider integration (OpenAI and Gemini via the OpenAI-compatible API)."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

import openai
from openai import OpenAI

from ..core.config import Settings, get_settings
from ..core.exceptions import ProviderConfigError

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```) if present."""
    content = text.strip()
    if content.startswith("```"):
        content = _FENCE_OPEN.sub("", content)
        content = _FENCE_CLOSE.sub("", content)
    return content.strip()


def parse_json_response(text: Optional[str]) -> Dict[str, Any]:
    """Parse an LLM reply as a JSON object.

    Raises:
        ValueError: If the reply is empty or is not a JSON object
    """
    if not text or not text.strip():
        raise ValueError("Empty response from LLM")
    parsed = json.loads(strip_code_fences(text))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def is_rate_limit_error(error: BaseException) -> bool:
    """Return True for HTTP 429 / quota style failures from any provider."""
    if isinstance(error, openai.RateLimitError):
        return True
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status == 429:
        return True
    message = str(error).lower()
    return "429" in message or "rate limit" in message or "quota" in message


def retry_after_seconds(error: BaseException, default: int = 60) -> int:
    """Read a ``retry-after`` header off a provider error when there is one."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("retry-after") if hasattr(headers, "get") else None
    try:
        return int(float(value)) if value is not None else default
    except (TypeError, ValueError):
        return default


class LLMProvider:
    """Base class for LLM providers."""

    default_model: str = ""

    def __init__(self, provider_name: str):
        """Initialize provider.

        Args:
            provider_name: Name of the provider (openai, gemini)
        """
        self.provider_name = provider_name

    def generate_response(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> str:
        """Generate a response from the LLM.

        Raises:
            Exception: Any provider error; callers decide how to fall back
        """
        raise NotImplementedError


class OpenAICompatibleProvider(LLMProvider):
    """Provider for any endpoint speaking the OpenAI chat completions API."""

    def __init__(self, provider_name: str, api_key: Optional[str], base_url: Optional[str] = None):
        super().__init__(provider_name)
        if not api_key:
            raise ProviderConfigError(f"{provider_name} API key not configured")
        # Automatic SDK retries are disabled: model fallback is handled by the caller
        self.client = OpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        logger.info(f"✅ {provider_name} provider initialized")

    def generate_response(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> str:
        model = model or self.default_model
        logger.info(f"Calling {self.provider_name} ({model}) with {len(user_message)} chars")

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(**kwargs)
        content = response.choices[0].message.content
        if not content:
            raise ValueError(f"No response content from {self.provider_name} ({model})")
        return content.strip()


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI API provider, used for transcript extraction."""

    default_model = "gpt-4o-mini"

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        super().__init__("openai", settings.openai_api_key)


class GeminiProvider(OpenAICompatibleProvider):
    """Google Gemini through its OpenAI-compatible endpoint, used for question analysis."""

    default_model = "gemini-2.5-flash"

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        super().__init__("gemini", settings.gemini_api_key, base_url=settings.gemini_base_url)


def get_llm_provider(provider_name: str, settings: Optional[Settings] = None) -> LLMProvider:
    """Get LLM provider instance.

    Args:
        provider_name: Provider to use (openai, gemini)
        settings: Settings override

    Returns:
        Initialized provider
    """
    if provider_name == "openai":
        return OpenAIProvider(settings)
    elif provider_name == "gemini":
        return GeminiProvider(settings)
    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")
