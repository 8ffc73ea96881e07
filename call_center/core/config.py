"""Application configuration and environment variable validation."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Centralised application settings loaded from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Retell (voice-agent platform)
    retell_api_key: str = Field(default="", alias="RETELL_API_KEY")
    retell_base_url: str = Field(default="https://api.retellai.com", alias="RETELL_BASE_URL")
    retell_from_number: Optional[str] = Field(None, alias="RETELL_FROM_NUMBER")
    retell_agent_id: Optional[str] = Field(None, alias="RETELL_AGENT_ID")
    # Agents whose calls feed active-call and question statistics views
    target_agent_ids: Optional[str] = Field(None, alias="TARGET_AGENT_IDS")

    # Primary LLM (transcript extraction)
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    extraction_models: str = Field(
        default="gpt-4o-mini,gpt-3.5-turbo,gpt-4", alias="EXTRACTION_MODELS"
    )
    context_model: str = Field(default="gpt-3.5-turbo", alias="CONTEXT_MODEL")

    # Secondary LLM (question classification)
    gemini_api_key: Optional[str] = Field(None, alias="GEMINI_API_KEY")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai/",
        alias="GEMINI_BASE_URL",
    )
    question_models: str = Field(
        default="gemini-2.5-flash,gemini-2.0-flash,gemini-1.5-flash",
        alias="QUESTION_MODELS",
    )

    # Supabase Configuration
    supabase_url: Optional[str] = Field(None, alias="SUPABASE_URL")
    supabase_key: Optional[str] = Field(None, alias="SUPABASE_KEY")

    # Pipeline tuning
    poll_interval_seconds: float = Field(default=30.0, alias="POLL_INTERVAL_SECONDS")
    call_page_size: int = Field(default=100, alias="CALL_PAGE_SIZE")
    question_min_interval_seconds: float = Field(default=2.0, alias="QUESTION_MIN_INTERVAL_SECONDS")
    rate_limit_max_retries: int = Field(default=5, alias="RATE_LIMIT_MAX_RETRIES")
    rate_limit_base_delay_seconds: float = Field(default=2.0, alias="RATE_LIMIT_BASE_DELAY_SECONDS")
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")
    auto_process_calls: bool = Field(default=True, alias="AUTO_PROCESS_CALLS")

    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def target_agent_id_list(self) -> List[str]:
        return _split_csv(self.target_agent_ids)

    @property
    def extraction_model_list(self) -> List[str]:
        return _split_csv(self.extraction_models)

    @property
    def question_model_list(self) -> List[str]:
        return _split_csv(self.question_models)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance."""

    return Settings()  # type: ignore[call-arg]
