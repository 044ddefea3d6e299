"""Unified configuration and settings module.

Single source of truth for runtime configuration: LLM provider, storage,
evidence fan-out limits and the thresholds used by the answer pipeline.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from research_qa.exceptions import ConfigurationError

DEFAULT_LLM: str = "disabled"  # CI-safe default, no secrets required


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # ==== LLM provider ====
    LLM_PROVIDER: Literal["disabled", "anthropic", "openai"] = DEFAULT_LLM
    ANTHROPIC_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_API_BASE: Optional[str] = None
    ANTHROPIC_MODEL: str = Field("claude-3-5-sonnet-latest", description="Anthropic model to use")
    OPENAI_MODEL: str = Field("gpt-4o-mini", description="OpenAI model to use")
    LLM_MAX_TOKENS: int = Field(2000, ge=1)
    EXTRACTION_TEMPERATURE: float = Field(0.3, ge=0, le=1)
    SYNTHESIS_TEMPERATURE: float = Field(0.3, ge=0, le=1)
    USE_LLM_SYNTH: bool = Field(True, description="Use LLM for synthesis (falls back to rules)")

    # ==== Storage ====
    DATABASE_URL: str = "sqlite:///research_qa.db"
    DATABASE_ECHO: bool = False

    # ==== Evidence fan-out ====
    EVIDENCE_CONCURRENCY: int = Field(8, ge=1, description="Max concurrent extraction calls per question")
    EVIDENCE_TIMEOUT_SEC: float = Field(60.0, gt=0, description="Timeout for one extraction call")
    SYNTHESIS_TIMEOUT_SEC: float = Field(90.0, gt=0, description="Timeout for the synthesis call")

    # ==== HTTP & retries ====
    RETRY_MAX_TRIES: int = Field(3, ge=1)
    RETRY_BACKOFF_BASE_SECONDS: float = Field(1.0, ge=0)
    RETRY_BACKOFF_MAX_SECONDS: float = Field(10.0, ge=0)

    # ==== Pipeline thresholds ====
    TOPIC_SIMILARITY_THRESHOLD: float = Field(0.6, ge=0, le=1)
    GROUPING_PREFIX_LENGTH: int = Field(100, ge=1)
    HIGH_CONFIDENCE_THRESHOLD: float = Field(0.7, ge=0, le=1)

    # ==== Language policy ====
    GUARDRAILS_PATH: Optional[str] = None
    LANGUAGE_REQUIRE_MARKERS: bool = False

    # ==== Observability ====
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_JSON: bool = True

    def model_post_init(self, __context):
        """Validate provider configuration after all fields are set"""
        if self.LLM_PROVIDER == "anthropic" and not self.ANTHROPIC_API_KEY:
            raise ConfigurationError("ANTHROPIC_API_KEY required for LLM_PROVIDER=anthropic")
        if self.LLM_PROVIDER == "openai" and not self.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY required for LLM_PROVIDER=openai")

    @property
    def llm_enabled(self) -> bool:
        return self.LLM_PROVIDER != "disabled"

    @property
    def model_name(self) -> str:
        if self.LLM_PROVIDER == "anthropic":
            return self.ANTHROPIC_MODEL
        if self.LLM_PROVIDER == "openai":
            return self.OPENAI_MODEL
        return "disabled"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class _LazySettings:
    """Proxy that creates Settings on first attribute access."""
    _instance = None

    def __getattr__(self, name):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)

    def __repr__(self):
        return "<LazySettings>"


settings = _LazySettings()
