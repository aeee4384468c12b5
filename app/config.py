"""Configuration management for the Exam Strategy Analyzer.

This module uses Pydantic Settings to load configuration from environment
variables. All settings are validated at startup to catch configuration
errors early, before any model call is attempted.
"""

from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelConfig(BaseModel):
    """One entry of the ordered model fallback list."""

    name: str = Field(description="Gemini model identifier")
    label: str = Field(description="Human-readable name used in progress messages")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=0.95, ge=0.0, le=1.0)
    top_k: int = Field(default=40, ge=1)
    max_output_tokens: int = Field(default=4096, ge=1)


DEFAULT_MODEL_FALLBACKS: List[ModelConfig] = [
    ModelConfig(name="gemini-3-flash-preview", label="Gemini 3 Flash"),
    ModelConfig(name="gemini-1.5-flash", label="Gemini 1.5 Flash"),
    ModelConfig(name="gemini-1.5-pro", label="Gemini 1.5 Pro"),
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The Gemini API key must be provided via environment variables or .env
    file. Everything else has a working default.
    """

    # Gemini API Configuration
    gemini_api_key: str = Field(
        ...,
        description="Google Gemini API key for document analysis"
    )

    # AI Model Configuration
    model_fallbacks: List[ModelConfig] = Field(
        default_factory=lambda: list(DEFAULT_MODEL_FALLBACKS),
        description="Models tried in order when one is unavailable"
    )

    # Model invocation
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per model before falling back to the next one"
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Wall-clock timeout for a single model attempt"
    )
    backoff_base_ms: int = Field(
        default=1000,
        ge=0,
        description="Base delay for exponential retry backoff"
    )
    backoff_max_ms: int = Field(
        default=10000,
        ge=0,
        description="Ceiling for the retry backoff delay"
    )
    fallback_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Pause before switching to the next fallback model"
    )
    progress_tick_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Interval of the elapsed-time progress report"
    )
    progress_tick_after_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Elapsed time before the progress ticker starts reporting"
    )

    # Document gates
    pipeline_sample_chars: int = Field(
        default=4000,
        gt=0,
        description="Characters extracted per file for the pre-analysis gate"
    )
    pipeline_combined_chars: int = Field(
        default=8000,
        gt=0,
        description="Characters of combined text inspected by the pre-analysis gate"
    )
    upload_sample_chars: int = Field(
        default=1500,
        gt=0,
        description="Characters extracted when a file is first selected"
    )
    quick_check_prefix_chars: int = Field(
        default=1000,
        gt=0,
        description="Prefix length inspected by the upload quick check"
    )
    quick_check_min_keywords: int = Field(
        default=2,
        ge=0,
        description="Distinct academic keywords required by the upload quick check"
    )

    # HTTP surface
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024,
        gt=0,
        description="Maximum accepted size of a single uploaded PDF"
    )
    trusted_proxies: str = Field(
        default="",
        description="Comma-separated proxy IPs whose X-Forwarded-For is trusted"
    )

    # Model configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    @field_validator("gemini_api_key")
    @classmethod
    def validate_gemini_api_key(cls, v: str) -> str:
        """Validate that GEMINI_API_KEY is present and non-empty."""
        if not v or not v.strip():
            raise ValueError(
                "GEMINI_API_KEY must be set in environment variables. "
                "Get your API key from https://ai.google.dev/"
            )
        return v.strip()

    @field_validator("model_fallbacks")
    @classmethod
    def validate_model_fallbacks(cls, v: List[ModelConfig]) -> List[ModelConfig]:
        """At least one model must be configured."""
        if not v:
            raise ValueError("MODEL_FALLBACKS must list at least one model")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance.

    This function uses lru_cache to ensure settings are loaded only once
    and reused across the application lifetime.

    Returns:
        Settings: Validated application settings

    Raises:
        ValueError: If required environment variables are missing or invalid
    """
    return Settings()
