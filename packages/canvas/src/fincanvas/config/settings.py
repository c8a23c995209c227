"""Configuration settings for the fincanvas artifact pipeline."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Metrics API (underlying data provider)
    metrics_api_url: str = Field(
        default="http://localhost:8000", validation_alias="METRICS_API_URL"
    )
    metrics_api_key: SecretStr = Field(..., validation_alias="METRICS_API_KEY")
    metrics_timeout: float = Field(default=30.0, validation_alias="METRICS_TIMEOUT")
    metrics_max_retries: int = Field(default=3, validation_alias="METRICS_MAX_RETRIES")

    # Assistant
    anthropic_api_key: SecretStr = Field(..., validation_alias="ANTHROPIC_API_KEY")
    claude_model: str = Field(
        default="claude-haiku-4-5", validation_alias="CLAUDE_MODEL"
    )
    llm_max_tokens: int = Field(default=4096, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.7, validation_alias="LLM_TEMPERATURE")
    assistant_max_steps: int = Field(default=5, validation_alias="ASSISTANT_MAX_STEPS")

    # WebSocket
    ws_host: str = Field(default="0.0.0.0", validation_alias="WS_HOST")
    ws_port: int = Field(default=8765, validation_alias="WS_PORT")
    ws_ping_interval: float = Field(default=30.0, validation_alias="WS_PING_INTERVAL")
    ws_ping_timeout: float = Field(default=10.0, validation_alias="WS_PING_TIMEOUT")
    event_buffer_size: int = Field(default=100, gt=0, validation_alias="EVENT_BUFFER_SIZE")

    # Pipeline timing (seconds)
    tool_call_timeout_seconds: float = Field(
        default=45.0, ge=0, validation_alias="TOOL_CALL_TIMEOUT_SECONDS"
    )
    artifact_stall_timeout_seconds: float = Field(
        default=45.0, ge=0, validation_alias="ARTIFACT_STALL_TIMEOUT_SECONDS"
    )
    cas_max_attempts: int = Field(default=8, ge=1, validation_alias="CAS_MAX_ATTEMPTS")

    # Team defaults
    base_currency: str = Field(default="USD", validation_alias="BASE_CURRENCY")
    fiscal_year_start_month: int = Field(
        default=1, ge=1, le=12, validation_alias="FISCAL_YEAR_START_MONTH"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @field_validator("base_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        code = value.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"base_currency must be an ISO 4217 code, got {value!r}")
        return code


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
