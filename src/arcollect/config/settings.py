"""Configuration settings for the arcollect collections engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables (and an optional .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Managed backend (database, auth, functions)
    backend_url: str = Field(
        default="http://localhost:54321", validation_alias="BACKEND_URL"
    )
    backend_service_key: SecretStr = Field(..., validation_alias="BACKEND_SERVICE_KEY")
    backend_timeout: float = Field(default=30.0, validation_alias="BACKEND_TIMEOUT")
    backend_max_retries: int = Field(default=3, validation_alias="BACKEND_MAX_RETRIES")

    # LLM providers
    llm_provider: Literal["claude", "openai"] = Field(
        default="openai", validation_alias="LLM_PROVIDER"
    )
    anthropic_api_key: SecretStr | None = Field(
        default=None, validation_alias="ANTHROPIC_API_KEY"
    )
    openai_api_key: SecretStr | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    # OpenAI-compatible AI gateway; None means OpenAI's default endpoint
    openai_base_url: str | None = Field(default=None, validation_alias="OPENAI_BASE_URL")
    claude_model: str = Field(default="claude-haiku-4-5", validation_alias="CLAUDE_MODEL")
    gpt_model: str = Field(default="gpt-5-nano", validation_alias="GPT_MODEL")
    llm_max_tokens: int = Field(default=1024, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.7, validation_alias="LLM_TEMPERATURE")

    # Transactional email
    resend_api_key: SecretStr | None = Field(default=None, validation_alias="RESEND_API_KEY")
    resend_api_url: str = Field(
        default="https://api.resend.com", validation_alias="RESEND_API_URL"
    )
    email_max_retries: int = Field(default=3, validation_alias="EMAIL_MAX_RETRIES")
    digest_from_address: str = Field(
        default="Collections Digest <notifications@example.com>",
        validation_alias="DIGEST_FROM_ADDRESS",
    )
    welcome_from_address: str = Field(
        default="Collections Team <notifications@example.com>",
        validation_alias="WELCOME_FROM_ADDRESS",
    )
    welcome_reply_to: str | None = Field(default=None, validation_alias="WELCOME_REPLY_TO")
    app_base_url: str = Field(
        default="https://app.example.com", validation_alias="APP_BASE_URL"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
