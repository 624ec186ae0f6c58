"""Configuration management for chatline."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ApiKeyNotConfiguredError

DEFAULT_MODEL = "anthropic:claude-3-5-sonnet-20240620"
DEFAULT_STORAGE_KEY = "chatState"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHATLINE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Configuration
    model: str = Field(default=DEFAULT_MODEL, description="Model in provider:model format")
    api_key: str | None = Field(default=None, description="API key for the LLM provider")
    api_base: str | None = Field(default=None, description="Optional API base URL")
    max_tokens: int = Field(default=8192, description="Maximum tokens for responses")
    system_prompt: str | None = Field(default=None, description="Optional system prompt")
    timeout_seconds: float | None = Field(default=None, description="Per-request stream timeout in seconds")

    # Storage Configuration
    home: Path = Field(default=Path("~/.chatline"), description="Directory holding persisted state")
    storage_key: str = Field(default=DEFAULT_STORAGE_KEY, description="Key the conversation is stored under")
    prepopulate: bool = Field(default=False, description="Seed an example conversation when history is empty")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    def resolve_home(self) -> Path:
        home = self.home.expanduser().resolve()
        home.mkdir(parents=True, exist_ok=True)
        return home

    @property
    def resolved_api_key(self) -> str:
        key = self.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not key:
            raise ApiKeyNotConfiguredError(
                "API key not configured. Set CHATLINE_API_KEY or ANTHROPIC_API_KEY in your environment or .env file."
            )
        return key


def get_settings(**overrides: object) -> Settings:
    """Get application settings.

    Args:
        **overrides: Values that take precedence over environment and .env

    Returns:
        Settings instance
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    return Settings(**values)
