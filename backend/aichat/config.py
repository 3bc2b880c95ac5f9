"""Application configuration via pydantic-settings.

Reads from environment variables and .env file. Command-line flags (see
``aichat.__main__``) are applied on top as keyword overrides.
"""

from __future__ import annotations

from functools import lru_cache
from urllib.parse import urlparse

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from aichat.chat.assembler import ChatOptions

API_TYPES = ("OPEN_AI", "AZURE", "AZURE_AD")


def _check_url(value: str, name: str) -> str:
    if not value:
        return value
    parsed = urlparse(value)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"invalid {name}: {value!r}")
    return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OpenAI-compatible upstream
    openai_api_key: str = ""
    openai_api_type: str = "OPEN_AI"
    openai_api_base_url: str = ""
    openai_api_version: str = "2024-02-01"
    openai_proxy: str = ""
    openai_model: str = "gpt-3.5-turbo"
    openai_system: str = ""
    openai_stream: bool = True
    openai_max_tokens: int = 0
    openai_history: int = 0

    # Logging
    log_level: str = "INFO"
    log_format: str = "TEXT"
    log_caller: bool = False

    # HTTP server
    httpd_host: str = "0.0.0.0"
    httpd_port: int = 8080
    cors_origins: list[str] = ["*"]

    # Broadcast hub
    sse_auto_replay: bool = False
    sse_buffer_size: int = 64
    sse_replay_size: int = 256
    sse_heartbeat_seconds: float = 0.0

    @field_validator("openai_api_type")
    @classmethod
    def _validate_api_type(cls, value: str) -> str:
        if not value:
            return "OPEN_AI"
        if value.upper() not in API_TYPES:
            raise ValueError(f"invalid openai_api_type: {value!r}")
        return value.upper()

    @field_validator("openai_api_base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        return _check_url(value, "openai_api_base_url")

    @field_validator("openai_proxy")
    @classmethod
    def _validate_proxy(cls, value: str) -> str:
        return _check_url(value, "openai_proxy")

    @field_validator("openai_max_tokens", "openai_history", "sse_heartbeat_seconds")
    @classmethod
    def _validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("sse_buffer_size")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @property
    def openai_configured(self) -> bool:
        return bool(self.openai_api_key)

    def chat_options(self) -> ChatOptions:
        """Conversation defaults for the terminal loop and the web page."""
        return ChatOptions(
            model=self.openai_model,
            system=self.openai_system,
            stream=self.openai_stream,
            max_tokens=self.openai_max_tokens,
            history=self.openai_history,
        )


@lru_cache
def load_settings() -> Settings:
    """Settings from the environment, built on first use.

    Raises pydantic.ValidationError for invalid values; callers decide how
    to report it.
    """
    return Settings()
