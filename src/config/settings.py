"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Backend collaborators
    token_url: str | None = Field(
        default=None,
        description="Identity token endpoint, called as GET <url>?identity=<agent_identity>.",
    )
    verify_url: str | None = Field(
        default=None,
        description="Access-key verification endpoint (outbound sessions only).",
    )
    call_log_url: str | None = Field(
        default=None,
        description="Call-log endpoint receiving one record per call.",
    )
    agent_identity: str = Field(default="agent")
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    # Telephony SDK / audio devices, given as "module:attribute" import paths.
    telephony_client_factory: str | None = Field(
        default=None,
        description="Callable building the telephony client, e.g. mysdk.device:Device",
    )
    audio_devices_factory: str | None = Field(
        default=None,
        description="Callable returning the audio device backend.",
    )

    # Call lifecycle
    timer_interval_seconds: float = Field(default=1.0, gt=0)
    close_session_after_outbound_call: bool = Field(
        default=True,
        description="If true, an outbound session is torn down once its call has been logged.",
    )

    @field_validator("token_url", "verify_url", "call_log_url")
    @classmethod
    def strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
