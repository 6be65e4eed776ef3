"""
Onboarding - Configuration and settings.

OnboardingSettings holds the backend endpoints the dialogue engine talks to and
the tunables of the conversation (fallback grace delay, history window).
Values come from the environment (prefix ONBOARDING_) or a local .env file.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class OnboardingSettings(BaseSettings):
    """Settings for the onboarding dialogue engine."""

    model_config = SettingsConfigDict(
        env_prefix="ONBOARDING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend
    api_base_url: str = "http://localhost:3000/api"
    assistant_path: str = "/assistant/onboarding"
    memory_path: str = "/linz/memory"
    commit_path: str = "/onboarding/commit"
    reset_path: str = "/onboarding/reset"
    family_path: str = "/family"
    hydrate_path: str = "/linz/context/hydrate"

    request_timeout_seconds: float = 30.0
    # A stream with no bytes for this long counts as stalled
    stream_read_timeout_seconds: float = 60.0

    # Conversation
    fallback_delay_seconds: float = 3.5  # Grace period before synthesizing a reply
    history_window: int = 10
    default_family_name: str = "My Family"

    # Application
    env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


@lru_cache
def get_settings() -> OnboardingSettings:
    """Get cached settings instance."""
    return OnboardingSettings()


def configure_logging(level: str | None = None) -> None:
    """Root logging setup for the CLI and the API server."""
    logging.basicConfig(
        level=getattr(logging, (level or get_settings().log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
