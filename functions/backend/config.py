"""
Configuration and settings for the vendor proxy service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from providers import elevenlabs, klingai, openai_client, runware, seedream
from providers.base import REQUEST_TIMEOUT


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # OpenAI. Chat falls back to the image key when no chat key is set.
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_chat_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_CHAT_API_KEY", "OPENAI_API_KEY"),
    )
    openai_base_url: str = Field(
        default=openai_client.DEFAULT_BASE_URL, alias="OPENAI_API_BASE"
    )

    # ElevenLabs
    elevenlabs_api_key: Optional[str] = Field(default=None, alias="ELEVENLABS_API_KEY")
    elevenlabs_base_url: str = Field(
        default=elevenlabs.DEFAULT_BASE_URL, alias="ELEVENLABS_API_BASE"
    )

    # KlingAI
    klingai_api_key: Optional[str] = Field(default=None, alias="KLINGAI_API_KEY")
    klingai_base_url: str = Field(
        default=klingai.DEFAULT_BASE_URL, alias="KLINGAI_API_BASE"
    )

    # Seedream
    seedream_api_key: Optional[str] = Field(default=None, alias="SEEDREAM_API_KEY")
    seedream_base_url: str = Field(
        default=seedream.DEFAULT_BASE_URL, alias="SEEDREAM_API_BASE"
    )
    seedream_model: str = Field(default=seedream.DEFAULT_MODEL, alias="SEEDREAM_MODEL")

    # Runware
    runware_api_key: Optional[str] = Field(default=None, alias="RUNWARE_API_KEY")
    runware_base_url: str = Field(
        default=runware.DEFAULT_BASE_URL, alias="RUNWARE_API_BASE"
    )
    runware_model: str = Field(default=runware.DEFAULT_MODEL, alias="RUNWARE_MODEL")

    # LLM / Gemini
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")

    # Google Analytics realtime
    ga_property_id: Optional[str] = Field(default=None, alias="GA_PROPERTY_ID")
    ga_client_email: Optional[str] = Field(default=None, alias="GA_CLIENT_EMAIL")
    ga_private_key: Optional[str] = Field(default=None, alias="GA_PRIVATE_KEY")

    request_timeout: int = Field(default=REQUEST_TIMEOUT, alias="REQUEST_TIMEOUT")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
