"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends

from backend.config import Settings, get_settings
from providers.elevenlabs import ElevenLabsClient
from providers.klingai import KlingAIClient
from providers.openai_client import OpenAIClient
from providers.runware import RunwareClient
from providers.seedream import SeedreamClient


def get_openai_client(settings: Settings = Depends(get_settings)) -> OpenAIClient:
    return OpenAIClient(
        chat_api_key=settings.openai_chat_api_key or settings.openai_api_key,
        image_api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.request_timeout,
    )


def get_elevenlabs_client(
    settings: Settings = Depends(get_settings),
) -> ElevenLabsClient:
    return ElevenLabsClient(
        settings.elevenlabs_api_key,
        base_url=settings.elevenlabs_base_url,
        timeout=settings.request_timeout,
    )


def get_klingai_client(settings: Settings = Depends(get_settings)) -> KlingAIClient:
    return KlingAIClient(
        settings.klingai_api_key,
        base_url=settings.klingai_base_url,
        timeout=settings.request_timeout,
    )


def get_seedream_client(settings: Settings = Depends(get_settings)) -> SeedreamClient:
    return SeedreamClient(
        settings.seedream_api_key,
        base_url=settings.seedream_base_url,
        model=settings.seedream_model,
        timeout=settings.request_timeout,
    )


def get_runware_client(settings: Settings = Depends(get_settings)) -> RunwareClient:
    return RunwareClient(
        settings.runware_api_key,
        base_url=settings.runware_base_url,
        model=settings.runware_model,
        timeout=settings.request_timeout,
    )
