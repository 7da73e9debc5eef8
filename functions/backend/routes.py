"""
HTTP routes for the vendor proxy API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from analytics import realtime
from backend.config import Settings, get_settings
from backend.dependencies import (
    get_elevenlabs_client,
    get_klingai_client,
    get_openai_client,
    get_runware_client,
    get_seedream_client,
)
from backend.schemas import (
    ChatRequest,
    DalleRequest,
    GeminiRequest,
    ImageRequest,
    ImageResponse,
    RealtimeResponse,
    TextResponse,
    TtsRequest,
    VideoRequest,
    VideoResponse,
)
from providers import gemini
from providers.elevenlabs import ElevenLabsClient
from providers.klingai import KlingAIClient
from providers.openai_client import OpenAIClient
from providers.runware import RunwareClient
from providers.seedream import SeedreamClient

logger = logging.getLogger(__name__)

router = APIRouter()

AUDIO_CACHE_CONTROL = "public, max-age=31536000"


@router.post("/chatgpt")
def chatgpt(payload: ChatRequest, client: OpenAIClient = Depends(get_openai_client)):
    if not payload.messages:
        raise HTTPException(status_code=400, detail="messages array is required")
    return client.chat(
        payload.messages,
        model=payload.model,
        temperature=payload.temperature,
        max_tokens=payload.max_tokens,
    )


@router.post("/dalle3")
def dalle3(payload: DalleRequest, client: OpenAIClient = Depends(get_openai_client)):
    """Passes the OpenAI shape through (`data[0].b64_json` or `url`)."""
    return client.generate_image(
        payload.prompt, size=payload.size, quality=payload.quality, style=payload.style
    )


@router.post("/tts-elevenlabs")
def tts_elevenlabs(
    payload: TtsRequest, client: ElevenLabsClient = Depends(get_elevenlabs_client)
):
    audio = client.synthesize(payload.text, payload.voice, payload.options)
    logger.info(f"Audio generated: {len(audio)} bytes")
    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Cache-Control": AUDIO_CACHE_CONTROL},
    )


@router.post("/klingai-image", response_model=ImageResponse)
def klingai_image(
    payload: ImageRequest, client: KlingAIClient = Depends(get_klingai_client)
):
    options = payload.options()
    image = options.pop("image_url", None)
    return ImageResponse(imageUrl=client.generate_image(payload.prompt, image, options))


@router.post("/klingai", response_model=VideoResponse)
def klingai_video(
    payload: VideoRequest, client: KlingAIClient = Depends(get_klingai_client)
):
    return VideoResponse(videoUrl=client.generate_video(payload.prompt, payload.options()))


@router.post("/seedream", response_model=ImageResponse)
def seedream_image(
    payload: ImageRequest, client: SeedreamClient = Depends(get_seedream_client)
):
    return ImageResponse(imageUrl=client.generate_image(payload.prompt, payload.options()))


@router.post("/runware", response_model=ImageResponse)
def runware_image(
    payload: ImageRequest, client: RunwareClient = Depends(get_runware_client)
):
    return ImageResponse(imageUrl=client.generate_image(payload.prompt, payload.options()))


@router.post("/gemini", response_model=TextResponse)
def gemini_text(payload: GeminiRequest, settings: Settings = Depends(get_settings)):
    text = gemini.call_predict(
        payload.prompt,
        model=payload.model or gemini.DEFAULT_MODEL,
        api_key=settings.gemini_api_key,
    )
    return TextResponse(text=text)


@router.get("/ga-realtime", response_model=RealtimeResponse)
def ga_realtime(settings: Settings = Depends(get_settings)):
    return realtime.fetch_realtime_report(settings)
