"""
Pydantic schemas for the vendor proxy service.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatRequest(BaseModel):
    messages: list[dict] = Field(default_factory=list)
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 512


class DalleRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    size: str = "1024x1024"
    quality: str = "standard"
    style: str = "vivid"


class TtsRequest(BaseModel):
    text: str = Field(..., min_length=1)
    voice: str = "Rachel"
    options: dict = Field(default_factory=dict)


class ImageRequest(BaseModel):
    """Shared by the image vendors. Vendor-specific fields pass through as options."""

    model_config = ConfigDict(extra="allow")

    prompt: str = Field(..., min_length=1)
    image_url: Optional[str] = None

    def options(self) -> dict:
        return self.model_dump(exclude={"prompt"}, exclude_none=True)


class VideoRequest(ImageRequest):
    duration: Optional[int] = None
    aspect_ratio: Optional[str] = None
    mode: Optional[str] = None


class GeminiRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    model: Optional[str] = None

    @field_validator("prompt")
    @classmethod
    def _strip(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Prompt is required")
        return value


class ImageResponse(BaseModel):
    imageUrl: str


class VideoResponse(BaseModel):
    videoUrl: str


class TextResponse(BaseModel):
    text: str


class RealtimeEvent(BaseModel):
    name: str
    active: int
    count: int


class RealtimeResponse(BaseModel):
    activeUsers: int
    eventCount: int
    events: list[RealtimeEvent]


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None
