"""Pydantic models describing request and response payloads."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    """Question forwarded to the tutor model."""

    question: Optional[str] = Field(default=None, description="Learner question")


class AskResponse(BaseModel):
    answer: str


class TextRequest(BaseModel):
    """Payload shared by the speech and talking-avatar endpoints."""

    text: Optional[str] = Field(default=None, description="Text to speak or render")


class AudioResponse(BaseModel):
    audio: str = Field(..., description="data:audio/mpeg;base64 URL")


class TalkResponse(BaseModel):
    videoUrl: Optional[str] = Field(default=None, description="Rendered talk video URL")


class HealthResponse(BaseModel):
    ok: bool = True
    uptime: float


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Any] = None
