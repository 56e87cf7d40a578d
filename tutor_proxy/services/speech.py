"""Text-to-speech forward that returns audio as a playable data URL."""
from __future__ import annotations

import asyncio
import base64
import logging
from typing import Optional

from openai import OpenAI

from .errors import ConfigurationError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)


def to_data_url(audio: bytes, mime: str = "audio/mpeg") -> str:
    """Encode raw audio so the browser can assign it straight to ``<audio src>``."""
    return f"data:{mime};base64,{base64.b64encode(audio).decode('ascii')}"


class SpeechService:
    def __init__(self, *, api_key: Optional[str], model: str = "gpt-4o-mini-tts", voice: str = "alloy"):
        self._client: Optional[OpenAI] = OpenAI(api_key=api_key) if api_key else None
        self._model = model
        self._voice = voice

    async def synthesize(self, text: Optional[str]) -> str:
        if not (text or "").strip():
            raise ValidationError()
        if self._client is None:
            raise ConfigurationError(message="OPENAI_API_KEY not configured")

        def _run_tts() -> bytes:
            response = self._client.audio.speech.create(
                model=self._model,
                voice=self._voice,
                input=text,
                response_format="mp3",
            )
            return response.read()

        try:
            audio = await asyncio.to_thread(_run_tts)
        except Exception as exc:
            logger.exception("OpenAI /audio error")
            raise UpstreamError(str(exc), message="TTS error") from exc
        return to_data_url(audio)
