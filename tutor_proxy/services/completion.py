"""Tutor question answering via OpenAI chat completions."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from openai import OpenAI

from .errors import ConfigurationError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

TUTOR_SYSTEM_PROMPT = (
    "You are a friendly AI tutor. Explain topics simply and step-by-step with examples if possible."
)


class CompletionService:
    """Forwards a single question to the chat completions API."""

    def __init__(self, *, api_key: Optional[str], model: str = "gpt-4o-mini", max_tokens: int = 800):
        self._client: Optional[OpenAI] = OpenAI(api_key=api_key) if api_key else None
        self._model = model
        self._max_tokens = max_tokens

    async def ask(self, question: Optional[str]) -> str:
        if not (question or "").strip():
            raise ValidationError(message="question required")
        if self._client is None:
            raise ConfigurationError(message="OPENAI_API_KEY not configured")

        def _run_completion() -> str:
            completion = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": TUTOR_SYSTEM_PROMPT},
                    {"role": "user", "content": question},
                ],
                max_tokens=self._max_tokens,
            )
            if not completion.choices:
                return ""
            return completion.choices[0].message.content or ""

        try:
            return await asyncio.to_thread(_run_completion)
        except Exception as exc:
            logger.exception("OpenAI /ask error")
            raise UpstreamError(str(exc), message="AI provider error") from exc
