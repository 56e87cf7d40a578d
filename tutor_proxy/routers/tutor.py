"""Tutor endpoints: question answering, speech and talking-avatar video."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Depends, Request

from ..config import settings
from ..models import schemas
from ..services.completion import CompletionService
from ..services.did_talks import DIDTalksService
from ..services.errors import ClientDisconnected
from ..services.speech import SpeechService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tutor"])

_STARTED_AT = time.monotonic()
_DISCONNECT_CHECK_INTERVAL = 0.5

T = TypeVar("T")

_ERROR = {"model": schemas.ErrorResponse}
_FORWARD_ERRORS = {400: _ERROR, 413: _ERROR, 500: _ERROR, 502: _ERROR}
_TALK_ERRORS = {**_FORWARD_ERRORS, 504: _ERROR}


def get_completion_service() -> CompletionService:
    return CompletionService(api_key=settings.openai_api_key, model=settings.ask_model)


def get_speech_service() -> SpeechService:
    return SpeechService(api_key=settings.openai_api_key, model=settings.tts_model, voice=settings.tts_voice)


def get_talk_service() -> DIDTalksService:
    return DIDTalksService(settings.did_config())


async def run_while_connected(request: Request, work: Awaitable[T]) -> T:
    """Await ``work`` but cancel it as soon as the client goes away."""

    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=_DISCONNECT_CHECK_INTERVAL)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.warning("Client disconnected from %s; cancelling upstream work", request.url.path)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


@router.get("/health", response_model=schemas.HealthResponse)
async def health() -> schemas.HealthResponse:
    return schemas.HealthResponse(ok=True, uptime=round(time.monotonic() - _STARTED_AT, 3))


@router.post("/ask", response_model=schemas.AskResponse, responses=_FORWARD_ERRORS)
async def ask(
    payload: schemas.AskRequest,
    service: CompletionService = Depends(get_completion_service),
) -> schemas.AskResponse:
    answer = await service.ask(payload.question)
    return schemas.AskResponse(answer=answer)


@router.post("/audio", response_model=schemas.AudioResponse, responses=_FORWARD_ERRORS)
async def audio(
    payload: schemas.TextRequest,
    service: SpeechService = Depends(get_speech_service),
) -> schemas.AudioResponse:
    """Synthesize speech and return it inline so the client can play it directly."""

    return schemas.AudioResponse(audio=await service.synthesize(payload.text))


@router.post("/did-talk", response_model=schemas.TalkResponse, responses=_TALK_ERRORS)
async def did_talk(
    payload: schemas.TextRequest,
    request: Request,
    service: DIDTalksService = Depends(get_talk_service),
) -> schemas.TalkResponse:
    """Render a talking-avatar video and block until D-ID finishes it.

    Other requests keep being served while this one waits; the poll loop is
    tied to the client connection and stops if the caller disconnects.
    """

    result = await run_while_connected(request, service.generate_talk_from_text(payload.text or ""))
    logger.info("Video URL: %s", result.result_url)
    return schemas.TalkResponse(videoUrl=result.result_url)
