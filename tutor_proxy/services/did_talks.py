"""D-ID Talks client: create a talking-avatar job and poll it to completion."""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import httpx

from .errors import (
    ConfigurationError,
    MalformedResponse,
    PollTimeout,
    ProviderRejected,
    RemoteFailed,
    SubmissionTransportError,
    TransportFailure,
    ValidationError,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class DidTalksConfig:
    """Per-deployment D-ID settings bound into every talk request."""

    api_key: str
    source_url: str
    base_url: str = "https://api.d-id.com"
    voice_provider: str = "microsoft"
    voice_id: str = "en-US-JennyNeural"
    poll_interval: float = 3.0
    # None or a non-positive value disables a bound; the first one hit ends the loop.
    max_attempts: Optional[int] = 100
    max_elapsed: Optional[float] = 300.0
    http_timeout: float = 30.0

    @property
    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Basic {self.api_key}"}


@dataclass(frozen=True)
class RenderJobRequest:
    script: str
    source_url: str
    voice_provider: str
    voice_id: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "source_url": self.source_url,
            "script": {
                "type": "text",
                "provider": {"type": self.voice_provider, "voice_id": self.voice_id},
                "input": self.script,
            },
        }


class TalkState(Enum):
    PENDING = "pending"
    DONE = "done"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self is not TalkState.PENDING


@dataclass(frozen=True)
class JobStatus:
    state: TalkState
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "JobStatus":
        """Collapse D-ID's status vocabulary onto pending/done/error.

        D-ID reports ``created`` and ``started`` while it works; anything that
        is not ``done`` or ``error`` keeps the job pending.
        """

        raw = str(payload.get("status") or "").lower()
        if raw == TalkState.DONE.value:
            return cls(TalkState.DONE, payload)
        if raw == TalkState.ERROR.value:
            return cls(TalkState.ERROR, payload)
        return cls(TalkState.PENDING, payload)


@dataclass(frozen=True)
class JobResult:
    talk_id: str
    result_url: Optional[str]
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class PollSession:
    """Loop state owned by a single in-flight request."""

    handle: str
    attempts: int = 0
    status: JobStatus = field(default_factory=lambda: JobStatus(TalkState.PENDING))

    def advance(self, status: JobStatus) -> None:
        if self.status.state.terminal:
            raise RuntimeError(f"talk {self.handle} already reached {self.status.state.value}")
        self.attempts += 1
        self.status = status


class TalkSubmitter:
    """Creates D-ID talks. Exactly one POST per call, never retried."""

    def __init__(self, config: DidTalksConfig, client: httpx.AsyncClient):
        self._config = config
        self._client = client

    @staticmethod
    def validate(request: RenderJobRequest) -> None:
        if not (request.script or "").strip():
            raise ValidationError()

    async def submit(self, request: RenderJobRequest) -> str:
        self.validate(request)
        url = f"{self._config.base_url.rstrip('/')}/talks"
        logger.info("Creating D-ID talk (%d chars of script)", len(request.script))
        try:
            resp = await self._client.post(url, json=request.to_payload(), headers=self._config.auth_headers)
        except httpx.HTTPError as exc:
            raise SubmissionTransportError(str(exc)) from exc

        if not resp.is_success:
            logger.error("D-ID creation failed with HTTP %s: %s", resp.status_code, resp.text)
            raise ProviderRejected(resp.text)

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponse(resp.text) from exc
        talk_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(talk_id, str) or not talk_id:
            raise MalformedResponse(resp.text)

        logger.info("Talk created with ID: %s", talk_id)
        return talk_id


class TalkPoller:
    """Waits for a talk to reach ``done`` or ``error``.

    Every iteration sleeps first and then issues one status query, so the
    queries for a handle never overlap and the first one is preceded by a
    full interval. Any failure of the query itself aborts the loop.
    """

    def __init__(
        self,
        config: DidTalksConfig,
        client: httpx.AsyncClient,
        *,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config
        self._client = client
        self._sleep = sleep
        self._clock = clock

    async def poll(self, handle: str) -> JobResult:
        session = PollSession(handle=handle)
        started = self._clock()

        while not session.status.state.terminal:
            self._check_bounds(session, started)
            await self._sleep(self._config.poll_interval)
            logger.info("Checking status for talk: %s", handle)
            session.advance(await self.fetch_status(handle))

        payload = session.status.payload
        if session.status.state is TalkState.ERROR:
            logger.error("Video processing failed: %s", payload)
            raise RemoteFailed(payload)

        result_url = payload.get("result_url")
        if result_url is not None and not isinstance(result_url, str):
            raise TransportFailure(payload)
        logger.info("Talk %s ready after %d checks: %s", handle, session.attempts, result_url)
        return JobResult(talk_id=handle, result_url=result_url, payload=payload)

    def _check_bounds(self, session: PollSession, started: float) -> None:
        max_attempts = self._config.max_attempts
        max_elapsed = self._config.max_elapsed
        elapsed = self._clock() - started
        if (max_attempts is not None and 0 < max_attempts <= session.attempts) or (
            max_elapsed is not None and 0 < max_elapsed <= elapsed
        ):
            logger.warning("Giving up on talk %s after %d checks (%.1fs)", session.handle, session.attempts, elapsed)
            raise PollTimeout(
                {
                    "talk_id": session.handle,
                    "attempts": session.attempts,
                    "elapsed": round(elapsed, 3),
                    "last_status": session.status.payload or None,
                }
            )

    async def fetch_status(self, handle: str) -> JobStatus:
        url = f"{self._config.base_url.rstrip('/')}/talks/{handle}"
        try:
            resp = await self._client.get(url, headers=self._config.auth_headers)
        except httpx.HTTPError as exc:
            raise TransportFailure(str(exc)) from exc
        if not resp.is_success:
            raise TransportFailure(resp.text)
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransportFailure(resp.text) from exc
        if not isinstance(data, dict):
            raise TransportFailure(resp.text)
        return JobStatus.from_payload(data)


class DIDTalksService:
    """Text-to-video facade over the D-ID Talks API."""

    def __init__(
        self,
        config: DidTalksConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._config = config
        self._client = client
        self._sleep = sleep

    def build_request(self, text: str) -> RenderJobRequest:
        return RenderJobRequest(
            script=text,
            source_url=self._config.source_url,
            voice_provider=self._config.voice_provider,
            voice_id=self._config.voice_id,
        )

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._config.http_timeout) as client:
            yield client

    async def generate_talk_from_text(self, text: str) -> JobResult:
        request = self.build_request(text)
        TalkSubmitter.validate(request)
        if not self._config.api_key or not self._config.source_url:
            raise ConfigurationError()

        async with self._http() as client:
            talk_id = await TalkSubmitter(self._config, client).submit(request)
            return await TalkPoller(self._config, client, sleep=self._sleep).poll(talk_id)
