from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from tutor_proxy import main
from tutor_proxy.routers import tutor
from tutor_proxy.services import errors
from tutor_proxy.services.completion import CompletionService
from tutor_proxy.services.did_talks import JobResult
from tutor_proxy.services.speech import SpeechService


class StubTalkService:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls: list[str] = []

    async def generate_talk_from_text(self, text: str) -> JobResult:
        self.calls.append(text)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def client():
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


def _override_talk(outcome) -> StubTalkService:
    stub = StubTalkService(outcome)
    main.app.dependency_overrides[tutor.get_talk_service] = lambda: stub
    return stub


def test_health_reports_uptime(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["uptime"] >= 0


def test_did_talk_returns_video_url(client):
    stub = _override_talk(JobResult(talk_id="abc123", result_url="https://cdn/video.mp4"))

    resp = client.post("/api/did-talk", json={"text": "Hello world"})

    assert resp.status_code == 200
    assert resp.json() == {"videoUrl": "https://cdn/video.mp4"}
    assert stub.calls == ["Hello world"]


@pytest.mark.parametrize(
    ("exc", "status", "body"),
    [
        (errors.ValidationError(), 400, {"error": "text required"}),
        (errors.ConfigurationError(), 500, {"error": "D-ID key or source image not configured"}),
        (errors.ProviderRejected("bad key"), 502, {"error": "D-ID creation failed", "detail": "bad key"}),
        (errors.MalformedResponse("{}"), 502, {"error": "D-ID creation returned no talk id", "detail": "{}"}),
        (errors.TransportFailure("reset"), 502, {"error": "D-ID error", "detail": "reset"}),
        (
            errors.RemoteFailed({"status": "error", "detail": "synthesis failed"}),
            500,
            {"error": "D-ID processing failed", "detail": {"status": "error", "detail": "synthesis failed"}},
        ),
        (errors.PollTimeout({"talk_id": "abc"}), 504, {"error": "D-ID processing timed out", "detail": {"talk_id": "abc"}}),
    ],
)
def test_did_talk_maps_failures(client, exc, status, body):
    _override_talk(exc)

    resp = client.post("/api/did-talk", json={"text": "Hello world"})

    assert resp.status_code == status
    assert resp.json() == body


def test_did_talk_without_text_never_reaches_provider(client, monkeypatch):
    monkeypatch.setattr(main.settings, "did_api_key", "key")

    resp = client.post("/api/did-talk", json={})

    assert resp.status_code == 400
    assert resp.json() == {"error": "text required"}


def test_ask_requires_question(client):
    main.app.dependency_overrides[tutor.get_completion_service] = lambda: CompletionService(api_key=None)

    resp = client.post("/api/ask", json={})

    assert resp.status_code == 400
    assert resp.json() == {"error": "question required"}


def test_ask_returns_first_choice(client):
    service = CompletionService(api_key="sk-test")
    captured: dict = {}

    def create(**kwargs):
        captured.update(kwargs)
        message = SimpleNamespace(content="Photosynthesis turns light into sugar.")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    service._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    main.app.dependency_overrides[tutor.get_completion_service] = lambda: service

    resp = client.post("/api/ask", json={"question": "What is photosynthesis?"})

    assert resp.status_code == 200
    assert resp.json() == {"answer": "Photosynthesis turns light into sugar."}
    assert captured["max_tokens"] == 800
    assert captured["messages"][-1] == {"role": "user", "content": "What is photosynthesis?"}


def test_ask_provider_failure_is_502(client):
    service = CompletionService(api_key="sk-test")

    def create(**kwargs):
        raise RuntimeError("model overloaded")

    service._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    main.app.dependency_overrides[tutor.get_completion_service] = lambda: service

    resp = client.post("/api/ask", json={"question": "Why?"})

    assert resp.status_code == 502
    assert resp.json() == {"error": "AI provider error", "detail": "model overloaded"}


def test_audio_returns_data_url(client):
    service = SpeechService(api_key="sk-test")
    fake_speech = SimpleNamespace(create=lambda **kwargs: SimpleNamespace(read=lambda: b"abc"))
    service._client = SimpleNamespace(audio=SimpleNamespace(speech=fake_speech))
    main.app.dependency_overrides[tutor.get_speech_service] = lambda: service

    resp = client.post("/api/audio", json={"text": "Hello"})

    assert resp.status_code == 200
    assert resp.json() == {"audio": "data:audio/mpeg;base64,YWJj"}


def test_audio_without_key_is_500(client):
    main.app.dependency_overrides[tutor.get_speech_service] = lambda: SpeechService(api_key=None)

    resp = client.post("/api/audio", json={"text": "Hello"})

    assert resp.status_code == 500
    assert resp.json()["error"] == "OPENAI_API_KEY not configured"


def test_malformed_json_is_400(client):
    resp = client.post("/api/ask", content=b"{not json", headers={"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid request body"


def test_oversized_body_is_rejected(client, monkeypatch):
    monkeypatch.setattr(main.settings, "max_body_bytes", 16)

    resp = client.post("/api/ask", json={"question": "x" * 64})

    assert resp.status_code == 413
    assert resp.json()["error"] == "payload too large"


def test_client_disconnect_cancels_talk(monkeypatch):
    monkeypatch.setattr(tutor, "_DISCONNECT_CHECK_INTERVAL", 0.01)
    cancelled = []

    class GoneRequest:
        url = SimpleNamespace(path="/api/did-talk")

        async def is_disconnected(self) -> bool:
            return True

    async def endless_poll():
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    async def go():
        with pytest.raises(errors.ClientDisconnected):
            await tutor.run_while_connected(GoneRequest(), endless_poll())

    asyncio.run(go())
    assert cancelled == [True]


def _chunked(*parts: bytes):
    yield from parts


def test_chunked_oversized_body_is_rejected(client, monkeypatch):
    monkeypatch.setattr(main.settings, "max_body_bytes", 16)
    main.app.dependency_overrides[tutor.get_completion_service] = lambda: CompletionService(api_key=None)

    resp = client.post(
        "/api/ask",
        content=_chunked(b'{"question": "', b"x" * 4096, b'"}'),
        headers={"Content-Type": "application/json"},
    )

    assert resp.status_code == 413
    assert resp.json()["error"] == "payload too large"


def test_chunked_body_within_limit_reaches_route(client):
    service = CompletionService(api_key="sk-test")
    message = SimpleNamespace(content="Because.")

    def create(**kwargs):
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    service._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    main.app.dependency_overrides[tutor.get_completion_service] = lambda: service

    resp = client.post(
        "/api/ask",
        content=_chunked(b'{"question": ', b'"Why?"}'),
        headers={"Content-Type": "application/json"},
    )

    assert resp.status_code == 200
    assert resp.json() == {"answer": "Because."}


def test_openapi_documents_error_shape(client):
    schema = client.get("/openapi.json").json()

    responses = schema["paths"]["/api/did-talk"]["post"]["responses"]
    assert responses["504"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
    assert "502" in schema["paths"]["/api/ask"]["post"]["responses"]
    assert set(schema["components"]["schemas"]["ErrorResponse"]["properties"]) == {"error", "detail"}
