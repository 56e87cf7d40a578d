"""Error taxonomy shared by the proxy services and its HTTP mapping."""
from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse


class ProxyError(Exception):
    """Base failure surfaced to the HTTP layer.

    ``detail`` is whatever the upstream provider returned. It is carried
    through untouched so callers can see the provider's own diagnostics.
    """

    status_code: int = 502
    message: str = "AI provider error"

    def __init__(self, detail: Any = None, *, message: str | None = None, status_code: int | None = None):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail
        super().__init__(self.message if detail is None else f"{self.message}: {detail}")


class ValidationError(ProxyError):
    """A required input field is missing; no remote call was attempted."""

    status_code = 400
    message = "text required"


class ConfigurationError(ProxyError):
    status_code = 500
    message = "D-ID key or source image not configured"


class UpstreamError(ProxyError):
    """A synchronous forward (completion or speech) failed."""


class SubmissionError(ProxyError):
    message = "D-ID creation failed"


class ProviderRejected(SubmissionError):
    """Job creation returned a non-success response."""


class MalformedResponse(SubmissionError):
    message = "D-ID creation returned no talk id"


class SubmissionTransportError(SubmissionError):
    message = "D-ID error"


class PollError(ProxyError):
    message = "D-ID error"


class TransportFailure(PollError):
    """A status query failed at the network or protocol level."""


class RemoteFailed(PollError):
    """The talk reached the terminal ``error`` status."""

    status_code = 500
    message = "D-ID processing failed"


class PollTimeout(PollError):
    status_code = 504
    message = "D-ID processing timed out"


class ClientDisconnected(ProxyError):
    status_code = 499
    message = "client disconnected"


class PayloadTooLarge(ProxyError):
    status_code = 413
    message = "payload too large"


def error_body(exc: ProxyError) -> dict[str, Any]:
    body: dict[str, Any] = {"error": exc.message}
    if exc.detail is not None:
        body["detail"] = exc.detail
    return body


def error_response(exc: ProxyError) -> JSONResponse:
    """Map a proxy failure onto its JSON error response."""

    return JSONResponse(status_code=exc.status_code, content=error_body(exc))
