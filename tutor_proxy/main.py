"""FastAPI application entrypoint for the tutor proxy."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import settings
from .routers import tutor
from .services.errors import PayloadTooLarge, ProxyError, error_response

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("AI Tutor proxy server listening on http://localhost:%s", settings.port)
    if not settings.did_api_key:
        logger.warning("DID_API_KEY is not set; /api/did-talk will answer 500")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; /api/ask and /api/audio will answer 500")
    yield


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``settings.max_body_bytes`` with 413.

    The body is read up front and counted chunk by chunk, so requests without
    a ``Content-Length`` header are limited too. The buffered body is then
    replayed to the app.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = settings.max_body_bytes
        too_large = error_response(PayloadTooLarge(f"limit is {limit} bytes"))
        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > limit:
            await too_large(scope, receive, send)
            return

        chunks: list[bytes] = []
        received = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > limit:
                await too_large(scope, receive, send)
                return
            chunks.append(chunk)
            if not message.get("more_body", False):
                break

        body = b"".join(chunks)
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)


def create_app() -> FastAPI:
    """Instantiate and configure the FastAPI application."""
    application = FastAPI(
        title="AI Tutor Proxy",
        description="Proxies tutor questions, speech synthesis and D-ID talking-avatar videos.",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS must wrap the body limit so 413 responses carry CORS headers.
    application.add_middleware(BodySizeLimitMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(ProxyError)
    async def handle_proxy_error(request: Request, exc: ProxyError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return error_response(exc)

    @application.exception_handler(RequestValidationError)
    async def handle_bad_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "invalid request body", "detail": jsonable_encoder(exc.errors())},
        )

    application.include_router(tutor.router)

    @application.get("/")
    async def root() -> dict[str, str]:
        """Lightweight health endpoint for service discovery."""
        return {"service": "tutor-proxy", "status": "ok"}

    return application


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
