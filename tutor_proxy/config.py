"""Configuration helpers for the tutor proxy."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from .services.did_talks import DidTalksConfig


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Values are read once when the instance is created. The package bootstrap
    loads ``.env`` and ``.env.local`` before this module is imported.
    """

    openai_api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    ask_model: str = field(default_factory=lambda: os.getenv("ASK_MODEL", "gpt-4o-mini"))
    tts_model: str = field(default_factory=lambda: os.getenv("TTS_MODEL", "gpt-4o-mini-tts"))
    tts_voice: str = field(default_factory=lambda: os.getenv("TTS_VOICE", "alloy"))

    # D-ID Talks API
    did_api_key: Optional[str] = field(default_factory=lambda: os.getenv("DID_API_KEY"))
    did_base_url: str = field(default_factory=lambda: os.getenv("DID_BASE_URL", "https://api.d-id.com"))
    did_source_url: str = field(
        default_factory=lambda: os.getenv(
            "DID_SOURCE_URL", "https://d-id-public-bucket.s3.us-west-2.amazonaws.com/alice.jpg"
        )
    )
    did_voice_provider: str = field(default_factory=lambda: os.getenv("DID_VOICE_PROVIDER", "microsoft"))
    did_voice_id: str = field(default_factory=lambda: os.getenv("DID_VOICE_ID", "en-US-JennyNeural"))
    did_poll_interval: float = field(default_factory=lambda: _env_float("DID_POLL_INTERVAL", 3.0))
    did_poll_max_attempts: int = field(default_factory=lambda: _env_int("DID_POLL_MAX_ATTEMPTS", 100))
    did_poll_timeout: float = field(default_factory=lambda: _env_float("DID_POLL_TIMEOUT", 300.0))
    did_http_timeout: float = field(default_factory=lambda: _env_float("DID_HTTP_TIMEOUT", 30.0))

    cors_origins: list[str] = field(
        default_factory=lambda: [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    )
    max_body_bytes: int = field(default_factory=lambda: _env_int("MAX_BODY_BYTES", 1024 * 1024))
    port: int = field(default_factory=lambda: _env_int("PORT", 4000))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").strip().upper())

    def did_config(self) -> DidTalksConfig:
        """Bundle the D-ID knobs into the value object the talk services expect."""

        return DidTalksConfig(
            api_key=self.did_api_key or "",
            base_url=self.did_base_url,
            source_url=self.did_source_url,
            voice_provider=self.did_voice_provider,
            voice_id=self.did_voice_id,
            poll_interval=self.did_poll_interval,
            max_attempts=self.did_poll_max_attempts if self.did_poll_max_attempts > 0 else None,
            max_elapsed=self.did_poll_timeout if self.did_poll_timeout > 0 else None,
            http_timeout=self.did_http_timeout,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()
