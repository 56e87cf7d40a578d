"""AI tutor proxy: chat answers, speech and D-ID talking-avatar videos.

Importing the package pulls provider keys and D-ID knobs from ``.env`` files
into the environment before ``tutor_proxy.config`` reads them.
"""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv


_ROOT_DIR = Path(__file__).resolve().parent.parent

# .env.local wins over .env for per-machine keys.
load_dotenv(_ROOT_DIR / ".env")
load_dotenv(_ROOT_DIR / ".env.local", override=True)
