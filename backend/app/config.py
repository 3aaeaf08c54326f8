# backend/app/config.py
"""Environment-driven settings for the listing optimizer."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import MissingApiKeyError

load_dotenv()

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")


def env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val.strip())


def resolve_api_key(override: Optional[str] = None) -> str:
    """
    Return the credential to use for the next provider call.

    Read from the environment every time so a key swapped in at runtime
    takes effect on the next call.
    """
    if override and override.strip():
        return override.strip()
    for name in API_KEY_ENV_VARS:
        val = os.getenv(name)
        if val and val.strip():
            return val.strip()
    raise MissingApiKeyError(
        "Missing API key in environment. Set GEMINI_API_KEY (or GOOGLE_API_KEY) in .env and re-run."
    )


@dataclass
class Settings:
    listing_model: str
    enforce_schema: bool
    video_model: str
    video_resolution: str
    video_aspect_ratio: str
    video_poll_interval: int
    video_max_polls: int


def load_settings() -> Settings:
    return Settings(
        listing_model=os.getenv("LISTING_MODEL", "gemini-3-flash-preview"),
        enforce_schema=env_bool("LISTING_ENFORCE_SCHEMA", False),
        video_model=os.getenv("VIDEO_MODEL", "veo-3.1-fast-generate-preview"),
        video_resolution=os.getenv("VIDEO_RESOLUTION", "720p"),
        video_aspect_ratio=os.getenv("VIDEO_ASPECT_RATIO", "16:9"),
        video_poll_interval=env_int("VIDEO_POLL_INTERVAL", 10),
        video_max_polls=env_int("VIDEO_MAX_POLLS", 60),
    )
