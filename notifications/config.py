"""Shared configuration for the notification and digest system."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_APP_URL = "http://localhost:5000"
RESEND_ENDPOINT = "https://api.resend.com/emails"
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 0.4

DIGEST_FREQUENCIES = ("DAILY", "WEEKLY")
VALID_FREQUENCIES = {"NONE", *DIGEST_FREQUENCIES}
LOOKBACK_HOURS = {"DAILY": 24, "WEEKLY": 24 * 7}

FEED_DEFAULT_LIMIT = 8
FEED_MAX_LIMIT = 50


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


@dataclass(slots=True)
class DigestSettings:
    """Everything the digest pipeline reads from the environment."""

    api_key: Optional[str] = None
    from_address: Optional[str] = None
    app_url: str = DEFAULT_APP_URL
    secret: Optional[str] = None
    endpoint: str = RESEND_ENDPOINT
    max_retries: int = MAX_RETRIES
    backoff_seconds: float = INITIAL_BACKOFF_SECONDS

    @classmethod
    def from_env(cls) -> "DigestSettings":
        app_url = (os.getenv("APP_URL") or DEFAULT_APP_URL).rstrip("/")
        return cls(
            api_key=os.getenv("RESEND_API_KEY") or None,
            from_address=os.getenv("DIGEST_FROM_EMAIL") or None,
            app_url=app_url,
            secret=os.getenv("DIGEST_SECRET") or None,
            endpoint=os.getenv("RESEND_ENDPOINT", RESEND_ENDPOINT),
            max_retries=max(0, _env_int("DIGEST_MAX_RETRIES", MAX_RETRIES)),
            backoff_seconds=max(0.0, _env_float("DIGEST_BACKOFF_SECONDS", INITIAL_BACKOFF_SECONDS)),
        )


def normalize_frequency(value, allowed=DIGEST_FREQUENCIES) -> Optional[str]:
    """Return ``value`` if it is exactly one of ``allowed``, else None."""
    if not isinstance(value, str):
        return None
    return value if value in allowed else None
