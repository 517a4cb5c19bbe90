from __future__ import annotations

import logging
import re
import time
from typing import Callable, Optional

import requests

from .config import INITIAL_BACKOFF_SECONDS, MAX_RETRIES, RESEND_ENDPOINT, DigestSettings
from .models import DigestPayload

LOGGER = logging.getLogger(__name__)

_BRACKETED_ADDRESS = re.compile(r"<([^>]+)>")
_BARE_ADDRESS = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmailConfigurationError(RuntimeError):
    """The email provider is missing credentials or has a bad sender."""


class EmailDeliveryError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, detail: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


def is_valid_from(value: Optional[str]) -> bool:
    """Loose check for ``Name <user@example.com>`` or ``user@example.com``."""
    trimmed = (value or "").strip()
    if not trimmed:
        return False
    match = _BRACKETED_ADDRESS.search(trimmed)
    candidate = match.group(1) if match else trimmed
    return bool(_BARE_ADDRESS.match(candidate))


def is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class ResendEmailSender:
    """Delivers digests through the Resend HTTP API with bounded retry."""

    def __init__(
        self,
        api_key: Optional[str],
        from_address: Optional[str],
        *,
        endpoint: str = RESEND_ENDPOINT,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = INITIAL_BACKOFF_SECONDS,
        timeout: float = 10,
        http=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.endpoint = endpoint
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.timeout = timeout
        self.http = http or requests
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: DigestSettings, **kwargs) -> "ResendEmailSender":
        return cls(
            settings.api_key,
            settings.from_address,
            endpoint=settings.endpoint,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_seconds,
            **kwargs,
        )

    def validate(self) -> None:
        if not self.api_key or not self.from_address:
            raise EmailConfigurationError("Email provider not configured")
        if not is_valid_from(self.from_address):
            raise EmailConfigurationError("Invalid from address format")

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff_base * (2 ** attempt)

    def send(self, to: str, subject: str, html: str, text: str) -> None:
        self.validate()

        payload = {
            "from": self.from_address,
            "to": to,
            "subject": subject,
            "html": html,
            "text": text,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        last_error: Optional[EmailDeliveryError] = None
        for attempt in range(self.max_retries + 1):
            try:
                resp = self.http.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
            except requests.RequestException as exc:
                raise EmailDeliveryError(f"Resend request failed: {exc}") from exc

            if 200 <= resp.status_code < 300:
                LOGGER.info("Sent digest '%s' to %s", subject, to)
                return

            detail = resp.text
            last_error = EmailDeliveryError(
                f"Resend error ({resp.status_code}): {detail}",
                status_code=resp.status_code,
                detail=detail,
            )
            if not is_retryable(resp.status_code) or attempt == self.max_retries:
                break

            delay = self.backoff_delay(attempt)
            LOGGER.warning(
                "Resend responded with %s for %s, retrying in %.2fs (attempt %d/%d)",
                resp.status_code,
                to,
                delay,
                attempt + 1,
                self.max_retries,
            )
            self.sleep(delay)

        raise last_error or EmailDeliveryError("Resend error: unknown")

    def send_digest(self, digest: DigestPayload) -> None:
        self.send(digest.email, digest.subject, digest.html, digest.text)
