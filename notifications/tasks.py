from __future__ import annotations

import logging
from typing import Dict

from celery import shared_task

from database import SessionLocal

from .channels import ResendEmailSender
from .config import DigestSettings, normalize_frequency
from .repository import SqlDigestRepository
from .service import run_digest

LOGGER = logging.getLogger(__name__)


def run_scheduled_digest(frequency: str, commit: bool = True) -> Dict[str, object]:
    tier = normalize_frequency(frequency)
    if tier is None:
        raise ValueError(f"Unsupported digest frequency: {frequency!r}")
    settings = DigestSettings.from_env()
    result = run_digest(
        tier,
        repository=SqlDigestRepository(SessionLocal),
        sender=ResendEmailSender.from_settings(settings),
        app_url=settings.app_url,
        commit=commit,
    )
    return result.to_dict(include_digests=False)


@shared_task(name="notifications.tasks.send_digest")
def send_digest(frequency: str, commit: bool = True) -> Dict[str, object]:
    summary = run_scheduled_digest(frequency, commit=commit)
    LOGGER.info("Dispatched %s of %s %s digests", summary["sent"], summary["count"], summary["frequency"])
    return summary


@shared_task(name="notifications.tasks.send_daily_digests")
def send_daily_digests() -> Dict[str, object]:
    return send_digest("DAILY")


@shared_task(name="notifications.tasks.send_weekly_digests")
def send_weekly_digests() -> Dict[str, object]:
    return send_digest("WEEKLY")
