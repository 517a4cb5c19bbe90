"""Celery application factory for the scheduled digest emails."""
from __future__ import annotations

import os
from celery import Celery
from celery.schedules import crontab

DEFAULT_BROKER_URL = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
DEFAULT_BACKEND_URL = os.getenv("CELERY_RESULT_BACKEND", DEFAULT_BROKER_URL)


def create_celery_app() -> Celery:
    """Create and configure the Celery app for the project."""
    celery_app = Celery(
        "jobmatch_notifications",
        broker=DEFAULT_BROKER_URL,
        backend=DEFAULT_BACKEND_URL,
        include=["notifications.tasks"],
    )

    digest_hour = int(os.getenv("DIGEST_DAILY_HOUR", "8"))
    celery_app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone=os.getenv("CELERY_TIMEZONE", "UTC"),
        enable_utc=True,
        beat_schedule={
            "send-daily-digests": {
                "task": "notifications.tasks.send_daily_digests",
                "schedule": crontab(hour=digest_hour, minute=0),
            },
            "send-weekly-digests": {
                "task": "notifications.tasks.send_weekly_digests",
                "schedule": crontab(
                    hour=digest_hour,
                    minute=0,
                    day_of_week=os.getenv("DIGEST_WEEKLY_DAY", "mon"),
                ),
            },
        },
    )

    return celery_app


celery_app = create_celery_app()
