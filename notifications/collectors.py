from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from database import utcnow

from .config import LOOKBACK_HOURS
from .models import CompanyGroup, DigestEvent, DigestJob, DigestPayload
from .rendering import build_intro, build_subject, render_html, render_text
from .repository import DigestRepository

LOGGER = logging.getLogger(__name__)


def window_start(frequency: str, now: Optional[datetime] = None) -> datetime:
    """Start of the sliding lookback window for ``frequency``."""
    try:
        hours = LOOKBACK_HOURS[frequency]
    except KeyError:
        raise ValueError(f"Unsupported digest frequency: {frequency!r}") from None
    return (now or utcnow()) - timedelta(hours=hours)


def group_events_by_company(events: Iterable[DigestEvent]) -> List[CompanyGroup]:
    groups: Dict[str, CompanyGroup] = {}
    for event in events:
        group = groups.get(event.company_id)
        if group is None:
            group = CompanyGroup(company_id=event.company_id, company_name=event.company_name)
            groups[event.company_id] = group
        group.add(DigestJob(id=event.job_id, title=event.job_title, created_at=event.created_at))

    for group in groups.values():
        group.jobs.sort(key=lambda job: job.created_at, reverse=True)
    return list(groups.values())


def build_digests(
    frequency: str,
    repository: DigestRepository,
    *,
    app_url: str,
    now: Optional[datetime] = None,
) -> List[DigestPayload]:
    """Build one digest per subscriber of ``frequency`` with pending events."""
    start = window_start(frequency, now)

    subscribers = repository.find_subscribers(frequency)
    if not subscribers:
        LOGGER.info("No %s digest subscribers", frequency)
        return []

    intro = build_intro(frequency)
    payloads: List[DigestPayload] = []
    for subscriber in subscribers:
        if not subscriber.email:
            continue
        events = repository.find_pending_events(subscriber.user_id, start)
        if not events:
            continue

        groups = group_events_by_company(events)
        payloads.append(
            DigestPayload(
                user_id=subscriber.user_id,
                email=subscriber.email,
                subject=build_subject(frequency, len(events)),
                html=render_html(intro, groups, app_url),
                text=render_text(intro, groups, app_url),
                event_ids=[event.id for event in events],
            )
        )

    LOGGER.info("Built %d %s digests for %d subscribers", len(payloads), frequency, len(subscribers))
    return payloads


__all__ = [
    "window_start",
    "group_events_by_company",
    "build_digests",
]
