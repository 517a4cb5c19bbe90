from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from .collectors import build_digests
from .models import DigestRunResult
from .repository import DigestRepository

LOGGER = logging.getLogger(__name__)


def run_digest(
    frequency: str,
    *,
    repository: DigestRepository,
    sender,
    app_url: str,
    commit: bool = False,
    now: Optional[datetime] = None,
) -> DigestRunResult:
    """Build, send and optionally commit one batch of digests.

    ``sender`` needs ``validate()`` and ``send_digest(payload)``. Only digests
    that were sent successfully have their events marked as emailed, and only
    when ``commit`` is true. Without ``commit`` the emails still go out but a
    later run will pick the same events up again.
    """
    sender.validate()

    result = DigestRunResult(frequency=frequency, commit=commit)
    result.digests = build_digests(frequency, repository, app_url=app_url, now=now)

    sent_event_ids: List[str] = []
    for digest in result.digests:
        try:
            sender.send_digest(digest)
        except Exception as exc:
            result.failed += 1
            result.failures[digest.user_id] = str(exc)
            LOGGER.error("Failed to send digest email to user %s: %s", digest.user_id, exc)
            continue
        result.sent += 1
        if commit:
            sent_event_ids.extend(digest.event_ids)

    if commit and sent_event_ids:
        result.marked = repository.mark_events_emailed(sent_event_ids)

    LOGGER.info(
        "%s digest run: %d built, %d sent, %d failed, %d events committed",
        frequency,
        result.count,
        result.sent,
        result.failed,
        result.marked,
    )
    return result
