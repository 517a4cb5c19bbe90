"""Storage access for the digest pipeline."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import joinedload

from database import (
    JobPostEventModel,
    UserModel,
    company_display_name,
    utcnow,
)

from .models import DigestEvent, Subscriber

LOGGER = logging.getLogger(__name__)


class DigestRepository(Protocol):
    def find_subscribers(self, frequency: str) -> List[Subscriber]:
        ...

    def find_pending_events(self, user_id: str, window_start: datetime) -> List[DigestEvent]:
        ...

    def mark_events_emailed(self, event_ids: Iterable[str], when: Optional[datetime] = None) -> int:
        ...


class SqlDigestRepository:
    """DigestRepository backed by the application's SQLAlchemy models."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def find_subscribers(self, frequency: str) -> List[Subscriber]:
        stmt = (
            select(UserModel.id, UserModel.email)
            .where(UserModel.notification_frequency == frequency)
            .where(UserModel.email.is_not(None))
            .where(UserModel.email != "")
            .order_by(UserModel.id)
        )
        with self._session_factory() as session:
            rows = session.execute(stmt).all()
        return [Subscriber(user_id=row.id, email=row.email, frequency=frequency) for row in rows]

    def find_pending_events(self, user_id: str, window_start: datetime) -> List[DigestEvent]:
        stmt = (
            select(JobPostEventModel)
            .options(joinedload(JobPostEventModel.company).joinedload(UserModel.company_profile))
            .where(JobPostEventModel.user_id == user_id)
            .where(JobPostEventModel.emailed_at.is_(None))
            .where(JobPostEventModel.created_at >= window_start)
            .order_by(JobPostEventModel.created_at.desc())
        )
        with self._session_factory() as session:
            events = session.execute(stmt).scalars().all()
            return [
                DigestEvent(
                    id=event.id,
                    job_id=event.job_id,
                    job_title=event.job_title,
                    created_at=event.created_at,
                    company_id=event.company_id,
                    company_name=company_display_name(event.company),
                )
                for event in events
            ]

    def mark_events_emailed(self, event_ids: Iterable[str], when: Optional[datetime] = None) -> int:
        ids = list(dict.fromkeys(event_ids))
        if not ids:
            return 0
        stamp = when or utcnow()
        stmt = (
            update(JobPostEventModel)
            .where(JobPostEventModel.id.in_(ids))
            .values(emailed_at=stamp)
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as session, session.begin():
            result = session.execute(stmt)
        LOGGER.info("Marked %d job post events as emailed", result.rowcount)
        return result.rowcount
