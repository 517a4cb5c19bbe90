"""Fan-out of a new job posting to the posting company's followers."""
from __future__ import annotations

import logging

from sqlalchemy import select

from database import (
    NOTIFICATION_NEW_JOB,
    CompanyFollowModel,
    JobModel,
    JobPostEventModel,
    NotificationModel,
    utcnow,
)

LOGGER = logging.getLogger(__name__)


def record_job_posted(session, job: JobModel) -> int:
    """Queue a digest event and an in-app notification for every follower.

    Runs inside the caller's transaction so the job and its events commit
    together. Returns the number of followers notified.
    """
    session.flush()
    follower_ids = session.execute(
        select(CompanyFollowModel.user_id).where(CompanyFollowModel.company_id == job.company_id)
    ).scalars().all()
    if not follower_ids:
        return 0

    created_at = utcnow()
    for user_id in follower_ids:
        session.add(
            JobPostEventModel(
                user_id=user_id,
                company_id=job.company_id,
                job_id=job.id,
                job_title=job.title,
                created_at=created_at,
            )
        )
        session.add(
            NotificationModel(
                user_id=user_id,
                type=NOTIFICATION_NEW_JOB,
                company_id=job.company_id,
                job_id=job.id,
                job_title=job.title,
                created_at=created_at,
            )
        )
    LOGGER.info("Queued job %s for %d followers of %s", job.id, len(follower_ids), job.company_id)
    return len(follower_ids)
