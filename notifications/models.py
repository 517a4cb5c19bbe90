from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


def utc_isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


@dataclass(slots=True)
class Subscriber:
    """A user who opted into email digests at some frequency."""

    user_id: str
    email: str
    frequency: str


@dataclass(slots=True)
class DigestEvent:
    """One pending job-post event, flattened for digest rendering."""

    id: str
    job_id: str
    job_title: str
    created_at: datetime
    company_id: str
    company_name: str


@dataclass(slots=True)
class DigestJob:
    id: str
    title: str
    created_at: datetime


@dataclass(slots=True)
class CompanyGroup:
    """A subscriber's pending jobs bucketed by the posting company."""

    company_id: str
    company_name: str
    jobs: List[DigestJob] = field(default_factory=list)

    def add(self, job: DigestJob) -> None:
        self.jobs.append(job)


@dataclass(slots=True)
class DigestPayload:
    """Rendered digest for a single subscriber."""

    user_id: str
    email: str
    subject: str
    html: str
    text: str
    event_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "subject": self.subject,
            "html": self.html,
            "text": self.text,
            "event_ids": list(self.event_ids),
        }


@dataclass(slots=True)
class DigestRunResult:
    frequency: str
    commit: bool
    sent: int = 0
    failed: int = 0
    marked: int = 0
    digests: List[DigestPayload] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.digests)

    def to_dict(self, include_digests: bool = True) -> Dict[str, object]:
        data: Dict[str, object] = {
            "frequency": self.frequency,
            "commit": self.commit,
            "count": self.count,
            "sent": self.sent,
            "failed": self.failed,
        }
        if include_digests:
            data["digests"] = [digest.to_dict() for digest in self.digests]
        return data


@dataclass(slots=True)
class FeedItem:
    """In-app notification as exposed by the feed endpoint."""

    id: str
    type: str
    job_id: Optional[str]
    company_id: Optional[str]
    job_title: Optional[str]
    company_name: Optional[str]
    created_at: datetime
    read_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "id": self.id,
            "type": self.type,
            "job_id": self.job_id,
            "company_id": self.company_id,
            "job_title": self.job_title,
            "company_name": self.company_name,
            "created_at": utc_isoformat(self.created_at),
            "read_at": utc_isoformat(self.read_at) if self.read_at else None,
        }
