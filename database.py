"""SQLAlchemy engine, session factory and models for the job board."""
from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.environ.get("DATA_DIR", BASE_DIR)

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URI")
DEFAULT_SQLITE_URL = f"sqlite:///{os.path.join(DATA_DIR, 'jobmatch.db')}"

FREQUENCY_NONE = "NONE"
FREQUENCY_DAILY = "DAILY"
FREQUENCY_WEEKLY = "WEEKLY"

ACCOUNT_STUDENT = "STUDENT"
ACCOUNT_COMPANY = "COMPANY"

NOTIFICATION_NEW_JOB = "NEW_JOB"


def utcnow() -> datetime:
    # Naive UTC; SQLite drops tzinfo on the way back out.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


def create_db_engine(url: str | None = None):
    url = url or DATABASE_URL or DEFAULT_SQLITE_URL
    engine_kwargs: dict[str, Any] = {"future": True}
    if str(url).startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            engine_kwargs["poolclass"] = StaticPool
        pool_pre_ping = False
    else:
        pool_pre_ping = True
    return create_engine(url, pool_pre_ping=pool_pre_ping, **engine_kwargs)


engine = create_db_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
Base = declarative_base()


class UserModel(Base):
    __tablename__ = "users"
    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), unique=True)
    name = Column(String(120))
    account_type = Column(String(20), default=ACCOUNT_STUDENT, nullable=False)
    notification_frequency = Column(String(10), default=FREQUENCY_NONE, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    company_profile = relationship("CompanyProfileModel", back_populates="user", uselist=False)
    jobs = relationship("JobModel", back_populates="company")


class CompanyProfileModel(Base):
    __tablename__ = "company_profiles"
    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    company_name = Column(String(200))

    user = relationship("UserModel", back_populates="company_profile")


class JobModel(Base):
    __tablename__ = "jobs"
    id = Column(String(32), primary_key=True, default=new_id)
    company_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    posted_at = Column(DateTime, default=utcnow, nullable=False)

    company = relationship("UserModel", back_populates="jobs")


class CompanyFollowModel(Base):
    __tablename__ = "company_follows"
    __table_args__ = (UniqueConstraint("user_id", "company_id", name="uq_company_follow"),)
    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    company_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class JobPostEventModel(Base):
    __tablename__ = "job_post_events"
    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    job_id = Column(String(32), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    job_title = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    emailed_at = Column(DateTime)

    company = relationship("UserModel", foreign_keys=[company_id])


class NotificationModel(Base):
    __tablename__ = "notifications"
    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), default=NOTIFICATION_NEW_JOB, nullable=False)
    company_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"))
    job_id = Column(String(32), ForeignKey("jobs.id", ondelete="SET NULL"))
    job_title = Column(String(200))
    created_at = Column(DateTime, default=utcnow, nullable=False)
    read_at = Column(DateTime)

    company = relationship("UserModel", foreign_keys=[company_id])
    job = relationship("JobModel")


def company_display_name(company: UserModel | None) -> str:
    if company is None:
        return "Company"
    profile = company.company_profile
    if profile is not None and profile.company_name:
        return profile.company_name
    return company.name or "Company"


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)


init_db()
