import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime

import pytest

import database
from notifications.channels import EmailDeliveryError


NOW = datetime(2026, 10, 18, 12, 0)


@pytest.fixture(autouse=True)
def clean_db():
    database.Base.metadata.drop_all(bind=database.engine)
    database.Base.metadata.create_all(bind=database.engine)
    yield


def add_company(session, name, profile_name=None):
    company = database.UserModel(name=name, account_type=database.ACCOUNT_COMPANY)
    session.add(company)
    session.flush()
    if profile_name:
        session.add(database.CompanyProfileModel(user_id=company.id, company_name=profile_name))
    return company


def add_user(session, email, frequency="NONE"):
    user = database.UserModel(email=email, name=email.split("@")[0], notification_frequency=frequency)
    session.add(user)
    session.flush()
    return user


def add_event(session, user, company, title, created_at, emailed_at=None):
    job = database.JobModel(company_id=company.id, title=title, posted_at=created_at)
    session.add(job)
    session.flush()
    event = database.JobPostEventModel(
        user_id=user.id,
        company_id=company.id,
        job_id=job.id,
        job_title=title,
        created_at=created_at,
        emailed_at=emailed_at,
    )
    session.add(event)
    session.flush()
    return event


class FakeSender:
    """Records digests instead of calling the email provider."""

    def __init__(self, fail_for=(), config_error=None):
        self.fail_for = set(fail_for)
        self.config_error = config_error
        self.sent = []

    def validate(self):
        if self.config_error:
            raise self.config_error

    def send_digest(self, digest):
        if digest.email in self.fail_for:
            raise EmailDeliveryError("Resend error (422): rejected", status_code=422)
        self.sent.append(digest)
