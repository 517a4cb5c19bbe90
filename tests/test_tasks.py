from datetime import timedelta

import pytest

import app
import celery_app
from conftest import FakeSender, add_company, add_event, add_user
from database import CompanyFollowModel, JobModel, JobPostEventModel, NotificationModel, SessionLocal, UserModel, utcnow
from notifications import tasks


def seed_pending(frequency):
    with SessionLocal() as session, session.begin():
        user = add_user(session, "sched@example.com", frequency)
        company = add_company(session, "Acme")
        event = add_event(session, user, company, "Designer", utcnow() - timedelta(hours=1))
        return event.id


def patch_sender(monkeypatch, sender):
    monkeypatch.setattr(tasks.ResendEmailSender, "from_settings", classmethod(lambda cls, settings: sender))


def test_scheduled_digest_commits_by_default(monkeypatch):
    sender = FakeSender()
    patch_sender(monkeypatch, sender)
    event_id = seed_pending("DAILY")

    summary = tasks.send_daily_digests()

    assert summary == {"frequency": "DAILY", "commit": True, "count": 1, "sent": 1, "failed": 0}
    assert len(sender.sent) == 1
    with SessionLocal() as session:
        assert session.get(JobPostEventModel, event_id).emailed_at is not None


def test_scheduled_digest_rejects_unknown_frequency():
    with pytest.raises(ValueError):
        tasks.run_scheduled_digest("HOURLY")


def test_beat_schedule_covers_both_frequencies():
    schedule = celery_app.celery_app.conf.beat_schedule
    assert schedule["send-daily-digests"]["task"] == "notifications.tasks.send_daily_digests"
    assert schedule["send-weekly-digests"]["task"] == "notifications.tasks.send_weekly_digests"


def test_send_digest_cli_dry_run(monkeypatch):
    sender = FakeSender()
    monkeypatch.setattr(app, "get_digest_sender", lambda _settings: sender)
    event_id = seed_pending("WEEKLY")

    result = app.app.test_cli_runner().invoke(args=["send-digest", "--frequency", "weekly"])

    assert result.exit_code == 0, result.output
    assert "sent=1" in result.output
    with SessionLocal() as session:
        assert session.get(JobPostEventModel, event_id).emailed_at is None


def test_seed_job_post_event_cli_enables_digests():
    with SessionLocal() as session, session.begin():
        user = add_user(session, "seed@example.com", "NONE")
        company = add_company(session, "Acme")
        session.add(JobModel(company_id=company.id, title="Recruiter"))
        user_id = user.id

    runner = app.app.test_cli_runner()
    result = runner.invoke(args=["seed-job-post-event", "--user", "seed@example.com", "--frequency", "WEEKLY"])

    assert result.exit_code == 0, result.output
    with SessionLocal() as session:
        assert session.get(UserModel, user_id).notification_frequency == "WEEKLY"
        events = session.query(JobPostEventModel).filter_by(user_id=user_id).all()
    assert [e.job_title for e in events] == ["Recruiter"]


def test_seed_job_post_event_cli_respects_no_update():
    with SessionLocal() as session, session.begin():
        add_user(session, "muted@example.com", "NONE")

    result = app.app.test_cli_runner().invoke(args=["seed-job-post-event", "--user", "muted@example.com", "--no-update"])

    assert result.exit_code != 0
    assert "notifications disabled" in result.output


def test_post_job_cli_notifies_followers():
    with SessionLocal() as session, session.begin():
        company = add_company(session, "Acme")
        fan = add_user(session, "fan@example.com", "WEEKLY")
        session.add(CompanyFollowModel(user_id=fan.id, company_id=company.id))
        company_id, fan_id = company.id, fan.id

    result = app.app.test_cli_runner().invoke(args=["post-job", "--company", company_id, "--title", "Platform Engineer"])

    assert result.exit_code == 0, result.output
    assert "notified 1 follower." in result.output
    with SessionLocal() as session:
        job = session.query(JobModel).one()
        events = session.query(JobPostEventModel).all()
        feed = session.query(NotificationModel).all()
    assert job.title == "Platform Engineer"
    assert [(e.user_id, e.job_id) for e in events] == [(fan_id, job.id)]
    assert [n.user_id for n in feed] == [fan_id]


def test_post_job_cli_rejects_unknown_company():
    result = app.app.test_cli_runner().invoke(args=["post-job", "--company", "missing", "--title", "Ghost"])

    assert result.exit_code != 0
    assert "Company not found" in result.output
