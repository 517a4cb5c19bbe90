# app.py
from flask import Flask, request, jsonify
import os, secrets
from typing import Any, Dict, Optional

import click
from flask_login import LoginManager, UserMixin, current_user, login_required
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import joinedload

from database import (
    ACCOUNT_COMPANY,
    ACCOUNT_STUDENT,
    FREQUENCY_DAILY,
    CompanyFollowModel,
    SessionLocal,
    JobModel,
    JobPostEventModel,
    NotificationModel,
    UserModel,
    company_display_name,
    utcnow,
)
from notifications.channels import EmailConfigurationError, ResendEmailSender
from notifications.config import (
    DIGEST_FREQUENCIES,
    FEED_DEFAULT_LIMIT,
    FEED_MAX_LIMIT,
    VALID_FREQUENCIES as NOTIFICATION_FREQUENCIES,
    DigestSettings,
    normalize_frequency,
)
from notifications.events import record_job_posted
from notifications.models import FeedItem, utc_isoformat
from notifications.repository import SqlDigestRepository
from notifications.service import run_digest

app = Flask(__name__)
app.secret_key = os.getenv("SECRET_KEY", "dev-only-key")
app.config.update(
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_SECURE=os.getenv("FLASK_ENV") == "production",
)

login_manager = LoginManager()
login_manager.init_app(app)

DEBUG = os.getenv("FLASK_ENV") != "production"

TRUTHY = {"1", "true", "yes", "on"}


# ------------------------------- Auth model -------------------------------
class AppUser(UserMixin):
    def __init__(self, user_id: str, email: str | None = None, account_type: str = "STUDENT"):
        self.id = user_id
        self.email = email
        self.account_type = account_type

    @classmethod
    def from_model(cls, model: UserModel):
        return cls(user_id=model.id, email=model.email, account_type=model.account_type)


@login_manager.user_loader
def load_logged_in_user(user_id: str):
    with SessionLocal() as session:
        record = session.get(UserModel, user_id)
        if record:
            return AppUser.from_model(record)
    return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Unauthorized"}), 401


def require_user_id() -> str:
    return current_user.id


# ------------------------------- Digest wiring -------------------------------
def get_digest_settings() -> DigestSettings:
    return DigestSettings.from_env()


def get_digest_repository() -> SqlDigestRepository:
    return SqlDigestRepository(SessionLocal)


def get_digest_sender(settings: DigestSettings) -> ResendEmailSender:
    return ResendEmailSender.from_settings(settings)


def parse_commit(value: Any) -> bool:
    if value is True:
        return True
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY
    return False


def check_digest_secret(settings: DigestSettings):
    """Return an error response unless the request carries the digest secret."""
    if not settings.secret:
        return jsonify({"error": "Digest secret not configured"}), 500
    provided = request.headers.get("X-Digest-Secret") or ""
    if not secrets.compare_digest(provided.encode(), settings.secret.encode()):
        return jsonify({"error": "Unauthorized"}), 401
    return None


def execute_digest_run(settings: DigestSettings, frequency: str, commit: bool):
    try:
        result = run_digest(
            frequency,
            repository=get_digest_repository(),
            sender=get_digest_sender(settings),
            app_url=settings.app_url,
            commit=commit,
        )
    except EmailConfigurationError as exc:
        app.logger.error("Digest run aborted: %s", exc)
        return jsonify({"error": str(exc)}), 500
    return jsonify(result.to_dict())


@app.get("/healthz")
def healthz():
    return {"ok": True}, 200


@app.get("/api/notifications/digest")
def digest_trigger():
    settings = get_digest_settings()
    denied = check_digest_secret(settings)
    if denied:
        return denied

    frequency = normalize_frequency(request.args.get("frequency"))
    if frequency is None:
        return jsonify({"error": "Invalid frequency"}), 400
    commit = parse_commit(request.args.get("commit"))
    return execute_digest_run(settings, frequency, commit)


@app.post("/api/notifications/digest")
def digest_trigger_post():
    settings = get_digest_settings()
    denied = check_digest_secret(settings)
    if denied:
        return denied

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid frequency"}), 400
    frequency = normalize_frequency(payload.get("frequency"))
    if frequency is None:
        return jsonify({"error": "Invalid frequency"}), 400
    commit = parse_commit(payload.get("commit"))
    return execute_digest_run(settings, frequency, commit)


# ------------------------------- Preferences -------------------------------
@app.get("/api/notifications/preference")
@login_required
def notification_preference():
    user_id = require_user_id()
    with SessionLocal() as session:
        user = session.get(UserModel, user_id)
        if user is None:
            return jsonify({"error": "User not found"}), 404
        return jsonify({"frequency": user.notification_frequency})


@app.patch("/api/notifications/preference")
@login_required
def update_notification_preference():
    user_id = require_user_id()
    payload = request.get_json(silent=True)
    raw = payload.get("frequency") if isinstance(payload, dict) else None
    frequency = normalize_frequency(raw, NOTIFICATION_FREQUENCIES)
    if frequency is None:
        return jsonify({"error": "Invalid frequency"}), 400

    with SessionLocal() as session, session.begin():
        user = session.get(UserModel, user_id)
        if user is None:
            return jsonify({"error": "User not found"}), 404
        user.notification_frequency = frequency
    return jsonify({"frequency": frequency})


# ------------------------------- Notification feed -------------------------------
def parse_limit(value: Optional[str]) -> int:
    if not value:
        return FEED_DEFAULT_LIMIT
    try:
        parsed = int(float(value))
    except (TypeError, ValueError):
        return FEED_DEFAULT_LIMIT
    if parsed <= 0:
        return FEED_DEFAULT_LIMIT
    return min(parsed, FEED_MAX_LIMIT)


def _feed_item(model: NotificationModel) -> FeedItem:
    return FeedItem(
        id=model.id,
        type=model.type,
        job_id=model.job_id,
        company_id=model.company_id,
        job_title=model.job_title or (model.job.title if model.job else None),
        company_name=company_display_name(model.company) if model.company else None,
        created_at=model.created_at,
        read_at=model.read_at,
    )


def load_notification_feed(user_id: str, limit: int) -> Dict[str, Any]:
    stmt = (
        select(NotificationModel)
        .options(
            joinedload(NotificationModel.company).joinedload(UserModel.company_profile),
            joinedload(NotificationModel.job),
        )
        .where(NotificationModel.user_id == user_id)
        .order_by(NotificationModel.created_at.desc())
        .limit(limit)
    )
    unread_stmt = (
        select(func.count())
        .select_from(NotificationModel)
        .where(NotificationModel.user_id == user_id, NotificationModel.read_at.is_(None))
    )
    with SessionLocal() as session:
        items = [_feed_item(row) for row in session.execute(stmt).scalars().all()]
        unread = session.execute(unread_stmt).scalar_one()
    return {"notifications": [item.to_dict() for item in items], "unread_count": unread}


@app.get("/api/notifications")
@login_required
def notification_feed():
    user_id = require_user_id()
    return jsonify(load_notification_feed(user_id, parse_limit(request.args.get("limit"))))


@app.patch("/api/notifications")
@login_required
def mark_notifications_read():
    user_id = require_user_id()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid payload"}), 400

    raw_ids = payload.get("ids")
    ids = [i.strip() for i in raw_ids if isinstance(i, str) and i.strip()] if isinstance(raw_ids, list) else []
    mark_all = payload.get("mark_all") is True
    if not mark_all and not ids:
        return jsonify({"error": "No notifications specified"}), 400

    stmt = update(NotificationModel).where(NotificationModel.user_id == user_id)
    if mark_all:
        stmt = stmt.where(NotificationModel.read_at.is_(None))
    else:
        stmt = stmt.where(NotificationModel.id.in_(ids))
    stmt = stmt.values(read_at=utcnow()).execution_options(synchronize_session=False)

    with SessionLocal() as session, session.begin():
        updated = session.execute(stmt).rowcount
    return jsonify({"updated": updated})


# ------------------------------- Company follows -------------------------------
def _find_follow(session, user_id: str, company_id: str):
    return session.execute(
        select(CompanyFollowModel).where(
            CompanyFollowModel.user_id == user_id,
            CompanyFollowModel.company_id == company_id,
        )
    ).scalar_one_or_none()


@app.get("/api/companies/<company_id>/follow")
@login_required
def company_follow_status(company_id: str):
    user_id = require_user_id()
    with SessionLocal() as session:
        follow = _find_follow(session, user_id, company_id)
    return jsonify({"is_following": follow is not None})


@app.post("/api/companies/<company_id>/follow")
@login_required
def follow_company(company_id: str):
    user_id = require_user_id()
    with SessionLocal() as session, session.begin():
        user = session.get(UserModel, user_id)
        if user is None or user.account_type != ACCOUNT_STUDENT:
            return jsonify({"error": "Only students can follow companies"}), 403

        company = session.get(UserModel, company_id)
        if company is None or company.account_type != ACCOUNT_COMPANY:
            return jsonify({"error": "Company not found"}), 404

        follow = _find_follow(session, user_id, company_id)
        if follow is None:
            follow = CompanyFollowModel(user_id=user_id, company_id=company_id, created_at=utcnow())
            session.add(follow)
        created_at = follow.created_at
    return jsonify({"followed": True, "created_at": utc_isoformat(created_at)})


@app.delete("/api/companies/<company_id>/follow")
@login_required
def unfollow_company(company_id: str):
    user_id = require_user_id()
    stmt = delete(CompanyFollowModel).where(
        CompanyFollowModel.user_id == user_id,
        CompanyFollowModel.company_id == company_id,
    )
    with SessionLocal() as session, session.begin():
        session.execute(stmt)
    return jsonify({"followed": False})


# ------------------------------- CLI -------------------------------
@app.cli.command("send-digest")
@click.option("--frequency", type=click.Choice(DIGEST_FREQUENCIES, case_sensitive=False), required=True)
@click.option("--commit", is_flag=True, help="Mark sent events as emailed.")
def send_digest_command(frequency: str, commit: bool):
    """Build and send one batch of digest emails."""
    settings = get_digest_settings()
    try:
        result = run_digest(
            frequency.upper(),
            repository=get_digest_repository(),
            sender=get_digest_sender(settings),
            app_url=settings.app_url,
            commit=commit,
        )
    except EmailConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    summary = result.to_dict(include_digests=False)
    click.echo(" ".join(f"{key}={value}" for key, value in summary.items()))


@app.cli.command("post-job")
@click.option("--company", "company_id", required=True, help="Id of the company account posting the job.")
@click.option("--title", required=True, help="Job title.")
def post_job_command(company_id: str, title: str):
    """Post a job and notify the company's followers."""
    with SessionLocal() as session, session.begin():
        company = session.get(UserModel, company_id)
        if company is None or company.account_type != ACCOUNT_COMPANY:
            raise click.ClickException("Company not found")
        job = JobModel(company_id=company.id, title=title.strip())
        session.add(job)
        notified = record_job_posted(session, job)
        click.echo(f"Posted job {job.id} ({job.title}); notified {notified} follower{'s' if notified != 1 else ''}.")


@app.cli.command("seed-job-post-event")
@click.option("--user", "user_email", help="Use a specific user email.")
@click.option("--job", "job_id", help="Use a specific job id.")
@click.option(
    "--frequency",
    type=click.Choice(DIGEST_FREQUENCIES, case_sensitive=False),
    default=FREQUENCY_DAILY,
    show_default=True,
    help="Frequency to enable if the user has digests turned off.",
)
@click.option("--no-update", is_flag=True, help="Do not enable digests for a user set to NONE.")
def seed_job_post_event_command(user_email: Optional[str], job_id: Optional[str], frequency: str, no_update: bool):
    """Create a pending job post event so a digest has something to send."""
    with SessionLocal() as session, session.begin():
        if user_email:
            user = session.execute(select(UserModel).where(UserModel.email == user_email)).scalar_one_or_none()
        else:
            user = session.execute(
                select(UserModel).where(UserModel.email.is_not(None)).order_by(UserModel.email).limit(1)
            ).scalar_one_or_none()
        if user is None:
            raise click.ClickException("No user with an email found. Create a user first.")

        if user.notification_frequency == "NONE":
            if no_update:
                raise click.ClickException(
                    f"User {user.email} has notifications disabled. Re-run without --no-update to enable."
                )
            user.notification_frequency = frequency.upper()
            click.echo(f"Updated {user.email} frequency to {user.notification_frequency}.")

        if job_id:
            job = session.get(JobModel, job_id)
        else:
            job = session.execute(select(JobModel).order_by(JobModel.posted_at.desc()).limit(1)).scalar_one_or_none()
        if job is None:
            raise click.ClickException("No jobs found. Create a job posting first.")

        event = JobPostEventModel(user_id=user.id, company_id=job.company_id, job_id=job.id, job_title=job.title)
        session.add(event)
        session.flush()
        click.echo(f"Created JobPostEvent {event.id} for {user.email}: {job.title} ({job.id})")


# ------------- Run -------------
if __name__ == "__main__":
    app.run(debug=DEBUG)
