from __future__ import annotations

from datetime import datetime
from typing import Iterable, List

from jinja2 import Environment

from .models import CompanyGroup

_INTROS = {
    "DAILY": "Here are today's new job postings from companies you follow.",
    "WEEKLY": "Here are this week's new job postings from companies you follow.",
}

_HTML_TEMPLATE = """\
<div style="font-family:Arial, sans-serif; color:#1f2a44;">
  <h2 style="margin:0 0 12px; font-size:20px;">{{ intro }}</h2>
  {%- for group in groups %}
  <div style="margin-bottom:24px;">
    <h3 style="margin:0 0 8px;font-size:16px;color:#1f2a44;">{{ group.company_name }}</h3>
    <ul style="margin:0;padding-left:18px;color:#1f2a44;">
      {%- for job in group.jobs %}
      <li style="margin-bottom:6px;">
        <a href="{{ app_url }}/dashboard?jobId={{ job.id | urlencode }}" style="color:#2f5bff;text-decoration:none;">{{ job.title }}</a>
        <span style="color:#6b7280;font-size:12px;"> &middot; {{ job.created_at | short_date }}</span>
      </li>
      {%- endfor %}
    </ul>
  </div>
  {%- endfor %}
  <a href="{{ app_url }}/dashboard" style="display:inline-block;background:#2f5bff;color:#ffffff;padding:10px 16px;border-radius:8px;text-decoration:none;font-size:14px;font-weight:600;">View all jobs</a>
</div>
"""


def short_date(value: datetime) -> str:
    return f"{value.strftime('%b')} {value.day}"


_env = Environment(autoescape=True)
_env.filters["short_date"] = short_date
_html_template = _env.from_string(_HTML_TEMPLATE)


def build_subject(frequency: str, count: int) -> str:
    prefix = "Daily" if frequency == "DAILY" else "Weekly"
    return f"{prefix} job digest: {count} new job{'s' if count != 1 else ''}"


def build_intro(frequency: str) -> str:
    return _INTROS["DAILY" if frequency == "DAILY" else "WEEKLY"]


def job_link(app_url: str, job_id: str) -> str:
    return f"{app_url}/dashboard?jobId={job_id}"


def render_text(intro: str, groups: Iterable[CompanyGroup], app_url: str) -> str:
    lines: List[str] = [intro, ""]
    for group in groups:
        lines.append(group.company_name)
        for job in group.jobs:
            lines.append(f"- {job.title} ({job_link(app_url, job.id)})")
        lines.append("")
    lines.append(f"View all jobs: {app_url}/dashboard")
    return "\n".join(lines)


def render_html(intro: str, groups: Iterable[CompanyGroup], app_url: str) -> str:
    return _html_template.render(intro=intro, groups=list(groups), app_url=app_url)
