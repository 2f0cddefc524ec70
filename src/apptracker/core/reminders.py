from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta
from typing import Any

from apptracker.config import Settings, get_settings
from apptracker.core.mailer import ResendMailer, render_email
from apptracker.db.models import Application
from apptracker.db.repositories import Repository
from apptracker.types import BatchResult, SendResult

logger = logging.getLogger(__name__)


def parse_when(value: Any) -> datetime | None:
    """Parse an ISO date or datetime; naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            day = date.fromisoformat(text[:10])
        except ValueError:
            return None
        parsed = datetime(day.year, day.month, day.day)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def interview_datetime(data: Mapping[str, Any]) -> datetime | None:
    raw_date = data.get("date")
    if not isinstance(raw_date, str) or not raw_date.strip():
        return None
    raw_time = data.get("time")
    if "T" not in raw_date and isinstance(raw_time, str) and raw_time.strip():
        combined = parse_when(f"{raw_date.strip()[:10]}T{raw_time.strip()}")
        if combined is not None:
            return combined
    return parse_when(raw_date)


def format_long_date(value: datetime) -> str:
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def format_clock(value: datetime) -> str:
    hour = value.hour % 12 or 12
    return f"{hour}:{value:%M} {'AM' if value.hour < 12 else 'PM'}"


def reminder_email(data: Mapping[str, Any], when: datetime, app_url: str) -> tuple[str, str]:
    subject = f"Interview Reminder: {data.get('company', '')} - {data.get('role', '')}"
    html = render_email(
        "interview_reminder.html",
        company=data.get("company") or "",
        role=data.get("role") or "",
        formatted_date=format_long_date(when),
        formatted_time=data.get("time") or format_clock(when),
        interview_type=data.get("type") or "",
        notes=data.get("notes") or "",
        interviews_url=f"{app_url.rstrip('/')}/interviews",
    )
    return subject, html


class ReminderService:
    def __init__(self, repo: Repository, mailer: ResendMailer | None = None, settings: Settings | None = None):
        self.repo = repo
        self.settings = settings or get_settings()
        self.mailer = mailer or ResendMailer(self.settings)

    def _is_due(self, when: datetime, now: datetime, hours_before: int, test_mode: bool) -> bool:
        if test_mode:
            return when >= now
        window_start = now + timedelta(hours=hours_before)
        window_end = window_start + timedelta(minutes=self.settings.reminder_window_min)
        return window_start <= when <= window_end

    def send_interview_reminders(
        self,
        now: datetime | None = None,
        *,
        hours_before: int | None = None,
        test_mode: bool = False,
        respect_preferences: bool = True,
    ) -> BatchResult:
        now = now or datetime.now(UTC)
        default_hours = hours_before or self.settings.reminder_hours_before

        user_hours: dict[str, int] = {}
        if respect_preferences:
            recipients = self.repo.list_reminder_recipients()
            if not recipients:
                return BatchResult(message="No users have email reminders enabled")
            user_hours = {pref.user_id: pref.reminder_hours_before for pref in recipients}
            rows = self.repo.list_rows("interviews", user_hours)
        else:
            rows = self.repo.list_rows("interviews")

        if not rows:
            return BatchResult(message="No interviews to remind about")

        due: list[tuple[Application, datetime]] = []
        for row in rows:
            data = row.data or {}
            if data.get("reminderSent"):
                continue
            when = interview_datetime(data)
            if when is None:
                continue
            if self._is_due(when, now, user_hours.get(row.user_id, default_hours), test_mode):
                due.append((row, when))

        result = BatchResult(message=f"Processed {len(due)} interviews", processed=len(due))
        for row, when in due:
            user = self.repo.get_user(row.user_id)
            if user is None or not user.email:
                logger.error("Could not get email for user %s", row.user_id)
                result.record(SendResult(email="unknown", success=False, error="Could not get user email"))
                continue

            subject, html = reminder_email(row.data, when, self.settings.app_public_url)
            sent = self.mailer.send(user.email, subject, html)
            result.record(sent)
            if sent.success:
                self.repo.update_record_data(row.id, {**row.data, "reminderSent": True})

        logger.info("Interview reminders sent=%s failed=%s", result.sent, result.failed)
        return result
