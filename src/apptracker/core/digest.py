from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from apptracker.config import Settings, get_settings
from apptracker.core.mailer import ResendMailer, render_email
from apptracker.core.reminders import parse_when
from apptracker.db.base import as_utc
from apptracker.db.models import Application
from apptracker.db.repositories import Repository
from apptracker.types import BatchResult, SendResult

logger = logging.getLogger(__name__)

MAX_UPCOMING = 3

# which record field dates an entry for the digest; creation time always counts too
_RELEVANT_DATE: dict[str, tuple[str, ...]] = {
    "applied": ("appliedOn",),
    "interviews": ("date",),
    "offers": ("offerReceivedDate", "decisionDate"),
    "rejected": ("decisionDate",),
    "withdrawn": ("withdrawnDate",),
    "wishlist": (),
}


@dataclass
class MonthlyStats:
    applied: int = 0
    interviews: int = 0
    offers: int = 0
    rejected: int = 0
    withdrawn: int = 0
    wishlist: int = 0
    upcoming: list[dict[str, str]] = field(default_factory=list)

    @property
    def total_activity(self) -> int:
        return self.applied + self.interviews + self.offers + self.rejected + self.withdrawn


def previous_month_bounds(now: datetime) -> tuple[datetime, datetime]:
    now = as_utc(now)
    this_month = datetime(now.year, now.month, 1, tzinfo=UTC)
    end = this_month - timedelta(microseconds=1)
    start = datetime(end.year, end.month, 1, tzinfo=UTC)
    return start, end


def motivational_message(total: int) -> str:
    if total == 0:
        return "No activity last month, but every journey starts with a single step. Let's make this month count!"
    if total < 5:
        return "You're making progress! Keep the momentum going."
    if total < 15:
        return "Great work last month! Your consistency is paying off."
    return "Incredible effort! You're really crushing your job search."


def monthly_stats(rows: Iterable[Application], start: datetime, end: datetime) -> MonthlyStats:
    stats = MonthlyStats()

    def in_month(value: datetime | None) -> bool:
        return value is not None and start <= value <= end

    for row in rows:
        fields = _RELEVANT_DATE.get(row.bucket)
        if fields is None:
            continue
        data = row.data or {}
        relevant = next((data[name] for name in fields if data.get(name)), None)
        created = as_utc(row.created_at) if row.created_at else None
        if in_month(parse_when(relevant)) or in_month(created):
            setattr(stats, row.bucket, getattr(stats, row.bucket) + 1)
    return stats


def upcoming_interviews(rows: Iterable[Application], now: datetime, days: int) -> list[dict[str, str]]:
    horizon = now + timedelta(days=days)
    upcoming: list[dict[str, str]] = []
    for row in rows:
        if row.bucket != "interviews":
            continue
        data = row.data or {}
        when = parse_when(data.get("date"))
        if when is None or not now <= when <= horizon:
            continue
        upcoming.append(
            {
                "company": data.get("company") or "Unknown",
                "role": data.get("role") or "Unknown",
                "date": data.get("date") or "",
            }
        )
        if len(upcoming) >= MAX_UPCOMING:
            break
    return upcoming


class DigestService:
    def __init__(self, repo: Repository, mailer: ResendMailer | None = None, settings: Settings | None = None):
        self.repo = repo
        self.settings = settings or get_settings()
        self.mailer = mailer or ResendMailer(self.settings)

    def build_digest(self, user_id: str, now: datetime) -> tuple[MonthlyStats, str]:
        start, end = previous_month_bounds(now)
        rows = self.repo.list_user_rows(user_id)
        stats = monthly_stats(rows, start, end)
        stats.upcoming = upcoming_interviews(rows, now, self.settings.upcoming_interview_days)
        return stats, f"{start:%B} {start.year}"

    def render(self, stats: MonthlyStats, month_name: str, user_name: str = "") -> str:
        context: dict[str, Any] = {
            "stats": stats,
            "month_name": month_name,
            "greeting": f"Hi {user_name}," if user_name else "Hi there,",
            "message": motivational_message(stats.total_activity),
            "app_url": self.settings.app_public_url.rstrip("/"),
        }
        return render_email("monthly_digest.html", **context)

    def send_monthly_digest(self, now: datetime | None = None) -> BatchResult:
        now = as_utc(now or datetime.now(UTC))
        recipients = self.repo.list_digest_recipients()
        if not recipients:
            return BatchResult(message="No users have monthly digest enabled")

        result = BatchResult(message=f"Processed {len(recipients)} users", processed=len(recipients))
        for pref in recipients:
            user = self.repo.get_user(pref.user_id)
            if user is None or not user.email:
                logger.error("Could not get email for user %s", pref.user_id)
                result.record(SendResult(email="unknown", success=False, error="Could not get user email"))
                continue

            stats, month_name = self.build_digest(user.id, now)
            html = self.render(stats, month_name, user.full_name)
            result.record(self.mailer.send(user.email, f"Your {month_name} Job Search Digest", html))

        logger.info("Monthly digest sent=%s failed=%s", result.sent, result.failed)
        return result
