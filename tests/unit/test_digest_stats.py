from datetime import UTC, datetime

from apptracker.core.digest import DigestService, monthly_stats, motivational_message, previous_month_bounds, upcoming_interviews
from apptracker.db.models import Application
from apptracker.db.repositories import Repository
from apptracker.db.session import SessionLocal
from apptracker.types import SendResult

NOW = datetime(2026, 3, 3, 8, 0, tzinfo=UTC)
EARLY = datetime(2026, 1, 10, tzinfo=UTC)


def _row(bucket: str, data: dict, created_at: datetime = EARLY) -> Application:
    return Application(id=data["id"], user_id="u1", bucket=bucket, data=data, created_at=created_at)


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to: str, subject: str, html: str) -> SendResult:
        self.sent.append((to, subject, html))
        return SendResult(email=to, success=True)


def test_previous_month_bounds_cross_year() -> None:
    start, end = previous_month_bounds(datetime(2026, 1, 15, tzinfo=UTC))
    assert start == datetime(2025, 12, 1, tzinfo=UTC)
    assert end.date().isoformat() == "2025-12-31"


def test_monthly_stats_use_relevant_date_or_creation_time() -> None:
    start, end = previous_month_bounds(NOW)
    rows = [
        _row("applied", {"id": "a1", "appliedOn": "2026-02-03"}),
        _row("applied", {"id": "a2", "appliedOn": "2026-01-03"}),
        _row("applied", {"id": "a3"}, created_at=datetime(2026, 2, 20, tzinfo=UTC)),
        _row("interviews", {"id": "i1", "date": "2026-02-28"}),
        _row("offers", {"id": "o1", "decisionDate": "2026-02-11"}),
        _row("notes", {"id": "n1"}, created_at=datetime(2026, 2, 2, tzinfo=UTC)),
    ]
    stats = monthly_stats(rows, start, end)
    assert (stats.applied, stats.interviews, stats.offers) == (2, 1, 1)
    assert stats.total_activity == 4


def test_upcoming_interviews_are_capped_at_three() -> None:
    rows = [_row("interviews", {"id": f"i{day}", "company": "ACME", "date": f"2026-03-{day:02d}"}) for day in range(4, 10)]
    upcoming = upcoming_interviews(rows, NOW, 30)
    assert len(upcoming) == 3
    assert upcoming[0] == {"company": "ACME", "role": "Unknown", "date": "2026-03-04"}


def test_motivational_message_tiers() -> None:
    assert motivational_message(0).startswith("No activity last month")
    assert motivational_message(3).startswith("You're making progress")
    assert motivational_message(10).startswith("Great work")
    assert motivational_message(30).startswith("Incredible effort")


def test_digest_goes_only_to_opted_in_users() -> None:
    mailer = RecordingMailer()
    with SessionLocal() as db:
        repo = Repository(db)
        repo.create_user(user_id="u1", email="ada@example.com", password_hash="x", full_name="Ada")
        repo.create_user(user_id="u2", email="bob@example.com", password_hash="x")
        repo.save_email_preferences("u1", {"monthly_digest_enabled": True})
        repo.upsert_record("u1", "applied", {"id": "a1", "company": "ACME", "appliedOn": "2026-02-03"})

        result = DigestService(repo, mailer=mailer).send_monthly_digest(NOW)

    assert result.processed == 1
    assert result.sent == 1
    to, subject, html = mailer.sent[0]
    assert to == "ada@example.com"
    assert subject == "Your February 2026 Job Search Digest"
    assert "Hi Ada," in html


def test_digest_without_recipients() -> None:
    with SessionLocal() as db:
        result = DigestService(Repository(db), mailer=RecordingMailer()).send_monthly_digest(NOW)
    assert result.message == "No users have monthly digest enabled"
    assert result.processed == 0
