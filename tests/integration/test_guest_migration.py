from contextlib import nullcontext

import pytest

from apptracker.core.auth import AuthService
from apptracker.core.local_store import GuestStore, LocalStore
from apptracker.core.migration import GuestMigrator, MigrationRegistry
from apptracker.db.repositories import Repository
from apptracker.db.session import SessionLocal
from apptracker.types import ActivityItem


@pytest.fixture
def db():
    with SessionLocal() as session:
        yield session


@pytest.fixture
def guest(tmp_path) -> GuestStore:
    return GuestStore(LocalStore(tmp_path))


def _migrator(guest: GuestStore, repo: Repository, registry: MigrationRegistry | None = None) -> GuestMigrator:
    return GuestMigrator(guest, lambda: nullcontext(repo), registry=registry or MigrationRegistry())


def test_guest_records_move_into_the_account(db, guest) -> None:
    repo = Repository(db)
    session = AuthService(repo).sign_up("ada@example.com", "secret123")
    guest.upsert_record("applied", {"id": "old", "company": "Older"})
    guest.upsert_record("applied", {"id": "new", "company": "Newer"})
    guest.append_activity("applied", ActivityItem(appId="new", type="added", company="Newer"))

    result = _migrator(guest, repo).migrate(session)

    assert result.status == "completed"
    assert result.migrated == 2
    assert [r["id"] for r in repo.list_records(session.user_id, "applied")] == ["new", "old"]
    assert len(repo.list_activity(session.user_id, "applied")) == 1
    assert guest.list_records("applied") == []
    assert guest.list_activity("applied") == []


def test_migration_runs_once_per_session(db, guest) -> None:
    repo = Repository(db)
    session = AuthService(repo).sign_up("ada@example.com", "secret123")
    registry = MigrationRegistry()
    guest.upsert_record("wishlist", {"id": "w1", "company": "Dream Co"})

    first = _migrator(guest, repo, registry).migrate(session)
    guest.upsert_record("wishlist", {"id": "w2", "company": "Second Dream"})
    second = _migrator(guest, repo, registry).migrate(session)

    assert first.migrated == 1
    assert second is first
    assert len(repo.list_records(session.user_id, "wishlist")) == 1


def test_existing_rows_are_skipped_and_never_overwritten(db, guest) -> None:
    repo = Repository(db)
    session = AuthService(repo).sign_up("ada@example.com", "secret123")
    repo.upsert_record(session.user_id, "applied", {"id": "same", "company": "Remote copy"})
    guest.upsert_record("applied", {"id": "same", "company": "Guest copy"})

    result = _migrator(guest, repo).migrate(session)

    assert result.buckets["applied"].skipped == 1
    assert repo.get_record(session.user_id, "applied", "same")["company"] == "Remote copy"


def test_ids_owned_by_someone_else_get_fresh_ids(db, guest) -> None:
    repo = Repository(db)
    service = AuthService(repo)
    other = service.sign_up("bob@example.com", "secret123")
    repo.upsert_record(other.user_id, "applied", {"id": "shared", "company": "Bob's"})
    session = service.sign_up("ada@example.com", "secret123")
    guest.upsert_record("applied", {"id": "shared", "company": "Ada's"})

    _migrator(guest, repo).migrate(session)

    mine = repo.list_records(session.user_id, "applied")
    assert len(mine) == 1
    assert mine[0]["id"] != "shared"
    assert repo.get_record(other.user_id, "applied", "shared")["company"] == "Bob's"


def test_failed_bucket_keeps_guest_copy_and_reports_partial(db, guest, monkeypatch) -> None:
    repo = Repository(db)
    session = AuthService(repo).sign_up("ada@example.com", "secret123")
    guest.upsert_record("applied", {"id": "a1", "company": "ACME"})
    guest.upsert_record("notes", {"id": "n1", "title": "prep"})

    original = Repository.upsert_records

    def flaky(self, user_id, bucket, records):
        if bucket == "applied":
            raise RuntimeError("insert failed")
        return original(self, user_id, bucket, records)

    monkeypatch.setattr(Repository, "upsert_records", flaky)
    result = _migrator(guest, repo).migrate(session)

    assert result.status == "partial"
    assert result.errors == {"applied": "insert failed"}
    assert [r["id"] for r in guest.list_records("applied")] == ["a1"]
    assert guest.list_records("notes") == []
    assert [r["id"] for r in repo.list_records(session.user_id, "notes")] == ["n1"]


def test_merge_endpoint_imports_posted_guest_data(client, auth_headers) -> None:
    payload = {
        "buckets": {"interviews": [{"id": "i1", "company": "ACME", "date": "2026-05-05"}, {"company": "no id"}]},
        "activity": {"interviews": [{"id": "not-a-uuid", "appId": "i1", "type": "added", "company": "ACME"}]},
    }
    first = client.post("/api/session/merge", json=payload, headers=auth_headers).json()
    assert first["status"] == "completed"
    assert first["migrated"] == 1

    again = client.post("/api/session/merge", json=payload, headers=auth_headers).json()
    assert again == first

    records = client.get("/api/records/interviews", headers=auth_headers).json()
    assert [r["id"] for r in records] == ["i1"]
    activity = client.get("/api/activity/interviews", headers=auth_headers).json()
    assert len(activity) == 1
    assert activity[0]["id"] != "not-a-uuid"
