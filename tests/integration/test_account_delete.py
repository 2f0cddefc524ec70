from sqlalchemy import func, select

from apptracker.db.models import ActivityLog, Application, AuthSession, EmailPreference, User
from apptracker.db.session import SessionLocal


def _count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


def test_account_delete_leaves_no_rows_behind(client, auth_headers) -> None:
    client.post("/api/records/applied", json={"company": "ACME"}, headers=auth_headers)
    client.post("/api/records/notes", json={"title": "prep"}, headers=auth_headers)
    client.put("/api/preferences/email", json={"monthly_digest_enabled": True}, headers=auth_headers)

    response = client.post("/api/account/delete", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["deleted"]["applications"] == 2
    assert body["deleted"]["activity_logs"] == 1

    with SessionLocal() as db:
        for model in (User, AuthSession, Application, ActivityLog, EmailPreference):
            assert _count(db, model) == 0

    assert client.get("/api/records/applied", headers=auth_headers).status_code == 401


def test_account_delete_keeps_other_users(client, auth_headers) -> None:
    other = client.post("/api/auth/signup", json={"email": "bob@example.com", "password": "secret123"}).json()
    other_headers = {"Authorization": f"Bearer {other['access_token']}"}
    client.post("/api/records/applied", json={"company": "Bob Co"}, headers=other_headers)

    client.post("/api/account/delete", headers=auth_headers)

    assert len(client.get("/api/records/applied", headers=other_headers).json()) == 1


def test_account_delete_failure_is_reported(client, auth_headers, monkeypatch) -> None:
    def boom(self, user_id):
        raise RuntimeError("database is locked")

    monkeypatch.setattr("apptracker.db.repositories.Repository.purge_user_data", boom)
    response = client.post("/api/account/delete", headers=auth_headers)
    assert response.status_code == 500
    assert response.json() == {"ok": False, "error": "database is locked"}
