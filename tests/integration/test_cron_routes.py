import json

import pytest

from apptracker.config import get_settings


class FakeResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = json.dumps(payload)
        self._payload = payload

    def json(self):
        return self._payload


@pytest.fixture
def settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "cron_secret", "cron-secret")
    return settings


def test_cron_trigger_requires_secret(client, settings) -> None:
    response = client.get("/api/cron/interview-reminders")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_cron_trigger_without_backend_configuration(client, settings) -> None:
    response = client.post("/api/cron/monthly-digest", headers={"Authorization": "Bearer cron-secret"})
    assert response.status_code == 500
    assert response.json() == {"error": "Missing backend configuration"}


def test_cron_trigger_forwards_to_functions_host(client, settings, monkeypatch) -> None:
    monkeypatch.setattr(settings, "functions_base_url", "https://functions.example.test/v1")
    monkeypatch.setattr(settings, "service_role_key", "role-key")
    calls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        calls.append((url, headers, json))
        return FakeResponse({"message": "Processed 2 interviews", "processed": 2})

    monkeypatch.setattr("apptracker.core.edge.requests.post", fake_post)
    response = client.get("/api/cron/interview-reminders", headers={"Authorization": "Bearer cron-secret"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["processed"] == 2
    assert body["timestamp"].endswith("Z")
    url, headers, payload = calls[0]
    assert url == "https://functions.example.test/v1/send-interview-reminders"
    assert headers["Authorization"] == "Bearer role-key"
    assert payload == {"hoursBeforeInterview": 24}


def test_cron_trigger_reports_function_failures(client, settings, monkeypatch) -> None:
    monkeypatch.setattr(settings, "functions_base_url", "https://functions.example.test/v1")
    monkeypatch.setattr(settings, "service_role_key", "role-key")
    monkeypatch.setattr(
        "apptracker.core.edge.requests.post",
        lambda *args, **kwargs: FakeResponse({"error": "boom"}, status_code=502),
    )
    response = client.post("/api/cron/monthly-digest", headers={"Authorization": "Bearer cron-secret"})
    assert response.status_code == 502
    assert response.json() == {"error": "Failed to send digest", "details": {"error": "boom"}}


def test_direct_reminders_need_an_email_key(client, settings) -> None:
    response = client.post("/api/send-reminders", headers={"Authorization": "Bearer cron-secret"})
    assert response.status_code == 500
    assert response.json() == {"error": "RESEND_API_KEY not configured"}


def test_reminder_function_requires_authorization(client) -> None:
    response = client.post("/functions/v1/send-interview-reminders", json={})
    assert response.status_code == 401
    assert response.json() == {"error": "Missing authorization"}


def test_reminder_function_runs_locally(client, auth_headers) -> None:
    response = client.post(
        "/functions/v1/send-interview-reminders",
        json={"hoursBeforeInterview": 2, "testMode": True},
        headers={"Authorization": "Bearer anything"},
    )
    assert response.status_code == 200
    assert response.json()["message"] == "No interviews to remind about"


def test_digest_function_without_recipients(client) -> None:
    response = client.post("/functions/v1/send-monthly-digest", headers={"Authorization": "Bearer anything"})
    assert response.status_code == 200
    assert response.json()["message"] == "No users have monthly digest enabled"
