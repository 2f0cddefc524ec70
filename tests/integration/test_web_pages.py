import pytest


@pytest.fixture
def signed_in(client):
    response = client.post(
        "/web/signup",
        data={"email": "ada@example.com", "password": "secret123", "full_name": "Ada"},
    )
    assert response.status_code == 200
    return client


def test_common_icon_routes_never_404(client) -> None:
    for path in ("/favicon.ico", "/apple-touch-icon.png", "/apple-touch-icon-precomposed.png"):
        assert client.get(path).status_code in {200, 204}


def test_pages_redirect_to_signin_when_signed_out(client) -> None:
    for path in ("/", "/applied", "/settings", "/search", "/accepted"):
        response = client.get(path, follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/signin"


def test_unknown_page_is_not_found(client) -> None:
    response = client.get("/archive")
    assert response.status_code == 404
    assert "Page not found" in response.text


def test_signin_error_is_shown(client) -> None:
    response = client.post("/web/signin", data={"email": "nobody@example.com", "password": "whatever"})
    assert response.status_code == 200
    assert "Invalid login credentials" in response.text


def test_dashboard_after_signup(signed_in) -> None:
    response = signed_in.get("/")
    assert response.status_code == 200
    assert "Overview" in response.text
    assert 'rel="icon"' in response.text
    assert "ada@example.com" in response.text


def test_record_lifecycle_through_forms(signed_in) -> None:
    signed_in.post(
        "/web/records/applied",
        data={"company": "ACME", "role": "Engineer", "appliedOn": "2026-03-01", "notes": ""},
    )
    page = signed_in.get("/applied")
    assert "ACME" in page.text
    assert "Application added" in page.text

    record_id = signed_in.get("/api/records/applied").json()[0]["id"]
    moved = signed_in.post(
        f"/web/records/applied/{record_id}/move",
        data={"to": "interviews", "date": "2026-05-05", "time": "10:00", "type": "video"},
    )
    assert moved.status_code == 200
    assert "ACME" in moved.text
    assert signed_in.get("/api/records/applied").json() == []

    interview = signed_in.get("/api/records/interviews").json()[0]
    assert interview["type"] == "video"

    signed_in.post(f"/web/records/interviews/{record_id}/delete")
    assert signed_in.get("/api/records/interviews").json() == []


def test_notes_form_splits_tags_and_has_no_activity(signed_in) -> None:
    signed_in.post("/web/records/notes", data={"title": "Prep", "content": "STAR stories", "tags": "prep, behavioral"})
    note = signed_in.get("/api/records/notes").json()[0]
    assert note["tags"] == ["prep", "behavioral"]
    assert note["updatedAt"].endswith("Z")

    page = signed_in.get("/notes")
    assert "STAR stories" in page.text
    assert "Activity" not in page.text


def test_offer_acceptance_shows_on_accepted_page(signed_in) -> None:
    signed_in.post("/web/records/offers", data={"company": "ACME", "offerReceivedDate": "2026-02-01"})
    offer_id = signed_in.get("/api/records/offers").json()[0]["id"]

    signed_in.post(f"/web/records/offers/{offer_id}/status", data={"status": "accepted", "date": "2026-02-05"})
    page = signed_in.get("/accepted")
    assert "ACME" in page.text
    assert "2026-02-05" in page.text


def test_search_page_groups_results(signed_in) -> None:
    signed_in.post("/web/records/wishlist", data={"company": "Dream Factory"})
    page = signed_in.get("/search", params={"q": "dream"})
    assert "Wishlist" in page.text
    assert "Dream Factory" in page.text


def test_settings_forms(signed_in) -> None:
    signed_in.post(
        "/web/settings/email",
        data={"reminder_hours_before": "500", "monthly_digest_enabled": "true"},
    )
    prefs = signed_in.get("/api/preferences/email").json()
    assert prefs == {"email_reminders_enabled": False, "reminder_hours_before": 336, "monthly_digest_enabled": True}

    signed_in.post("/web/settings/goals", data={"interviews_target": "5", "weekly_target": "0"})
    goals = signed_in.get("/api/goals").json()["goals"]
    assert goals["interviews"]["target"] == 5
    assert goals["overview"]["weeklyTarget"] == 2


def test_signout_clears_the_session(signed_in) -> None:
    signed_in.post("/web/signout")
    response = signed_in.get("/", follow_redirects=False)
    assert response.status_code == 303


def test_settings_backup_preview_import_and_clear(signed_in) -> None:
    signed_in.post("/web/records/applied", data={"company": "ACME", "role": "Engineer", "notes": ""})
    backup = signed_in.get("/api/backup").content
    assert signed_in.post("/web/data/clear", follow_redirects=False).headers["location"] == "/settings?saved=cleared"
    assert signed_in.get("/api/records/applied").json() == []
    assert "All records and activity were deleted." in signed_in.get("/settings?saved=cleared").text

    preview = signed_in.post(
        "/web/backup/preview",
        files={"backup_file": ("backup.json", backup, "application/json")},
    )
    assert preview.status_code == 200
    assert "backup.json" in preview.text
    assert 'action="/web/backup/import"' in preview.text

    imported = signed_in.post("/web/backup/import", data={"payload": backup.decode("utf-8")})
    assert imported.status_code == 200
    assert "Import finished: added 2 new items." in imported.text
    assert [record["company"] for record in signed_in.get("/api/records/applied").json()] == ["ACME"]


def test_settings_rejects_a_broken_backup_file(signed_in) -> None:
    response = signed_in.post(
        "/web/backup/preview",
        files={"backup_file": ("backup.json", b"not json", "application/json")},
    )
    assert response.status_code == 400
    assert "Import failed" in response.text
