from datetime import UTC, datetime


def _create(client, headers, bucket: str, body: dict) -> dict:
    response = client.post(f"/api/records/{bucket}", json=body, headers=headers)
    assert response.status_code == 201
    return response.json()


def test_move_keeps_id_and_logs_both_sides(client, auth_headers) -> None:
    record = _create(client, auth_headers, "applied", {"company": "ACME", "role": "Engineer"})

    moved = client.post(
        f"/api/records/applied/{record['id']}/move",
        json={"to": "interviews", "fields": {"date": "2026-05-05", "time": "10:00"}},
        headers=auth_headers,
    )
    assert moved.status_code == 200
    body = moved.json()
    assert body["bucket"] == "interviews"
    assert body["record"]["id"] == record["id"]
    assert body["record"]["date"] == "2026-05-05"

    assert client.get("/api/records/applied", headers=auth_headers).json() == []
    assert [r["id"] for r in client.get("/api/records/interviews", headers=auth_headers).json()] == [record["id"]]

    applied_log = client.get("/api/activity/applied", headers=auth_headers).json()
    assert applied_log[0]["type"] == "moved_to_interviews"
    assert applied_log[0]["display"]["is_move"] is True
    interview_log = client.get("/api/activity/interviews", headers=auth_headers).json()
    assert interview_log[0]["type"] == "added"
    assert interview_log[0]["fromStatus"] == "applied"


def test_invalid_moves_are_rejected(client, auth_headers) -> None:
    record = _create(client, auth_headers, "applied", {"company": "ACME"})
    same = client.post(f"/api/records/applied/{record['id']}/move", json={"to": "applied"}, headers=auth_headers)
    assert same.status_code == 400

    note = _create(client, auth_headers, "notes", {"title": "todo"})
    from_notes = client.post(f"/api/records/notes/{note['id']}/move", json={"to": "applied"}, headers=auth_headers)
    assert from_notes.status_code == 400

    missing = client.post("/api/records/applied/nope/move", json={"to": "offers"}, headers=auth_headers)
    assert missing.status_code == 404


def test_offer_status_transitions(client, auth_headers) -> None:
    offer = _create(client, auth_headers, "offers", {"company": "ACME", "offerReceivedDate": "2026-02-01"})

    accepted = client.post(
        f"/api/records/offers/{offer['id']}/status",
        json={"status": "accepted", "date": "2026-02-10"},
        headers=auth_headers,
    ).json()
    assert accepted["offerAcceptedDate"] == "2026-02-10"
    assert accepted["taken"] is True
    assert client.get("/api/counts", headers=auth_headers).json()["accepted"] == 1

    declined = client.post(
        f"/api/records/offers/{offer['id']}/status",
        json={"status": "declined"},
        headers=auth_headers,
    ).json()
    assert "offerAcceptedDate" not in declined
    assert declined["offerDeclinedDate"] == datetime.now(UTC).date().isoformat()
    assert declined["taken"] is False

    log = client.get("/api/activity/offers", headers=auth_headers).json()
    assert [entry["display"]["label"] for entry in log] == ["OFFER DECLINED", "OFFER ACCEPTED", "OFFER RECEIVED"]


def test_unknown_offer_status_is_rejected(client, auth_headers) -> None:
    offer = _create(client, auth_headers, "offers", {"company": "ACME"})
    response = client.post(
        f"/api/records/offers/{offer['id']}/status",
        json={"status": "maybe"},
        headers=auth_headers,
    )
    assert response.status_code in {400, 422}
