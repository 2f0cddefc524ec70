from apptracker.core.activity import activity_label, build_activity, describe, is_uuid, primary_date
from apptracker.types import ActivityItem


def _item(**overrides) -> ActivityItem:
    data = {"id": "x", "appId": "app-1", "type": "added", "company": "ACME"}
    data.update(overrides)
    return ActivityItem(**data)


def test_generic_labels_per_variant() -> None:
    assert activity_label("applied", _item()) == "Application added"
    assert activity_label("interviews", _item(type="moved_to_interviews")) == "Interview scheduled"
    assert activity_label("rejected", _item(type="deleted")) == "Rejection deleted"
    assert activity_label("applied", _item(type="moved_to_offers")) == "Moved to offers"


def test_offer_labels_follow_target_status() -> None:
    assert activity_label("offers", _item()) == "OFFER RECEIVED"
    assert activity_label("offers", _item(type="edited", toStatus="Accepted")) == "OFFER ACCEPTED"
    assert activity_label("offers", _item(type="edited", toStatus="Declined")) == "OFFER DECLINED"
    assert activity_label("offers", _item(type="edited")) == "OFFER UPDATED"


def test_offer_primary_date_uses_decision_date() -> None:
    item = _item(type="edited", toStatus="accepted", offerAcceptedDate="2026-02-01", appliedOn="2026-01-01")
    assert primary_date("offers", item) == ("Offer accepted on", "2026-02-01")


def test_build_activity_assigns_uuid_and_timestamp() -> None:
    item = build_activity({"id": "r1", "company": "ACME", "role": "Engineer"}, "added")
    assert is_uuid(item.id)
    assert item.timestamp
    assert item.appId == "r1"
    assert item.role == "Engineer"


def test_describe_flags_moves() -> None:
    display = describe("applied", _item(type="moved_to_interviews", timestamp="2026-01-05T10:00:00Z"))
    assert display["is_move"] is True
    assert display["when"] == "Jan 05, 2026, 10:00"
