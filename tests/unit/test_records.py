from apptracker.core.records import (
    count_buckets,
    display_title,
    filter_records,
    is_pending_offer,
    merge_move_fields,
    offer_status,
    safe_record_list,
    search_all,
)


def test_offer_status_derivation() -> None:
    assert offer_status({"id": "1"}) == "received"
    assert offer_status({"id": "1", "offerDeclinedDate": "2026-01-02"}) == "declined"
    assert offer_status({"id": "1", "taken": True}) == "accepted"
    assert offer_status({"id": "1", "offerAcceptedDate": "2026-01-02", "offerDeclinedDate": "2026-01-01"}) == "accepted"
    assert is_pending_offer({"id": "1", "taken": False})
    assert not is_pending_offer({"id": "1", "offerDeclinedDate": "2026-01-02"})


def test_filter_records_matches_nested_contact_fields() -> None:
    records = [
        {"id": "a", "company": "ACME", "contact": {"name": "Grace Hopper"}},
        {"id": "b", "company": "Initech"},
    ]
    assert [r["id"] for r in filter_records("interviews", records, "  hopper ")] == ["a"]
    assert len(filter_records("interviews", records, "")) == 2


def test_safe_record_list_drops_entries_without_ids() -> None:
    assert safe_record_list([{"id": "x"}, {"company": "no id"}, "junk", {"id": ""}]) == [{"id": "x"}]
    assert safe_record_list({"id": "x"}) == []


def test_counts_include_accepted_offers() -> None:
    counts = count_buckets({"offers": [{"id": "1", "taken": True}, {"id": "2"}], "applied": [{"id": "3"}]})
    assert counts["offers"] == 2
    assert counts["accepted"] == 1
    assert counts["applied"] == 1
    assert counts["notes"] == 0


def test_search_all_groups_in_sidebar_order_with_section_cap() -> None:
    records = {
        "notes": [{"id": "n1", "title": "Python prep", "content": "practice"}],
        "applied": [{"id": f"a{i}", "company": f"Python Co {i}"} for i in range(10)],
    }
    grouped = search_all(records, "python")
    assert list(grouped) == ["applied", "notes"]
    assert len(grouped["applied"]) == 6
    assert grouped["notes"][0]["href"] == "/notes"
    assert search_all(records, "   ") == {}


def test_search_all_overall_limit_starves_later_sections() -> None:
    records = {
        "applied": [{"id": f"a{i}", "company": "Match"} for i in range(3)],
        "notes": [{"id": "n1", "title": "Match"}],
    }
    grouped = search_all(records, "match", limit=3)
    assert "notes" not in grouped


def test_merge_move_fields_ignores_blank_values_and_id() -> None:
    merged = merge_move_fields({"id": "1", "company": "ACME"}, {"id": "2", "date": "2026-03-01", "time": " "})
    assert merged == {"id": "1", "company": "ACME", "date": "2026-03-01"}


def test_display_title_for_notes_falls_back_to_content() -> None:
    assert display_title("notes", {"id": "1", "content": "Follow up with recruiter"}) == "Follow up with recruiter"
    assert display_title("applied", {"id": "1"}) == "Unknown company"
