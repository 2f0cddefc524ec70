from apptracker.core.local_store import STORAGE_KEYS, GuestStore, LocalStore, bucket_key
from apptracker.types import ActivityItem


def test_storage_keys_are_namespaced() -> None:
    assert bucket_key("applied") == "job-tracker:applied"
    assert STORAGE_KEYS["activity:offers"] == "job-tracker:offers-activity"
    assert all(key.startswith("job-tracker:") for key in STORAGE_KEYS.values())


def test_unreadable_value_falls_back_to_default(tmp_path) -> None:
    store = LocalStore(tmp_path)
    store.write("job-tracker:applied", [{"id": "1"}])
    (tmp_path / "job-tracker__applied.json").write_text("{not json", encoding="utf-8")
    assert store.read("job-tracker:applied", []) == []


def test_guest_store_upsert_inserts_at_front_and_replaces_in_place(tmp_path) -> None:
    guest = GuestStore(LocalStore(tmp_path))
    first = guest.upsert_record("applied", {"company": "ACME"})
    guest.upsert_record("applied", {"id": "second", "company": "Initech"})
    guest.upsert_record("applied", {**first, "company": "ACME Corp"})

    records = guest.list_records("applied")
    assert [r["id"] for r in records] == ["second", first["id"]]
    assert records[1]["company"] == "ACME Corp"


def test_guest_store_drops_malformed_entries(tmp_path) -> None:
    store = LocalStore(tmp_path)
    store.write(bucket_key("wishlist"), [{"id": "ok"}, {"company": "missing id"}, 5])
    assert GuestStore(store).list_records("wishlist") == [{"id": "ok"}]


def test_activity_is_capped_newest_first(tmp_path) -> None:
    guest = GuestStore(LocalStore(tmp_path), max_activity=3)
    for index in range(5):
        guest.append_activity("applied", ActivityItem(id=f"bad-{index}", appId="a", type="added", company=str(index)))

    items = guest.list_activity("applied")
    assert [item.company for item in items] == ["4", "3", "2"]
    assert all(not item.id.startswith("bad-") for item in items)


def test_has_data_and_clear(tmp_path) -> None:
    guest = GuestStore(LocalStore(tmp_path))
    assert guest.has_data() is False
    guest.upsert_record("notes", {"title": "hello"})
    assert guest.has_data() is True
    guest.clear_bucket("notes")
    assert guest.has_data() is False
