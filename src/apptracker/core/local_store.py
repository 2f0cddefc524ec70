from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from apptracker.core.activity import normalize_item, safe_activity_list
from apptracker.core.records import ACTIVITY_VARIANTS, BUCKETS, ensure_record_id, get_bucket_config, safe_record_list
from apptracker.types import ActivityItem

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "job-tracker"


def _key(feature: str) -> str:
    return f"{STORAGE_PREFIX}:{feature}"


STORAGE_KEYS: dict[str, str] = {
    **{f"bucket:{bucket}": _key(bucket) for bucket in BUCKETS},
    **{f"activity:{variant}": _key(f"{variant}-activity") for variant in ACTIVITY_VARIANTS},
    "session": _key("session"),
    "goals": _key("goals"),
    "last_user_id": _key("last-user-id"),
}


def bucket_key(bucket: str) -> str:
    get_bucket_config(bucket)
    return STORAGE_KEYS[f"bucket:{bucket}"]


def activity_key(variant: str) -> str:
    try:
        return STORAGE_KEYS[f"activity:{variant}"]
    except KeyError as exc:
        raise ValueError(f"unknown activity variant '{variant}'") from exc


class LocalStore:
    """Namespaced key/value store, one JSON file per key."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / f"{key.replace(':', '__')}.json"

    def read(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.is_file():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable local value %s: %s", key, exc)
            return default

    def write(self, key: str, value: Any) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(value, indent=2), encoding="utf-8")
        tmp_path.replace(path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(path.stem.replace("__", ":") for path in self.root.glob("*.json"))


class GuestStore:
    """Bucket and activity lists kept locally while nobody is signed in."""

    def __init__(self, store: LocalStore, *, max_activity: int = 200):
        self.store = store
        self.max_activity = max_activity

    def list_records(self, bucket: str) -> list[dict[str, Any]]:
        return safe_record_list(self.store.read(bucket_key(bucket), []))

    def list_all_records(self) -> dict[str, list[dict[str, Any]]]:
        return {bucket: self.list_records(bucket) for bucket in BUCKETS}

    def save_records(self, bucket: str, records: list[dict[str, Any]]) -> None:
        self.store.write(bucket_key(bucket), records)

    def upsert_record(self, bucket: str, record: dict[str, Any]) -> dict[str, Any]:
        data = ensure_record_id(record)
        records = self.list_records(bucket)
        for index, item in enumerate(records):
            if item["id"] == data["id"]:
                records[index] = data
                break
        else:
            records.insert(0, data)
        self.save_records(bucket, records)
        return data

    def get_record(self, bucket: str, record_id: str) -> dict[str, Any] | None:
        return next((item for item in self.list_records(bucket) if item["id"] == record_id), None)

    def delete_record(self, bucket: str, record_id: str) -> bool:
        records = self.list_records(bucket)
        remaining = [item for item in records if item["id"] != record_id]
        if len(remaining) == len(records):
            return False
        self.save_records(bucket, remaining)
        return True

    def clear_bucket(self, bucket: str) -> None:
        self.store.remove(bucket_key(bucket))

    def list_activity(self, variant: str) -> list[ActivityItem]:
        return safe_activity_list(self.store.read(activity_key(variant), []))

    def append_activity(self, variant: str, item: ActivityItem) -> None:
        items = [normalize_item(item), *self.list_activity(variant)]
        self.save_activity(variant, items[: self.max_activity])

    def save_activity(self, variant: str, items: list[ActivityItem]) -> None:
        self.store.write(activity_key(variant), [item.model_dump(exclude_none=True) for item in items])

    def delete_activity(self, variant: str, activity_id: str) -> bool:
        items = self.list_activity(variant)
        remaining = [item for item in items if item.id != activity_id]
        if len(remaining) == len(items):
            return False
        self.save_activity(variant, remaining)
        return True

    def clear_activity(self, variant: str) -> None:
        self.store.remove(activity_key(variant))

    def has_data(self) -> bool:
        return any(self.list_records(bucket) for bucket in BUCKETS) or any(
            self.list_activity(variant) for variant in ACTIVITY_VARIANTS
        )
