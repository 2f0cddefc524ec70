from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from apptracker.core.activity import build_activity
from apptracker.core.backup import ImportSummary, export_backup, import_backup
from apptracker.core.events import notify_change
from apptracker.core.local_store import GuestStore
from apptracker.core.records import (
    ACTIVITY_VARIANTS,
    BUCKETS,
    MOVABLE_BUCKETS,
    count_buckets,
    ensure_record_id,
    filter_records,
    get_bucket_config,
    merge_move_fields,
    offer_status,
    search_all,
)
from apptracker.db.repositories import RecordNotFound, Repository
from apptracker.types import ActivityItem

logger = logging.getLogger(__name__)

OFFER_STATUS_LABELS = {"received": "Received", "accepted": "Accepted", "declined": "Declined"}


class RecordBackend(Protocol):
    def list_records(self, bucket: str) -> list[dict[str, Any]]: ...

    def list_all_records(self) -> dict[str, list[dict[str, Any]]]: ...

    def get_record(self, bucket: str, record_id: str) -> dict[str, Any] | None: ...

    def save_record(self, bucket: str, record: dict[str, Any]) -> dict[str, Any]: ...

    def delete_record(self, bucket: str, record_id: str) -> bool: ...

    def list_activity(self, variant: str) -> list[ActivityItem]: ...

    def log_activity(self, variant: str, item: ActivityItem) -> None: ...

    def delete_activity(self, variant: str, activity_id: str) -> bool: ...

    def clear_activity(self, variant: str) -> int: ...

    def taken_record_ids(self, ids: list[str]) -> set[str]: ...

    def taken_activity_ids(self, ids: list[str]) -> set[str]: ...

    def import_records(self, bucket: str, records: list[dict[str, Any]]) -> int: ...

    def import_activity(self, variant: str, items: list[ActivityItem]) -> int: ...

    def clear_all(self) -> dict[str, int]: ...


class AccountBackend:
    """Records of one signed-in user, stored in the database."""

    def __init__(self, repo: Repository, user_id: str, *, max_activity: int = 200):
        self.repo = repo
        self.user_id = user_id
        self.max_activity = max_activity

    def list_records(self, bucket: str) -> list[dict[str, Any]]:
        return self.repo.list_records(self.user_id, bucket)

    def list_all_records(self) -> dict[str, list[dict[str, Any]]]:
        return self.repo.list_all_records(self.user_id)

    def get_record(self, bucket: str, record_id: str) -> dict[str, Any] | None:
        return self.repo.get_record(self.user_id, bucket, record_id)

    def save_record(self, bucket: str, record: dict[str, Any]) -> dict[str, Any]:
        return self.repo.upsert_record(self.user_id, bucket, record)

    def delete_record(self, bucket: str, record_id: str) -> bool:
        return self.repo.delete_record(self.user_id, bucket, record_id)

    def list_activity(self, variant: str) -> list[ActivityItem]:
        return self.repo.list_activity(self.user_id, variant, limit=self.max_activity)

    def log_activity(self, variant: str, item: ActivityItem) -> None:
        self.repo.append_activity(self.user_id, variant, [item], max_items=self.max_activity)

    def delete_activity(self, variant: str, activity_id: str) -> bool:
        return self.repo.delete_activity(self.user_id, variant, activity_id)

    def clear_activity(self, variant: str) -> int:
        return self.repo.clear_activity(self.user_id, variant)

    def taken_record_ids(self, ids: list[str]) -> set[str]:
        return set(self.repo.record_id_owners(ids))

    def taken_activity_ids(self, ids: list[str]) -> set[str]:
        return set(self.repo.activity_id_owners(ids))

    def import_records(self, bucket: str, records: list[dict[str, Any]]) -> int:
        return self.repo.upsert_records(self.user_id, bucket, records)

    def import_activity(self, variant: str, items: list[ActivityItem]) -> int:
        return self.repo.append_activity(self.user_id, variant, items, max_items=self.max_activity)

    def clear_all(self) -> dict[str, int]:
        return self.repo.purge_tracker_data(self.user_id)


class GuestBackend:
    """Records kept in the local store while signed out."""

    def __init__(self, guest: GuestStore):
        self.guest = guest

    def list_records(self, bucket: str) -> list[dict[str, Any]]:
        return self.guest.list_records(bucket)

    def list_all_records(self) -> dict[str, list[dict[str, Any]]]:
        return self.guest.list_all_records()

    def get_record(self, bucket: str, record_id: str) -> dict[str, Any] | None:
        return self.guest.get_record(bucket, record_id)

    def save_record(self, bucket: str, record: dict[str, Any]) -> dict[str, Any]:
        return self.guest.upsert_record(bucket, record)

    def delete_record(self, bucket: str, record_id: str) -> bool:
        return self.guest.delete_record(bucket, record_id)

    def list_activity(self, variant: str) -> list[ActivityItem]:
        return self.guest.list_activity(variant)

    def log_activity(self, variant: str, item: ActivityItem) -> None:
        self.guest.append_activity(variant, item)

    def delete_activity(self, variant: str, activity_id: str) -> bool:
        return self.guest.delete_activity(variant, activity_id)

    def clear_activity(self, variant: str) -> int:
        count = len(self.guest.list_activity(variant))
        self.guest.clear_activity(variant)
        return count

    def taken_record_ids(self, ids: list[str]) -> set[str]:
        stored = {record["id"] for records in self.guest.list_all_records().values() for record in records}
        return stored & set(ids)

    def taken_activity_ids(self, ids: list[str]) -> set[str]:
        stored = {item.id for variant in ACTIVITY_VARIANTS for item in self.guest.list_activity(variant)}
        return stored & set(ids)

    def import_records(self, bucket: str, records: list[dict[str, Any]]) -> int:
        self.guest.save_records(bucket, [*records, *self.guest.list_records(bucket)])
        return len(records)

    def import_activity(self, variant: str, items: list[ActivityItem]) -> int:
        merged = [*items, *self.guest.list_activity(variant)]
        self.guest.save_activity(variant, merged[: self.guest.max_activity])
        return len(items)

    def clear_all(self) -> dict[str, int]:
        records = sum(len(items) for items in self.guest.list_all_records().values())
        activity = sum(len(self.guest.list_activity(variant)) for variant in ACTIVITY_VARIANTS)
        for bucket in BUCKETS:
            self.guest.clear_bucket(bucket)
        for variant in ACTIVITY_VARIANTS:
            self.guest.clear_activity(variant)
        return {"applications": records, "activity_logs": activity}


def _today() -> str:
    return datetime.now(UTC).date().isoformat()


class TrackerService:
    """Record CRUD, moves between buckets, and the activity entries they leave behind."""

    def __init__(self, backend: RecordBackend, on_change: Callable[[str], None] | None = None):
        self.backend = backend
        self.on_change = on_change

    def _changed(self, bucket: str) -> None:
        if self.on_change is not None:
            self.on_change(bucket)

    def _log(self, variant: str, record: dict[str, Any], activity_type: str, **extra: Any) -> None:
        if variant not in ACTIVITY_VARIANTS:
            return
        self.backend.log_activity(variant, build_activity(record, activity_type, **extra))

    def _require(self, bucket: str, record_id: str) -> dict[str, Any]:
        get_bucket_config(bucket)
        record = self.backend.get_record(bucket, record_id)
        if record is None:
            raise RecordNotFound(f"record {record_id} not found in {bucket}")
        return record

    def list_records(self, bucket: str, query: str | None = None) -> list[dict[str, Any]]:
        get_bucket_config(bucket)
        return filter_records(bucket, self.backend.list_records(bucket), query)

    def get_record(self, bucket: str, record_id: str) -> dict[str, Any]:
        return self._require(bucket, record_id)

    def counts(self) -> dict[str, int]:
        return count_buckets(self.backend.list_all_records())

    def search(self, query: str | None) -> dict[str, list[dict[str, Any]]]:
        return search_all(self.backend.list_all_records(), query)

    def create_record(self, bucket: str, data: dict[str, Any]) -> dict[str, Any]:
        get_bucket_config(bucket)
        record = self.backend.save_record(bucket, ensure_record_id(data))
        extra: dict[str, Any] = {}
        if bucket == "offers":
            extra["to_status"] = OFFER_STATUS_LABELS[offer_status(record)]
        self._log(bucket, record, "added", note=record.get("notes") or None, **extra)
        self._changed(bucket)
        return record

    def update_record(self, bucket: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        existing = self._require(bucket, record_id)
        record = self.backend.save_record(bucket, {**existing, **data, "id": record_id})
        self._log(bucket, record, "edited", note=record.get("notes") or None)
        self._changed(bucket)
        return record

    def delete_record(self, bucket: str, record_id: str) -> dict[str, Any]:
        existing = self._require(bucket, record_id)
        self.backend.delete_record(bucket, record_id)
        self._log(bucket, existing, "deleted")
        self._changed(bucket)
        return existing

    def move_record(
        self,
        source: str,
        record_id: str,
        destination: str,
        fields: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if source not in MOVABLE_BUCKETS or destination not in MOVABLE_BUCKETS or destination == source:
            raise ValueError(f"cannot move a record from '{source}' to '{destination}'")
        existing = self._require(source, record_id)

        moved = merge_move_fields(existing, fields)
        # save first: a failed save must leave the source record in place
        record = self.backend.save_record(destination, moved)
        self.backend.delete_record(source, record_id)

        self._log(source, existing, f"moved_to_{destination}", from_status=source, to_status=destination)
        self._log(destination, record, "added", from_status=source)
        logger.info("Moved record %s from %s to %s", record_id, source, destination)
        self._changed(source)
        self._changed(destination)
        return record

    def set_offer_status(self, record_id: str, status: str, decided_on: str | None = None) -> dict[str, Any]:
        if status not in OFFER_STATUS_LABELS:
            raise ValueError(f"unknown offer status '{status}'")
        existing = self._require("offers", record_id)
        previous = offer_status(existing)

        record = dict(existing)
        record.pop("offerAcceptedDate", None)
        record.pop("offerDeclinedDate", None)
        if status == "accepted":
            record["offerAcceptedDate"] = decided_on or existing.get("offerAcceptedDate") or _today()
        elif status == "declined":
            record["offerDeclinedDate"] = decided_on or existing.get("offerDeclinedDate") or _today()
        record["taken"] = status == "accepted"

        saved = self.backend.save_record("offers", record)
        self._log(
            "offers",
            saved,
            "edited",
            from_status=OFFER_STATUS_LABELS[previous],
            to_status=OFFER_STATUS_LABELS[status],
        )
        self._changed("offers")
        return saved

    def list_activity(self, variant: str) -> list[ActivityItem]:
        if variant not in ACTIVITY_VARIANTS:
            raise ValueError(f"unknown activity variant '{variant}'")
        return self.backend.list_activity(variant)

    def delete_activity(self, variant: str, activity_id: str) -> bool:
        if variant not in ACTIVITY_VARIANTS:
            raise ValueError(f"unknown activity variant '{variant}'")
        return self.backend.delete_activity(variant, activity_id)

    def clear_activity(self, variant: str) -> int:
        if variant not in ACTIVITY_VARIANTS:
            raise ValueError(f"unknown activity variant '{variant}'")
        return self.backend.clear_activity(variant)

    def export_backup(self) -> dict[str, Any]:
        return export_backup(self.backend)

    def import_backup(self, payload: Any) -> ImportSummary:
        summary = import_backup(self.backend, payload)
        for bucket, added in summary.added.items():
            if added and bucket in BUCKETS:
                self._changed(bucket)
        return summary

    def clear_all_data(self) -> dict[str, int]:
        """Empty every bucket and activity log; the account itself is untouched."""
        deleted = self.backend.clear_all()
        logger.info(
            "Cleared tracker data applications=%s activity=%s",
            deleted["applications"],
            deleted["activity_logs"],
        )
        for bucket in BUCKETS:
            self._changed(bucket)
        return deleted


def account_tracker(repo: Repository, user_id: str, *, max_activity: int = 200) -> TrackerService:
    """Tracker for a signed-in user; every change pings that user's open pages."""
    return TrackerService(
        AccountBackend(repo, user_id, max_activity=max_activity),
        on_change=lambda bucket: notify_change(user_id, bucket),
    )
