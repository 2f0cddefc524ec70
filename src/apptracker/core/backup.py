from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from apptracker.core.activity import is_uuid, normalize_item
from apptracker.core.records import ACTIVITY_VARIANTS
from apptracker.types import ActivityItem

logger = logging.getLogger(__name__)

BACKUP_SOURCE = "job-tracker"
# file order of a backup, alphabetical like the exported JSON
BACKUP_BUCKETS: tuple[str, ...] = ("applied", "interviews", "notes", "offers", "rejected", "wishlist", "withdrawn")


class BackupError(ValueError):
    pass


class BackupBackend(Protocol):
    def list_records(self, bucket: str) -> list[dict[str, Any]]: ...

    def list_activity(self, variant: str) -> list[ActivityItem]: ...

    def taken_record_ids(self, ids: list[str]) -> set[str]: ...

    def taken_activity_ids(self, ids: list[str]) -> set[str]: ...

    def import_records(self, bucket: str, records: list[dict[str, Any]]) -> int: ...

    def import_activity(self, variant: str, items: list[ActivityItem]) -> int: ...


@dataclass
class ImportSummary:
    added: dict[str, int] = field(default_factory=dict)
    skipped: dict[str, int] = field(default_factory=dict)

    @property
    def total_added(self) -> int:
        return sum(self.added.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": dict(self.added),
            "skipped": dict(self.skipped),
            "total": self.total_added,
            "message": f"Import finished: added {self.total_added} new items.",
        }


def backup_filename(now: datetime | None = None) -> str:
    moment = now or datetime.now(UTC)
    return f"job-tracker-backup-{int(moment.timestamp() * 1000)}.json"


def export_backup(backend: BackupBackend, now: datetime | None = None) -> dict[str, Any]:
    moment = now or datetime.now(UTC)
    payload: dict[str, Any] = {
        "meta": {"exportedAt": moment.isoformat().replace("+00:00", "Z"), "source": BACKUP_SOURCE},
    }
    for bucket in BACKUP_BUCKETS:
        payload[bucket] = backend.list_records(bucket)
    payload["activity"] = {
        variant: [item.model_dump(exclude_none=True) for item in backend.list_activity(variant)]
        for variant in ACTIVITY_VARIANTS
    }
    return payload


def _require_object(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise BackupError("Invalid backup file")
    return payload


def summarize_backup(payload: Any) -> dict[str, int]:
    """Entry counts shown before an import is confirmed."""
    data = _require_object(payload)
    summary: dict[str, int] = {}
    total = 0
    for bucket in BACKUP_BUCKETS:
        if isinstance(data.get(bucket), list):
            summary[bucket] = len(data[bucket])
            total += len(data[bucket])

    activity = data.get("activity")
    if isinstance(activity, dict):
        activity_total = sum(len(items) for items in activity.values() if isinstance(items, list))
        if activity_total:
            summary["activity"] = activity_total
            total += activity_total

    summary["total"] = total
    return summary


def _fresh_id(current: Any, taken: set[str]) -> str:
    if isinstance(current, str) and current and current not in taken:
        return current
    return str(uuid.uuid4())


def _plan_records(backend: BackupBackend, bucket: str, incoming: list[Any]) -> tuple[list[dict[str, Any]], int]:
    existing = backend.list_records(bucket)
    candidate_ids = [item["id"] for item in incoming if isinstance(item, dict) and isinstance(item.get("id"), str)]
    taken = {record["id"] for record in existing} | backend.taken_record_ids(candidate_ids)

    accepted: list[dict[str, Any]] = []
    skipped = 0
    for item in incoming:
        if not isinstance(item, dict) or item in existing or item in accepted:
            skipped += 1
            continue
        record_id = _fresh_id(item.get("id"), taken)
        taken.add(record_id)
        accepted.append({**item, "id": record_id})
    return accepted, skipped


def _plan_activity(backend: BackupBackend, variant: str, incoming: list[Any]) -> tuple[list[ActivityItem], int]:
    existing = [item.model_dump(exclude_none=True) for item in backend.list_activity(variant)]
    candidate_ids = [item["id"] for item in incoming if isinstance(item, dict) and isinstance(item.get("id"), str)]
    taken = {item["id"] for item in existing} | backend.taken_activity_ids(candidate_ids)

    accepted: list[ActivityItem] = []
    seen: list[dict[str, Any]] = []
    skipped = 0
    for raw in incoming:
        try:
            item = ActivityItem.model_validate(raw)
        except ValueError:
            skipped += 1
            continue
        dumped = item.model_dump(exclude_none=True)
        if dumped in existing or dumped in seen:
            skipped += 1
            continue
        seen.append(dumped)
        activity_id = item.id if is_uuid(item.id) and item.id not in taken else str(uuid.uuid4())
        taken.add(activity_id)
        accepted.append(normalize_item(item.model_copy(update={"id": activity_id})))
    return accepted, skipped


def import_backup(backend: BackupBackend, payload: Any) -> ImportSummary:
    """Add the entries of a backup that are not already present.

    Entries identical to an existing one are skipped. An entry whose id is
    already in use gets a new id, so nothing stored is ever overwritten.
    """
    data = _require_object(payload)
    summary = ImportSummary()

    for bucket in BACKUP_BUCKETS:
        incoming = data.get(bucket)
        if not isinstance(incoming, list):
            continue
        records, skipped = _plan_records(backend, bucket, incoming)
        summary.added[bucket] = backend.import_records(bucket, records) if records else 0
        summary.skipped[bucket] = skipped

    activity = data.get("activity")
    if isinstance(activity, dict):
        added = skipped_total = 0
        for variant in ACTIVITY_VARIANTS:
            incoming = activity.get(variant)
            if not isinstance(incoming, list):
                continue
            items, skipped = _plan_activity(backend, variant, incoming)
            added += backend.import_activity(variant, items) if items else 0
            skipped_total += skipped
        summary.added["activity"] = added
        summary.skipped["activity"] = skipped_total

    logger.info("Backup imported added=%s skipped=%s", summary.total_added, sum(summary.skipped.values()))
    return summary
