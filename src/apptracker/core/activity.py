from __future__ import annotations

import re
import uuid
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

from apptracker.types import ActivityItem

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)

_GENERIC_LABELS: dict[str, dict[str, str]] = {
    "applied": {
        "added": "Application added",
        "edited": "Application updated",
        "deleted": "Application deleted",
    },
    "interviews": {
        "added": "Interview created",
        "edited": "Interview updated",
        "deleted": "Interview deleted",
        "moved_to_interviews": "Interview scheduled",
    },
    "rejected": {
        "added": "Rejection added",
        "edited": "Rejection updated",
        "deleted": "Rejection deleted",
    },
    "withdrawn": {
        "added": "Withdrawn added",
        "edited": "Withdrawn updated",
        "deleted": "Withdrawn deleted",
    },
}

_OFFER_STATUS_LABELS = {
    "accepted": "OFFER ACCEPTED",
    "declined": "OFFER DECLINED",
    "received": "OFFER RECEIVED",
}


def is_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value or ""))


def now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def normalize_item(item: ActivityItem) -> ActivityItem:
    updates: dict[str, Any] = {}
    if not is_uuid(item.id):
        updates["id"] = str(uuid.uuid4())
    if not item.timestamp:
        updates["timestamp"] = now_iso()
    return item.model_copy(update=updates) if updates else item


def safe_activity_list(raw: Any) -> list[ActivityItem]:
    if not isinstance(raw, list):
        return []
    items: list[ActivityItem] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        if not isinstance(entry.get("id"), str) or not isinstance(entry.get("appId"), str):
            continue
        try:
            items.append(ActivityItem.model_validate(entry))
        except ValueError:
            continue
    return items


def build_activity(
    record: Mapping[str, Any],
    activity_type: str,
    *,
    from_status: str | None = None,
    to_status: str | None = None,
    note: str | None = None,
) -> ActivityItem:
    item = ActivityItem(
        appId=str(record.get("id", "")),
        type=activity_type,
        company=str(record.get("company") or record.get("title") or ""),
        role=record.get("role") or None,
        location=record.get("location") or None,
        fromStatus=from_status,
        toStatus=to_status,
        note=note,
        appliedOn=record.get("appliedOn") or None,
        offerReceivedDate=record.get("offerReceivedDate") or None,
        offerAcceptedDate=record.get("offerAcceptedDate") or None,
        offerDeclinedDate=record.get("offerDeclinedDate") or None,
    )
    return normalize_item(item)


def activity_label(variant: str, item: ActivityItem) -> str:
    if variant == "offers":
        if item.type == "added":
            return "OFFER RECEIVED"
        if item.type == "deleted":
            return "OFFER DELETED"
        if item.type == "edited":
            return _OFFER_STATUS_LABELS.get((item.toStatus or "").lower(), "OFFER UPDATED")
        return "OFFER UPDATED"

    labels = _GENERIC_LABELS.get(variant)
    if labels is None:
        return "Activity"
    if item.type in labels:
        return labels[item.type]
    if item.type.startswith("moved_to_"):
        return f"Moved to {item.type.removeprefix('moved_to_')}"
    return "Activity"


def offers_primary_date(item: ActivityItem) -> tuple[str, str | None]:
    to_status = (item.toStatus or "").lower()
    if to_status == "accepted":
        return "Offer accepted on", item.offerAcceptedDate or item.appliedOn
    if to_status == "declined":
        return "Offer declined on", item.offerDeclinedDate or item.appliedOn
    return "Offer received on", item.offerReceivedDate or item.appliedOn


def primary_date(variant: str, item: ActivityItem) -> tuple[str, str | None]:
    if variant == "offers":
        return offers_primary_date(item)
    return "Applied on", item.appliedOn


def _parse(value: str) -> datetime | date | None:
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def format_activity_time(value: str | None) -> str:
    if not value:
        return "—"
    parsed = _parse(value)
    if parsed is None:
        return value
    if isinstance(parsed, datetime):
        return parsed.strftime("%b %d, %Y, %H:%M")
    return parsed.strftime("%b %d, %Y")


def format_display_date(value: str | None) -> str:
    if not value:
        return "—"
    parsed = _parse(value)
    if parsed is None:
        return value
    return parsed.strftime("%b %d, %Y")


def describe(variant: str, item: ActivityItem) -> dict[str, Any]:
    """Flatten an activity entry into what the sidebar template renders."""
    date_label, date_value = primary_date(variant, item)
    return {
        "id": item.id,
        "label": activity_label(variant, item),
        "company": item.company or "Unknown company",
        "role": item.role or "",
        "location": item.location or "",
        "when": format_activity_time(item.timestamp),
        "date_label": date_label,
        "date_value": format_display_date(date_value),
        "is_move": item.type.startswith("moved_to_"),
        "note": item.note or "",
    }
