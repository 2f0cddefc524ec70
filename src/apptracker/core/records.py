from __future__ import annotations

import re
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from apptracker.types import OfferStatus


@dataclass(frozen=True, slots=True)
class BucketConfig:
    name: str
    title: str
    path: str
    search_fields: tuple[str, ...]
    date_field: str | None = None
    date_label: str = "Date"
    # extra fields asked for when a record is moved into this bucket
    move_fields: tuple[str, ...] = field(default_factory=tuple)


BUCKET_CONFIGS: dict[str, BucketConfig] = {
    "applied": BucketConfig(
        name="applied",
        title="Applied",
        path="/applied",
        search_fields=(
            "company",
            "role",
            "location",
            "status",
            "notes",
            "contactPerson",
            "contactEmail",
            "contactPhone",
        ),
        date_field="appliedOn",
        date_label="Applied on",
        move_fields=("appliedOn",),
    ),
    "interviews": BucketConfig(
        name="interviews",
        title="Interviews",
        path="/interviews",
        search_fields=(
            "company",
            "role",
            "location",
            "type",
            "date",
            "notes",
            "contact.name",
            "contact.email",
            "contact.phone",
        ),
        date_field="date",
        date_label="Interview on",
        move_fields=("date", "time", "type"),
    ),
    "offers": BucketConfig(
        name="offers",
        title="Offers",
        path="/offers-received",
        search_fields=(
            "company",
            "role",
            "location",
            "salary",
            "notes",
            "offerReceivedDate",
            "offerAcceptedDate",
            "offerDeclinedDate",
            "decisionDate",
            "employmentType",
        ),
        date_field="offerReceivedDate",
        date_label="Offer received on",
        move_fields=("offerReceivedDate", "salary"),
    ),
    "rejected": BucketConfig(
        name="rejected",
        title="Rejected",
        path="/rejected",
        search_fields=("company", "role", "location", "reason", "notes", "rejectionType", "decisionDate"),
        date_field="decisionDate",
        date_label="Rejected on",
        move_fields=("decisionDate", "reason", "rejectionType"),
    ),
    "withdrawn": BucketConfig(
        name="withdrawn",
        title="Withdrawn",
        path="/withdrawn",
        search_fields=(
            "company",
            "role",
            "location",
            "reason",
            "notes",
            "withdrawnDate",
            "interviewDate",
            "interviewType",
        ),
        date_field="withdrawnDate",
        date_label="Withdrawn on",
        move_fields=("withdrawnDate", "reason"),
    ),
    "wishlist": BucketConfig(
        name="wishlist",
        title="Wishlist",
        path="/wishlist",
        search_fields=("company", "role", "location", "priority", "notes", "offerType", "website"),
        move_fields=("priority",),
    ),
    "notes": BucketConfig(
        name="notes",
        title="Notes",
        path="/notes",
        search_fields=("title", "content", "tags"),
        date_field="updatedAt",
        date_label="Updated",
    ),
}

BUCKETS: tuple[str, ...] = tuple(BUCKET_CONFIGS)
ACTIVITY_VARIANTS: tuple[str, ...] = ("applied", "interviews", "rejected", "withdrawn", "offers")
MOVABLE_BUCKETS: tuple[str, ...] = tuple(bucket for bucket in BUCKETS if bucket != "notes")

# top-bar search shows sections in sidebar order
SEARCH_SECTION_ORDER: tuple[str, ...] = (
    "applied",
    "interviews",
    "offers",
    "rejected",
    "withdrawn",
    "wishlist",
    "notes",
)
SEARCH_RESULT_LIMIT = 40
SEARCH_SECTION_LIMIT = 6


def get_bucket_config(bucket: str) -> BucketConfig:
    try:
        return BUCKET_CONFIGS[bucket]
    except KeyError as exc:
        raise ValueError(f"unknown bucket '{bucket}'") from exc


def bucket_for_path(path: str) -> BucketConfig | None:
    for config in BUCKET_CONFIGS.values():
        if config.path == path:
            return config
    return None


def ensure_record_id(record: Mapping[str, Any]) -> dict[str, Any]:
    data = dict(record)
    record_id = data.get("id")
    if not isinstance(record_id, str) or not record_id.strip():
        data["id"] = str(uuid.uuid4())
    return data


def is_valid_record(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("id"), str) and bool(value["id"])


def safe_record_list(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if is_valid_record(item)]


def is_accepted_offer(record: Mapping[str, Any]) -> bool:
    return bool(record.get("offerAcceptedDate")) or bool(record.get("taken"))


def is_declined_offer(record: Mapping[str, Any]) -> bool:
    return bool(record.get("offerDeclinedDate"))


def is_pending_offer(record: Mapping[str, Any]) -> bool:
    return not is_accepted_offer(record) and not is_declined_offer(record)


def offer_status(record: Mapping[str, Any]) -> OfferStatus:
    if is_accepted_offer(record):
        return "accepted"
    if is_declined_offer(record):
        return "declined"
    return "received"


def _field_value(record: Mapping[str, Any], path: str) -> Any:
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(_as_text(item) for item in value)
    return str(value).strip()


def build_search_text(parts: Iterable[Any]) -> str:
    cleaned = [_as_text(part) for part in parts]
    return " ".join(part for part in cleaned if part).lower()


def search_text_for(bucket: str, record: Mapping[str, Any]) -> str:
    config = get_bucket_config(bucket)
    return build_search_text(_field_value(record, name) for name in config.search_fields)


def filter_records(bucket: str, records: list[dict[str, Any]], query: str | None) -> list[dict[str, Any]]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(records)
    return [record for record in records if needle in search_text_for(bucket, record)]


def make_snippet(value: Any, max_length: int = 80) -> str:
    cleaned = re.sub(r"\s+", " ", _as_text(value)).strip()
    if not cleaned:
        return ""
    if len(cleaned) <= max_length:
        return cleaned
    return f"{cleaned[: max(0, max_length - 3)]}..."


def display_title(bucket: str, record: Mapping[str, Any]) -> str:
    if bucket == "notes":
        return _as_text(record.get("title")) or make_snippet(record.get("content"), 40) or "Untitled note"
    return _as_text(record.get("company")) or "Unknown company"


def display_subtitle(bucket: str, record: Mapping[str, Any]) -> str:
    if bucket == "notes":
        return make_snippet(record.get("content"))
    parts = [_as_text(record.get("role")), _as_text(record.get("location"))]
    return " · ".join(part for part in parts if part)


def search_all(
    records_by_bucket: Mapping[str, list[dict[str, Any]]],
    query: str | None,
    *,
    limit: int = SEARCH_RESULT_LIMIT,
    per_section: int = SEARCH_SECTION_LIMIT,
) -> dict[str, list[dict[str, Any]]]:
    """Substring search over every loaded record, grouped by bucket.

    The overall ``limit`` is applied across buckets in sidebar order before the
    per-section cap, so a busy bucket can starve later ones.
    """
    needle = (query or "").strip().lower()
    grouped: dict[str, list[dict[str, Any]]] = {}
    if not needle:
        return grouped

    remaining = limit
    for bucket in SEARCH_SECTION_ORDER:
        if remaining <= 0:
            break
        for record in records_by_bucket.get(bucket, []):
            if remaining <= 0:
                break
            if needle not in search_text_for(bucket, record):
                continue
            remaining -= 1
            section = grouped.setdefault(bucket, [])
            if len(section) >= per_section:
                continue
            section.append(
                {
                    "id": record["id"],
                    "bucket": bucket,
                    "title": display_title(bucket, record),
                    "subtitle": display_subtitle(bucket, record),
                    "snippet": make_snippet(record.get("notes") or record.get("content")),
                    "href": get_bucket_config(bucket).path,
                }
            )
    return grouped


def count_buckets(records_by_bucket: Mapping[str, list[dict[str, Any]]]) -> dict[str, int]:
    counts = {bucket: len(records_by_bucket.get(bucket, [])) for bucket in BUCKETS}
    counts["accepted"] = sum(1 for record in records_by_bucket.get("offers", []) if is_accepted_offer(record))
    return counts


def merge_move_fields(record: Mapping[str, Any], fields: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = dict(record)
    for key, value in (fields or {}).items():
        if key == "id":
            continue
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        merged[key] = value
    return merged
