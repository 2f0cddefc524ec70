from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol

from apptracker.core.activity import normalize_item, safe_activity_list
from apptracker.core.auth import AuthSessionInfo
from apptracker.core.records import ACTIVITY_VARIANTS, BUCKETS, ensure_record_id, safe_record_list
from apptracker.db.repositories import Repository
from apptracker.db.session import SessionLocal
from apptracker.types import ActivityItem

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[], AbstractContextManager[Repository]]


class GuestSource(Protocol):
    def list_records(self, bucket: str) -> list[dict[str, Any]]: ...

    def clear_bucket(self, bucket: str) -> None: ...

    def list_activity(self, variant: str) -> list[ActivityItem]: ...

    def clear_activity(self, variant: str) -> None: ...


class PayloadGuestSource:
    """Guest data submitted by a browser client, shaped ``{"buckets": {...}, "activity": {...}}``."""

    def __init__(self, payload: dict[str, Any] | None):
        payload = payload or {}
        buckets = payload.get("buckets") if isinstance(payload.get("buckets"), dict) else {}
        activity = payload.get("activity") if isinstance(payload.get("activity"), dict) else {}
        self.buckets = {bucket: safe_record_list(buckets.get(bucket)) for bucket in BUCKETS}
        self.activity = {variant: safe_activity_list(activity.get(variant)) for variant in ACTIVITY_VARIANTS}
        self.cleared: set[str] = set()

    def list_records(self, bucket: str) -> list[dict[str, Any]]:
        return list(self.buckets.get(bucket, []))

    def clear_bucket(self, bucket: str) -> None:
        self.buckets[bucket] = []
        self.cleared.add(bucket)

    def list_activity(self, variant: str) -> list[ActivityItem]:
        return list(self.activity.get(variant, []))

    def clear_activity(self, variant: str) -> None:
        self.activity[variant] = []
        self.cleared.add(f"activity:{variant}")


@dataclass
class BucketMigration:
    migrated: int = 0
    skipped: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"migrated": self.migrated, "skipped": self.skipped, "error": self.error}


@dataclass
class MigrationResult:
    status: str = "completed"
    buckets: dict[str, BucketMigration] = field(default_factory=dict)
    activity: dict[str, BucketMigration] = field(default_factory=dict)

    @property
    def migrated(self) -> int:
        return sum(entry.migrated for entry in self.buckets.values())

    @property
    def errors(self) -> dict[str, str]:
        found = {name: entry.error for name, entry in self.buckets.items() if entry.error}
        found.update({f"activity:{name}": entry.error for name, entry in self.activity.items() if entry.error})
        return found

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "migrated": self.migrated,
            "buckets": {name: entry.to_dict() for name, entry in self.buckets.items()},
            "activity": {name: entry.to_dict() for name, entry in self.activity.items()},
            "errors": self.errors,
        }


class MigrationRegistry:
    """Remembers which session keys already ran a migration.

    Only the newest ``max_results`` outcomes are kept, and signing out forgets
    the session's key. A key that was dropped simply migrates again, which
    inserts nothing new.
    """

    def __init__(self, max_results: int = 1024) -> None:
        self._lock = threading.Lock()
        self._running: set[str] = set()
        self._results: OrderedDict[str, MigrationResult] = OrderedDict()
        self.max_results = max_results

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def begin(self, key: str) -> bool:
        with self._lock:
            if key in self._running or key in self._results:
                return False
            self._running.add(key)
            return True

    def finish(self, key: str, result: MigrationResult) -> None:
        with self._lock:
            self._running.discard(key)
            self._results[key] = result
            self._results.move_to_end(key)
            while len(self._results) > self.max_results:
                self._results.popitem(last=False)

    def result(self, key: str) -> MigrationResult | None:
        with self._lock:
            return self._results.get(key)

    def forget(self, key: str) -> None:
        with self._lock:
            self._results.pop(key, None)

    def reset(self) -> None:
        with self._lock:
            self._running.clear()
            self._results.clear()


_REGISTRY = MigrationRegistry()


def get_migration_registry() -> MigrationRegistry:
    return _REGISTRY


@contextmanager
def database_repository() -> Iterator[Repository]:
    with SessionLocal() as db:
        yield Repository(db)


def _dedupe_records(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    unique: list[dict[str, Any]] = []
    for record in records:
        data = ensure_record_id(record)
        if data["id"] in seen:
            continue
        seen.add(data["id"])
        unique.append(data)
    return unique


class GuestMigrator:
    """Copies guest records into a freshly signed-in account.

    Remote rows are only ever inserted. A bucket's guest copy is cleared once
    its rows are stored, so a failed bucket is retried on the next sign-in.
    """

    def __init__(
        self,
        source: GuestSource,
        repository_factory: RepositoryFactory = database_repository,
        *,
        registry: MigrationRegistry | None = None,
        max_activity: int = 200,
    ):
        self.source = source
        self.repository_factory = repository_factory
        self.registry = registry or get_migration_registry()
        self.max_activity = max_activity

    def migrate(self, session: AuthSessionInfo) -> MigrationResult:
        key = session.access_token
        if not self.registry.begin(key):
            logger.info("Guest migration already handled for this session")
            return self.registry.result(key) or MigrationResult(status="skipped")

        result = MigrationResult()
        try:
            for bucket in BUCKETS:
                result.buckets[bucket] = self._migrate_bucket(session.user_id, bucket)
            for variant in ACTIVITY_VARIANTS:
                result.activity[variant] = self._migrate_activity(session.user_id, variant)
            if result.errors:
                result.status = "partial"
            return result
        finally:
            self.registry.finish(key, result)

    def _migrate_bucket(self, user_id: str, bucket: str) -> BucketMigration:
        entry = BucketMigration()
        try:
            records = _dedupe_records(self.source.list_records(bucket))
            if not records:
                return entry
            with self.repository_factory() as repo:
                owners = repo.record_id_owners(record["id"] for record in records)
                pending: list[dict[str, Any]] = []
                for record in records:
                    owner = owners.get(record["id"])
                    if owner == user_id:
                        entry.skipped += 1
                        continue
                    if owner is not None:
                        record = {**record, "id": str(uuid.uuid4())}
                    pending.append(record)
                try:
                    # guest lists are newest first; insert oldest first to keep that order
                    entry.migrated = repo.upsert_records(user_id, bucket, list(reversed(pending)))
                except Exception:
                    repo.session.rollback()
                    raise
            self.source.clear_bucket(bucket)
            logger.info("Migrated %s guest %s records (%s already present)", entry.migrated, bucket, entry.skipped)
        except Exception as exc:
            logger.exception("Guest migration failed for bucket=%s", bucket)
            entry.error = str(exc)
        return entry

    def _migrate_activity(self, user_id: str, variant: str) -> BucketMigration:
        entry = BucketMigration()
        try:
            items = [normalize_item(item) for item in self.source.list_activity(variant)]
            if not items:
                return entry
            with self.repository_factory() as repo:
                owners = repo.activity_id_owners(item.id for item in items)
                pending: list[ActivityItem] = []
                seen: set[str] = set()
                for item in items:
                    owner = owners.get(item.id)
                    if owner == user_id or item.id in seen:
                        entry.skipped += 1
                        continue
                    if owner is not None:
                        item = item.model_copy(update={"id": str(uuid.uuid4())})
                    seen.add(item.id)
                    pending.append(item)
                try:
                    entry.migrated = repo.append_activity(user_id, variant, pending, max_items=self.max_activity)
                except Exception:
                    repo.session.rollback()
                    raise
            self.source.clear_activity(variant)
        except Exception as exc:
            logger.exception("Guest migration failed for activity variant=%s", variant)
            entry.error = str(exc)
        return entry
