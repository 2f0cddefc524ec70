from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from apptracker.core.records import ACTIVITY_VARIANTS, BUCKETS, get_bucket_config
from apptracker.db.models import ActivityLog, Application, AuthSession, EmailPreference, User
from apptracker.types import ActivityItem, EmailPreferences


class RecordNotFound(LookupError):
    pass


def _check_variant(variant: str) -> None:
    if variant not in ACTIVITY_VARIANTS:
        raise ValueError(f"unknown activity variant '{variant}'")


def row_to_record(row: Application) -> dict[str, Any]:
    return {**(row.data or {}), "id": row.id}


class Repository:
    """Data access scoped per user, the way row-level security scopes it remotely."""

    def __init__(self, session: Session):
        self.session = session

    # users and sessions

    def create_user(
        self,
        *,
        user_id: str,
        email: str,
        password_hash: str,
        full_name: str = "",
        goals: dict[str, Any] | None = None,
    ) -> User:
        user = User(
            id=user_id,
            email=email,
            password_hash=password_hash,
            full_name=full_name,
            goals_json=goals or {},
        )
        self.session.add(user)
        self.session.add(EmailPreference(user_id=user_id))
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_user(self, user_id: str) -> User | None:
        return self.session.get(User, user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self.session.scalar(select(User).where(User.email == email))

    def update_user_goals(self, user_id: str, goals: dict[str, Any]) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise RecordNotFound(f"user {user_id} not found")
        user.goals_json = goals
        self.session.commit()
        self.session.refresh(user)
        return user

    def create_auth_session(self, *, token: str, user_id: str, expires_at: datetime) -> AuthSession:
        row = AuthSession(token=token, user_id=user_id, expires_at=expires_at)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def get_auth_session(self, token: str) -> AuthSession | None:
        return self.session.get(AuthSession, token)

    def delete_auth_session(self, token: str) -> None:
        self.session.execute(delete(AuthSession).where(AuthSession.token == token))
        self.session.commit()

    def delete_user(self, user_id: str) -> None:
        self.session.execute(delete(AuthSession).where(AuthSession.user_id == user_id))
        self.session.execute(delete(User).where(User.id == user_id))
        self.session.commit()

    # application records

    def list_records(self, user_id: str, bucket: str) -> list[dict[str, Any]]:
        get_bucket_config(bucket)
        statement = (
            select(Application)
            .where(Application.user_id == user_id, Application.bucket == bucket)
            .order_by(Application.seq.desc())
        )
        return [row_to_record(row) for row in self.session.scalars(statement).all()]

    def list_all_records(self, user_id: str) -> dict[str, list[dict[str, Any]]]:
        grouped: dict[str, list[dict[str, Any]]] = {bucket: [] for bucket in BUCKETS}
        statement = (
            select(Application)
            .where(Application.user_id == user_id)
            .order_by(Application.seq.desc())
        )
        for row in self.session.scalars(statement).all():
            if row.bucket in grouped:
                grouped[row.bucket].append(row_to_record(row))
        return grouped

    def list_rows(self, bucket: str, user_ids: Iterable[str] | None = None) -> list[Application]:
        """Cross-user read for the service-role jobs (reminders, digests)."""
        statement = select(Application).where(Application.bucket == bucket)
        if user_ids is not None:
            statement = statement.where(Application.user_id.in_(list(user_ids)))
        return list(self.session.scalars(statement.order_by(Application.seq.asc())).all())

    def list_user_rows(self, user_id: str) -> list[Application]:
        statement = select(Application).where(Application.user_id == user_id)
        return list(self.session.scalars(statement).all())

    def get_record(self, user_id: str, bucket: str, record_id: str) -> dict[str, Any] | None:
        row = self._owned_row(user_id, record_id)
        if row is None or row.bucket != bucket:
            return None
        return row_to_record(row)

    def upsert_record(self, user_id: str, bucket: str, record: dict[str, Any]) -> dict[str, Any]:
        get_bucket_config(bucket)
        record_id = record.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("record id is required")

        row = self._row(record_id)
        if row is not None and row.user_id != user_id:
            raise RecordNotFound(f"record {record_id} not found")

        data = {**record, "id": record_id}
        if row is None:
            row = Application(id=record_id, user_id=user_id, bucket=bucket, data=data)
            self.session.add(row)
        else:
            row.bucket = bucket
            row.data = data
        self.session.commit()
        self.session.refresh(row)
        return row_to_record(row)

    def upsert_records(self, user_id: str, bucket: str, records: list[dict[str, Any]]) -> int:
        """Insert in one transaction; rows owned by another user are left alone."""
        get_bucket_config(bucket)
        written = 0
        for record in records:
            row = self._row(record["id"])
            if row is not None and row.user_id != user_id:
                continue
            if row is None:
                self.session.add(Application(id=record["id"], user_id=user_id, bucket=bucket, data=dict(record)))
            else:
                row.bucket = bucket
                row.data = dict(record)
            written += 1
        self.session.commit()
        return written

    def update_record_data(self, record_id: str, data: dict[str, Any]) -> None:
        row = self._row(record_id)
        if row is None:
            raise RecordNotFound(f"record {record_id} not found")
        row.data = {**data, "id": record_id}
        self.session.commit()

    def delete_record(self, user_id: str, bucket: str, record_id: str) -> bool:
        result = self.session.execute(
            delete(Application).where(
                Application.id == record_id,
                Application.user_id == user_id,
                Application.bucket == bucket,
            )
        )
        self.session.commit()
        return bool(result.rowcount)

    def record_id_owners(self, record_ids: Iterable[str]) -> dict[str, str]:
        ids = list(record_ids)
        if not ids:
            return {}
        statement = select(Application.id, Application.user_id).where(Application.id.in_(ids))
        return {record_id: owner for record_id, owner in self.session.execute(statement).all()}

    def _row(self, record_id: str) -> Application | None:
        return self.session.scalar(select(Application).where(Application.id == record_id))

    def _owned_row(self, user_id: str, record_id: str) -> Application | None:
        row = self._row(record_id)
        if row is None or row.user_id != user_id:
            return None
        return row

    # activity logs

    def list_activity(self, user_id: str, variant: str, limit: int = 200) -> list[ActivityItem]:
        _check_variant(variant)
        statement = (
            select(ActivityLog)
            .where(ActivityLog.user_id == user_id, ActivityLog.variant == variant)
            .order_by(ActivityLog.seq.desc())
            .limit(limit)
        )
        items: list[ActivityItem] = []
        for row in self.session.scalars(statement).all():
            items.append(ActivityItem.model_validate({**(row.data or {}), "id": row.id}))
        return items

    def activity_id_owners(self, ids: Iterable[str]) -> dict[str, str]:
        id_list = list(ids)
        if not id_list:
            return {}
        statement = select(ActivityLog.id, ActivityLog.user_id).where(ActivityLog.id.in_(id_list))
        return {activity_id: owner for activity_id, owner in self.session.execute(statement).all()}

    def append_activity(
        self,
        user_id: str,
        variant: str,
        items: list[ActivityItem],
        *,
        max_items: int = 200,
    ) -> int:
        """Insert entries oldest first and trim the variant back to ``max_items``."""
        _check_variant(variant)
        for item in reversed(items):
            self.session.add(
                ActivityLog(
                    id=item.id,
                    user_id=user_id,
                    variant=variant,
                    data=item.model_dump(exclude_none=True),
                )
            )
        self.session.flush()

        keep = (
            select(ActivityLog.id)
            .where(ActivityLog.user_id == user_id, ActivityLog.variant == variant)
            .order_by(ActivityLog.seq.desc())
            .limit(max_items)
        )
        self.session.execute(
            delete(ActivityLog).where(
                ActivityLog.user_id == user_id,
                ActivityLog.variant == variant,
                ActivityLog.seq.not_in(keep.scalar_subquery()),
            )
        )
        self.session.commit()
        return len(items)

    def delete_activity(self, user_id: str, variant: str, activity_id: str) -> bool:
        _check_variant(variant)
        result = self.session.execute(
            delete(ActivityLog).where(
                ActivityLog.id == activity_id,
                ActivityLog.user_id == user_id,
                ActivityLog.variant == variant,
            )
        )
        self.session.commit()
        return bool(result.rowcount)

    def clear_activity(self, user_id: str, variant: str) -> int:
        _check_variant(variant)
        result = self.session.execute(
            delete(ActivityLog).where(ActivityLog.user_id == user_id, ActivityLog.variant == variant)
        )
        self.session.commit()
        return result.rowcount or 0

    # email preferences

    def get_email_preferences(self, user_id: str) -> EmailPreferences:
        row = self.session.scalar(select(EmailPreference).where(EmailPreference.user_id == user_id))
        if row is None:
            row = EmailPreference(user_id=user_id)
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
        return EmailPreferences(
            email_reminders_enabled=row.email_reminders_enabled,
            reminder_hours_before=row.reminder_hours_before,
            monthly_digest_enabled=row.monthly_digest_enabled,
        )

    def save_email_preferences(self, user_id: str, values: dict[str, Any]) -> EmailPreferences:
        row = self.session.scalar(select(EmailPreference).where(EmailPreference.user_id == user_id))
        if row is None:
            row = EmailPreference(user_id=user_id)
            self.session.add(row)
        for key, value in values.items():
            setattr(row, key, value)
        self.session.commit()
        return self.get_email_preferences(user_id)

    def list_reminder_recipients(self) -> list[EmailPreference]:
        statement = select(EmailPreference).where(EmailPreference.email_reminders_enabled.is_(True))
        return list(self.session.scalars(statement).all())

    def list_digest_recipients(self) -> list[EmailPreference]:
        statement = select(EmailPreference).where(EmailPreference.monthly_digest_enabled.is_(True))
        return list(self.session.scalars(statement).all())

    # purges

    def purge_tracker_data(self, user_id: str) -> dict[str, int]:
        """Delete every record and activity entry; the account and its settings stay."""
        apps = self.session.execute(
            delete(Application).where(Application.user_id == user_id, Application.bucket.in_(BUCKETS))
        )
        activity = self.session.execute(
            delete(ActivityLog).where(ActivityLog.user_id == user_id, ActivityLog.variant.in_(ACTIVITY_VARIANTS))
        )
        self.session.commit()
        return {"applications": apps.rowcount or 0, "activity_logs": activity.rowcount or 0}

    def purge_user_data(self, user_id: str) -> dict[str, int]:
        deleted = self.purge_tracker_data(user_id)
        prefs = self.session.execute(delete(EmailPreference).where(EmailPreference.user_id == user_id))
        self.session.commit()
        return {**deleted, "user_email_preferences": prefs.rowcount or 0}
