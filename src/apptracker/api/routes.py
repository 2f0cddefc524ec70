from __future__ import annotations

import logging
from contextlib import nullcontext
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from apptracker.api.deps import get_current_user, get_db, request_token
from apptracker.api.schemas import (
    EmailPreferencesUpdate,
    MergeRequest,
    MoveRequest,
    OfferStatusRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
)
from apptracker.config import get_settings
from apptracker.core.activity import describe
from apptracker.core.auth import AuthError, AuthService, AuthSessionInfo
from apptracker.core.backup import BackupError, backup_filename, summarize_backup
from apptracker.core.events import get_event_bus, notify_change
from apptracker.core.goals import goal_progress, parse_goals
from apptracker.core.migration import GuestMigrator, PayloadGuestSource, get_migration_registry
from apptracker.core.records import ACTIVITY_VARIANTS, BUCKETS
from apptracker.core.tracker import TrackerService, account_tracker
from apptracker.db.models import User
from apptracker.db.repositories import RecordNotFound, Repository
from apptracker.db.session import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


def _tracker(db: Session, user: User) -> TrackerService:
    return account_tracker(Repository(db), user.id, max_activity=get_settings().activity_max_items)


def _require_bucket(bucket: str) -> None:
    if bucket not in BUCKETS:
        raise HTTPException(status_code=404, detail=f"Unknown bucket '{bucket}'")


def _require_variant(variant: str) -> None:
    if variant not in ACTIVITY_VARIANTS:
        raise HTTPException(status_code=404, detail=f"Unknown activity log '{variant}'")


def _session_response(session: AuthSessionInfo) -> SessionResponse:
    return SessionResponse(**session.to_dict())


# auth


@router.post("/auth/signup", response_model=SessionResponse)
def sign_up(payload: SignUpRequest, db: Session = Depends(get_db)) -> SessionResponse:
    try:
        session = AuthService(Repository(db)).sign_up(payload.email, payload.password, payload.full_name)
    except AuthError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _session_response(session)


@router.post("/auth/signin", response_model=SessionResponse)
def sign_in(payload: SignInRequest, db: Session = Depends(get_db)) -> SessionResponse:
    try:
        session = AuthService(Repository(db)).sign_in(payload.email, payload.password)
    except AuthError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _session_response(session)


@router.post("/auth/signout")
def sign_out(request: Request, db: Session = Depends(get_db)) -> dict:
    token = request_token(request)
    if token:
        AuthService(Repository(db)).sign_out(token)
        get_migration_registry().forget(token)
    return {"ok": True}


@router.get("/auth/session")
def current_session(request: Request, db: Session = Depends(get_db)) -> dict:
    session = AuthService(Repository(db)).session_info(request_token(request))
    if session is None:
        return {"mode": "guest", "session": None}
    return {"mode": "user", "session": session.to_dict()}


# records


@router.get("/records/{bucket}")
def list_records(
    bucket: str,
    q: str | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[dict[str, Any]]:
    _require_bucket(bucket)
    return _tracker(db, user).list_records(bucket, q)


@router.post("/records/{bucket}", status_code=201)
def create_record(
    bucket: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    _require_bucket(bucket)
    try:
        return _tracker(db, user).create_record(bucket, payload)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.put("/records/{bucket}/{record_id}")
def update_record(
    bucket: str,
    record_id: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    _require_bucket(bucket)
    try:
        return _tracker(db, user).update_record(bucket, record_id, payload)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail="Record not found") from exc


@router.delete("/records/{bucket}/{record_id}")
def delete_record(
    bucket: str,
    record_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    _require_bucket(bucket)
    try:
        _tracker(db, user).delete_record(bucket, record_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail="Record not found") from exc
    return {"ok": True, "id": record_id}


@router.post("/records/{bucket}/{record_id}/move")
def move_record(
    bucket: str,
    record_id: str,
    payload: MoveRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    _require_bucket(bucket)
    try:
        record = _tracker(db, user).move_record(bucket, record_id, payload.to, payload.fields)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail="Record not found") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"bucket": payload.to, "record": record}


@router.post("/records/offers/{record_id}/status")
def set_offer_status(
    record_id: str,
    payload: OfferStatusRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    try:
        return _tracker(db, user).set_offer_status(record_id, payload.status, payload.date)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail="Record not found") from exc


@router.get("/counts")
def counts(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> dict[str, int]:
    return _tracker(db, user).counts()


@router.get("/search")
def search(
    q: str = "",
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, list[dict[str, Any]]]:
    return _tracker(db, user).search(q)


# activity


@router.get("/activity/{variant}")
def list_activity(
    variant: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[dict[str, Any]]:
    _require_variant(variant)
    items = _tracker(db, user).list_activity(variant)
    return [{**item.model_dump(exclude_none=True), "display": describe(variant, item)} for item in items]


@router.delete("/activity/{variant}/{activity_id}")
def delete_activity(
    variant: str,
    activity_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    _require_variant(variant)
    if not _tracker(db, user).delete_activity(variant, activity_id):
        raise HTTPException(status_code=404, detail="Activity entry not found")
    return {"ok": True}


@router.delete("/activity/{variant}")
def clear_activity(
    variant: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    _require_variant(variant)
    return {"ok": True, "deleted": _tracker(db, user).clear_activity(variant)}


# preferences and goals


@router.get("/preferences/email")
def get_email_preferences(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> dict:
    return Repository(db).get_email_preferences(user.id).model_dump()


@router.put("/preferences/email")
def update_email_preferences(
    payload: EmailPreferencesUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    values = payload.model_dump(exclude_none=True)
    return Repository(db).save_email_preferences(user.id, values).model_dump()


@router.get("/goals")
def get_goals(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> dict:
    goals = parse_goals(user.goals_json)
    records = Repository(db).list_all_records(user.id)
    return {"goals": goals, "progress": goal_progress(goals, records, datetime.now(UTC))}


@router.put("/goals")
def update_goals(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    goals = parse_goals(payload)
    Repository(db).update_user_goals(user.id, goals)
    return {"goals": goals}


# backup and data


@router.get("/backup")
def export_backup(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> JSONResponse:
    return JSONResponse(
        _tracker(db, user).export_backup(),
        headers={
            "Content-Disposition": f'attachment; filename="{backup_filename()}"',
            "Cache-Control": "no-store",
        },
    )


@router.post("/backup/preview")
def preview_backup(payload: Any = Body(...), user: User = Depends(get_current_user)) -> dict[str, int]:
    try:
        return summarize_backup(payload)
    except BackupError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/backup")
def import_backup(
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    try:
        summary = _tracker(db, user).import_backup(payload)
    except BackupError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return summary.to_dict()


@router.post("/data/clear")
def clear_data(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> dict:
    return {"ok": True, "deleted": _tracker(db, user).clear_all_data()}


# guest merge and account


@router.post("/session/merge")
def merge_guest_data(
    payload: MergeRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    repo = Repository(db)
    session = AuthService(repo).session_info(request_token(request))
    if session is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    migrator = GuestMigrator(
        PayloadGuestSource(payload.model_dump()),
        lambda: nullcontext(repo),
        max_activity=get_settings().activity_max_items,
    )
    result = migrator.migrate(session)
    notify_change(user.id)
    return result.to_dict()


@router.post("/account/delete")
def delete_account(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    repo = Repository(db)
    try:
        deleted = repo.purge_user_data(user.id)
        repo.delete_user(user.id)
    except Exception as exc:
        logger.exception("Account deletion failed user_id=%s", user.id)
        db.rollback()
        return JSONResponse({"ok": False, "error": str(exc)}, status_code=500)
    logger.info("Deleted account %s", user.id)
    return {"ok": True, "deleted": deleted}


@router.websocket("/events/stream")
async def stream_events(websocket: WebSocket, token: str = "") -> None:
    with SessionLocal() as db:
        user = AuthService(Repository(db)).resolve(token)
        user_id = user.id if user else None
    if user_id is None:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    event_bus = get_event_bus()
    try:
        async for event in event_bus.subscribe(user_id):
            await websocket.send_json(event)
    except WebSocketDisconnect:
        return
