from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from apptracker.api.deps import get_db, get_optional_user, request_token
from apptracker.config import get_settings
from apptracker.core.activity import describe, format_display_date
from apptracker.core.auth import AuthError, AuthService, AuthSessionInfo
from apptracker.core.backup import BackupError, summarize_backup
from apptracker.core.goals import goal_progress, parse_goals
from apptracker.core.records import (
    ACTIVITY_VARIANTS,
    BUCKET_CONFIGS,
    MOVABLE_BUCKETS,
    bucket_for_path,
    display_subtitle,
    display_title,
    is_accepted_offer,
    offer_status,
)
from apptracker.core.reminders import interview_datetime
from apptracker.core.tracker import TrackerService, account_tracker
from apptracker.db.models import User
from apptracker.db.repositories import RecordNotFound, Repository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["web"])
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))
static_dir = Path(__file__).resolve().parent / "static"

# (field, label, input type) shown in each bucket's add/edit dialog
FORM_FIELDS: dict[str, list[tuple[str, str, str]]] = {
    "applied": [
        ("company", "Company", "text"),
        ("role", "Role", "text"),
        ("location", "Location", "text"),
        ("appliedOn", "Applied on", "date"),
        ("status", "Status", "text"),
        ("employmentType", "Employment type", "text"),
        ("website", "Website", "url"),
        ("contactPerson", "Contact person", "text"),
        ("contactEmail", "Contact email", "email"),
        ("contactPhone", "Contact phone", "tel"),
        ("notes", "Notes", "textarea"),
    ],
    "interviews": [
        ("company", "Company", "text"),
        ("role", "Role", "text"),
        ("location", "Location", "text"),
        ("date", "Date", "date"),
        ("time", "Time", "time"),
        ("type", "Type", "text"),
        ("contact.name", "Contact name", "text"),
        ("contact.email", "Contact email", "email"),
        ("contact.phone", "Contact phone", "tel"),
        ("notes", "Notes", "textarea"),
    ],
    "offers": [
        ("company", "Company", "text"),
        ("role", "Role", "text"),
        ("location", "Location", "text"),
        ("salary", "Salary", "text"),
        ("offerReceivedDate", "Offer received on", "date"),
        ("employmentType", "Employment type", "text"),
        ("notes", "Notes", "textarea"),
    ],
    "rejected": [
        ("company", "Company", "text"),
        ("role", "Role", "text"),
        ("location", "Location", "text"),
        ("decisionDate", "Rejected on", "date"),
        ("rejectionType", "Rejection type", "text"),
        ("reason", "Reason", "text"),
        ("notes", "Notes", "textarea"),
    ],
    "withdrawn": [
        ("company", "Company", "text"),
        ("role", "Role", "text"),
        ("location", "Location", "text"),
        ("withdrawnDate", "Withdrawn on", "date"),
        ("reason", "Reason", "text"),
        ("interviewDate", "Interview date", "date"),
        ("interviewType", "Interview type", "text"),
        ("notes", "Notes", "textarea"),
    ],
    "wishlist": [
        ("company", "Company", "text"),
        ("role", "Role", "text"),
        ("location", "Location", "text"),
        ("priority", "Priority", "text"),
        ("offerType", "Offer type", "text"),
        ("website", "Website", "url"),
        ("notes", "Notes", "textarea"),
    ],
    "notes": [
        ("title", "Title", "text"),
        ("content", "Content", "textarea"),
        ("tags", "Tags (comma separated)", "text"),
        ("color", "Color", "text"),
    ],
}


def _icon_response(*filenames: str) -> Response:
    for filename in filenames:
        icon_path = static_dir / filename
        if icon_path.is_file():
            return FileResponse(icon_path)
    return Response(status_code=204)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def _tracker(db: Session, user: User) -> TrackerService:
    return account_tracker(Repository(db), user.id, max_activity=get_settings().activity_max_items)


def _form_record(form: Any, bucket: str) -> dict[str, Any]:
    """Turn dialog fields into a record body; dotted names nest, blanks are dropped."""
    known = {name for name, _, _ in FORM_FIELDS.get(bucket, [])}
    record: dict[str, Any] = {}
    for name in known:
        value = str(form.get(name) or "").strip()
        if not value:
            continue
        if name == "tags":
            record["tags"] = [tag.strip() for tag in value.split(",") if tag.strip()]
        elif "." in name:
            parent, child = name.split(".", 1)
            record.setdefault(parent, {})[child] = value
        else:
            record[name] = value
    if bucket == "notes":
        record["updatedAt"] = datetime.now(UTC).isoformat().replace("+00:00", "Z")
    return record


def _layout(request: Request, db: Session, user: User, active: str, **extra: Any) -> dict[str, Any]:
    nav = [{"title": "Overview", "path": "/", "key": "overview"}]
    for config in BUCKET_CONFIGS.values():
        nav.append({"title": config.title, "path": config.path, "key": config.name})
        if config.name == "offers":
            nav.append({"title": "Accepted", "path": "/accepted", "key": "accepted"})
    return {
        "user": user,
        "nav": nav,
        "active": active,
        "counts": _tracker(db, user).counts(),
        "ws_token": request_token(request) or "",
        "search_query": "",
        **extra,
    }


def _card(bucket: str, record: dict[str, Any]) -> dict[str, Any]:
    config = BUCKET_CONFIGS[bucket]
    date_value = record.get(config.date_field) if config.date_field else None
    card = {
        "id": record["id"],
        "title": display_title(bucket, record),
        "subtitle": display_subtitle(bucket, record),
        "date_label": config.date_label,
        "date_value": format_display_date(date_value) if date_value else "",
        "notes": record.get("notes") or record.get("content") or "",
        "record": record,
    }
    if bucket == "offers":
        card["status"] = offer_status(record)
    if bucket == "interviews":
        card["time"] = record.get("time") or ""
        card["reminder_sent"] = bool(record.get("reminderSent"))
    return card


def _not_found(request: Request, message: str) -> HTMLResponse:
    return templates.TemplateResponse(request, "not_found.html", {"message": message}, status_code=404)


@router.get("/favicon.ico", include_in_schema=False)
def favicon() -> Response:
    return _icon_response("favicon.ico", "favicon.png", "favicon.svg")


@router.get("/apple-touch-icon.png", include_in_schema=False)
def apple_touch_icon() -> Response:
    return _icon_response("apple-touch-icon.png", "apple-touch-icon.svg")


@router.get("/apple-touch-icon-precomposed.png", include_in_schema=False)
def apple_touch_icon_precomposed() -> Response:
    return _icon_response("apple-touch-icon-precomposed.png", "apple-touch-icon.png", "apple-touch-icon.svg")


@router.get("/", response_class=HTMLResponse)
def overview(request: Request, db: Session = Depends(get_db), user: User | None = Depends(get_optional_user)):
    if user is None:
        return _redirect("/signin")

    repo = Repository(db)
    now = datetime.now(UTC)
    records = repo.list_all_records(user.id)
    goals = parse_goals(user.goals_json)

    upcoming = []
    for record in records["interviews"]:
        when = interview_datetime(record)
        if when is not None and when >= now:
            upcoming.append((when, _card("interviews", record)))
    upcoming.sort(key=lambda pair: pair[0])

    recent = [describe("applied", item) for item in repo.list_activity(user.id, "applied", limit=5)]
    context = _layout(
        request,
        db,
        user,
        "overview",
        progress=goal_progress(goals, records, now),
        upcoming=[card for _, card in upcoming[:5]],
        recent=recent,
    )
    return templates.TemplateResponse(request, "dashboard.html", context)


@router.get("/signin", response_class=HTMLResponse)
def signin_page(request: Request, error: str = "", user: User | None = Depends(get_optional_user)):
    if user is not None:
        return _redirect("/")
    return templates.TemplateResponse(request, "signin.html", {"error": error})


def _signed_in(session: AuthSessionInfo) -> RedirectResponse:
    settings = get_settings()
    response = _redirect("/")
    response.set_cookie(
        settings.session_cookie_name,
        session.access_token,
        max_age=settings.session_ttl_min * 60,
        httponly=True,
        samesite="lax",
    )
    return response


@router.post("/web/signin")
def web_signin(email: str = Form(...), password: str = Form(...), db: Session = Depends(get_db)):
    try:
        session = AuthService(Repository(db)).sign_in(email, password)
    except AuthError as exc:
        return _redirect(f"/signin?error={quote(str(exc))}")
    return _signed_in(session)


@router.post("/web/signup")
def web_signup(
    email: str = Form(...),
    password: str = Form(...),
    full_name: str = Form(""),
    db: Session = Depends(get_db),
):
    try:
        session = AuthService(Repository(db)).sign_up(email, password, full_name)
    except AuthError as exc:
        return _redirect(f"/signin?error={quote(str(exc))}")
    return _signed_in(session)


@router.post("/web/signout")
def web_signout(request: Request, db: Session = Depends(get_db)):
    token = request_token(request)
    if token:
        AuthService(Repository(db)).sign_out(token)
    response = _redirect("/signin")
    response.delete_cookie(get_settings().session_cookie_name)
    return response


@router.get("/accepted", response_class=HTMLResponse)
def accepted_page(request: Request, db: Session = Depends(get_db), user: User | None = Depends(get_optional_user)):
    if user is None:
        return _redirect("/signin")
    offers = [record for record in _tracker(db, user).list_records("offers") if is_accepted_offer(record)]
    context = _layout(
        request,
        db,
        user,
        "accepted",
        title="Accepted offers",
        cards=[_card("offers", record) for record in offers],
    )
    return templates.TemplateResponse(request, "accepted.html", context)


@router.get("/search", response_class=HTMLResponse)
def search_page(
    request: Request,
    q: str = "",
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    results = _tracker(db, user).search(q)
    sections = [
        {"bucket": bucket, "title": BUCKET_CONFIGS[bucket].title, "items": items}
        for bucket, items in results.items()
    ]
    context = _layout(request, db, user, "search", search_query=q, sections=sections)
    return templates.TemplateResponse(request, "search.html", context)


def _settings_response(request: Request, db: Session, user: User, status_code: int = 200, **extra: Any) -> HTMLResponse:
    context = _layout(
        request,
        db,
        user,
        "settings",
        preferences=Repository(db).get_email_preferences(user.id),
        goals=parse_goals(user.goals_json),
        **extra,
    )
    return templates.TemplateResponse(request, "settings.html", context, status_code=status_code)


@router.get("/settings", response_class=HTMLResponse)
def settings_page(
    request: Request,
    saved: str = "",
    imported: int | None = None,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    return _settings_response(request, db, user, saved=saved, imported=imported)


@router.post("/web/settings/email")
def web_save_email_preferences(
    email_reminders_enabled: bool = Form(False),
    reminder_hours_before: int = Form(24),
    monthly_digest_enabled: bool = Form(False),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    Repository(db).save_email_preferences(
        user.id,
        {
            "email_reminders_enabled": email_reminders_enabled,
            "reminder_hours_before": min(max(reminder_hours_before, 1), 336),
            "monthly_digest_enabled": monthly_digest_enabled,
        },
    )
    return _redirect("/settings?saved=email")


@router.post("/web/settings/goals")
def web_save_goals(
    interviews_target: int = Form(3),
    interviews_period: int = Form(30),
    offers_target: int = Form(1),
    offers_period: int = Form(30),
    weekly_target: int = Form(2),
    monthly_target: int = Form(8),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    goals = parse_goals(
        {
            "interviews": {"target": interviews_target, "periodDays": interviews_period},
            "offers": {"target": offers_target, "periodDays": offers_period},
            "overview": {"weeklyTarget": weekly_target, "monthlyTarget": monthly_target},
        }
    )
    Repository(db).update_user_goals(user.id, goals)
    return _redirect("/settings?saved=goals")


@router.post("/web/account/delete")
def web_delete_account(db: Session = Depends(get_db), user: User | None = Depends(get_optional_user)):
    if user is None:
        return _redirect("/signin")
    repo = Repository(db)
    try:
        repo.purge_user_data(user.id)
        repo.delete_user(user.id)
    except Exception:
        logger.exception("Account deletion failed user_id=%s", user.id)
        db.rollback()
        return _redirect("/settings?saved=delete-failed")
    response = _redirect("/signin")
    response.delete_cookie(get_settings().session_cookie_name)
    return response


@router.post("/web/backup/preview")
def web_preview_backup(
    request: Request,
    backup_file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    raw = backup_file.file.read().decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw)
        summary = summarize_backup(payload)
    except (json.JSONDecodeError, BackupError) as exc:
        return _settings_response(request, db, user, status_code=400, import_error=f"Import failed: {exc}")
    preview = {
        "file_name": backup_file.filename or "backup.json",
        "summary": summary,
        "payload": json.dumps(payload, ensure_ascii=False),
    }
    return _settings_response(request, db, user, import_preview=preview)


@router.post("/web/backup/import")
def web_import_backup(
    request: Request,
    payload: str = Form(...),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    try:
        summary = _tracker(db, user).import_backup(json.loads(payload))
    except (json.JSONDecodeError, BackupError) as exc:
        return _settings_response(request, db, user, status_code=400, import_error=f"Import failed: {exc}")
    return _redirect(f"/settings?imported={summary.total_added}")


@router.post("/web/data/clear")
def web_clear_data(db: Session = Depends(get_db), user: User | None = Depends(get_optional_user)):
    if user is None:
        return _redirect("/signin")
    _tracker(db, user).clear_all_data()
    return _redirect("/settings?saved=cleared")


@router.post("/web/records/{bucket}")
async def web_create_record(
    bucket: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    if bucket not in BUCKET_CONFIGS:
        return _not_found(request, "Unknown section")
    form = await request.form()
    _tracker(db, user).create_record(bucket, _form_record(form, bucket))
    return _redirect(BUCKET_CONFIGS[bucket].path)


@router.post("/web/records/{bucket}/{record_id}/edit")
async def web_edit_record(
    bucket: str,
    record_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    if bucket not in BUCKET_CONFIGS:
        return _not_found(request, "Unknown section")
    form = await request.form()
    try:
        _tracker(db, user).update_record(bucket, record_id, _form_record(form, bucket))
    except RecordNotFound:
        return _not_found(request, "Record not found")
    return _redirect(BUCKET_CONFIGS[bucket].path)


@router.post("/web/records/{bucket}/{record_id}/delete")
def web_delete_record(
    bucket: str,
    record_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    if bucket not in BUCKET_CONFIGS:
        return _not_found(request, "Unknown section")
    try:
        _tracker(db, user).delete_record(bucket, record_id)
    except RecordNotFound:
        return _not_found(request, "Record not found")
    return _redirect(BUCKET_CONFIGS[bucket].path)


@router.post("/web/records/{bucket}/{record_id}/move")
async def web_move_record(
    bucket: str,
    record_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    if bucket not in BUCKET_CONFIGS:
        return _not_found(request, "Unknown section")
    form = await request.form()
    destination = str(form.get("to") or "")
    if destination not in BUCKET_CONFIGS:
        return _redirect(BUCKET_CONFIGS[bucket].path)
    fields = {name: str(form.get(name) or "") for name in BUCKET_CONFIGS[destination].move_fields}
    try:
        _tracker(db, user).move_record(bucket, record_id, destination, fields)
    except RecordNotFound:
        return _not_found(request, "Record not found")
    except ValueError:
        return _redirect(BUCKET_CONFIGS[bucket].path)
    return _redirect(BUCKET_CONFIGS[destination].path)


@router.post("/web/records/offers/{record_id}/status")
def web_offer_status(
    record_id: str,
    request: Request,
    status: str = Form(...),
    date: str = Form(""),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    try:
        _tracker(db, user).set_offer_status(record_id, status, date or None)
    except RecordNotFound:
        return _not_found(request, "Record not found")
    except ValueError:
        pass
    return _redirect(BUCKET_CONFIGS["offers"].path)


@router.post("/web/activity/{variant}/{activity_id}/delete")
def web_delete_activity(
    variant: str,
    activity_id: str,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    if user is None:
        return _redirect("/signin")
    if variant in ACTIVITY_VARIANTS:
        _tracker(db, user).delete_activity(variant, activity_id)
    return _redirect(BUCKET_CONFIGS[variant].path if variant in BUCKET_CONFIGS else "/")


@router.post("/web/activity/{variant}/clear")
def web_clear_activity(variant: str, db: Session = Depends(get_db), user: User | None = Depends(get_optional_user)):
    if user is None:
        return _redirect("/signin")
    if variant in ACTIVITY_VARIANTS:
        _tracker(db, user).clear_activity(variant)
    return _redirect(BUCKET_CONFIGS[variant].path if variant in BUCKET_CONFIGS else "/")


# registered last so fixed paths above win
@router.get("/{slug}", response_class=HTMLResponse)
def bucket_page(
    slug: str,
    request: Request,
    q: str = "",
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    config = bucket_for_path(f"/{slug}")
    if config is None:
        return _not_found(request, "Page not found")
    if user is None:
        return _redirect("/signin")

    tracker = _tracker(db, user)
    activity = []
    if config.name in ACTIVITY_VARIANTS:
        activity = [describe(config.name, item) for item in tracker.list_activity(config.name)]

    context = _layout(
        request,
        db,
        user,
        config.name,
        config=config,
        cards=[_card(config.name, record) for record in tracker.list_records(config.name, q)],
        query=q,
        fields=FORM_FIELDS[config.name],
        activity=activity,
        has_activity=config.name in ACTIVITY_VARIANTS,
        move_targets=[BUCKET_CONFIGS[name] for name in MOVABLE_BUCKETS if name != config.name]
        if config.name in MOVABLE_BUCKETS
        else [],
    )
    return templates.TemplateResponse(request, "bucket.html", context)
