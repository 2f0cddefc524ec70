from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
import uvicorn

from apptracker.api.app import create_app
from apptracker.config import get_settings
from apptracker.core.auth import AuthError
from apptracker.core.backup import BackupError, backup_filename, summarize_backup
from apptracker.core.digest import DigestService
from apptracker.core.edge import EdgeFunctionClient, EdgeFunctionError
from apptracker.core.geocoding import LocationClient
from apptracker.core.jobsearch import JobSearchClient, JobSearchParams, UpstreamError
from apptracker.core.local_store import GuestStore, LocalStore
from apptracker.core.records import BUCKETS
from apptracker.core.reminders import ReminderService
from apptracker.core.session import SessionProvider, build_session_provider
from apptracker.core.tracker import GuestBackend, TrackerService, account_tracker
from apptracker.db.init import init_database
from apptracker.db.repositories import RecordNotFound, Repository
from apptracker.db.session import SessionLocal
from apptracker.logging_config import configure_logging

app = typer.Typer(help="Applications tracker CLI")
auth_app = typer.Typer(help="Sign in, sign up and session state")
records_app = typer.Typer(help="Manage tracked records")
jobs_app = typer.Typer(help="Public job search")
suggest_app = typer.Typer(help="Keyword and location suggestions")
reminders_app = typer.Typer(help="Interview reminder emails")
digest_app = typer.Typer(help="Monthly digest emails")
backup_app = typer.Typer(help="JSON backups of every bucket and activity log")

app.add_typer(auth_app, name="auth")
app.add_typer(records_app, name="records")
app.add_typer(jobs_app, name="jobs")
app.add_typer(suggest_app, name="suggest")
app.add_typer(reminders_app, name="reminders")
app.add_typer(digest_app, name="digest")
app.add_typer(backup_app, name="backup")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def _echo(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _provider() -> SessionProvider:
    configure_logging()
    ensure_initialized()
    provider = build_session_provider()
    provider.restore()
    return provider


def _check_bucket(bucket: str) -> str:
    if bucket not in BUCKETS:
        raise typer.BadParameter(f"unknown bucket '{bucket}', expected one of {', '.join(BUCKETS)}")
    return bucket


def _parse_fields(fields: list[str]) -> dict[str, Any]:
    """Parse repeated ``key=value`` options; ``a.b=v`` nests and ``tags=x,y`` becomes a list."""
    data: dict[str, Any] = {}
    for item in fields:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got '{item}'")
        key, value = key.strip(), value.strip()
        if key == "tags":
            data["tags"] = [tag.strip() for tag in value.split(",") if tag.strip()]
        elif "." in key:
            parent, child = key.split(".", 1)
            data.setdefault(parent, {})[child] = value
        else:
            data[key] = value
    return data


@contextmanager
def _tracker() -> Iterator[TrackerService]:
    provider = _provider()
    session = provider.current()
    settings = get_settings()
    if session is None:
        guest = GuestStore(LocalStore(settings.local_storage_dir), max_activity=settings.activity_max_items)
        yield TrackerService(GuestBackend(guest))
        return
    with SessionLocal() as db:
        yield account_tracker(Repository(db), session.user_id, max_activity=settings.activity_max_items)


@app.command("init")
def init_cmd() -> None:
    """Create the database tables and local data directories."""
    configure_logging()
    result = init_database()
    _echo({"ok": True, **result})


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    uvicorn.run(create_app(), host=host or settings.app_host, port=port or settings.app_port)


@auth_app.command("signup")
def auth_signup(
    email: str = typer.Option(..., "--email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    full_name: str = typer.Option("", "--name"),
) -> None:
    provider = _provider()
    try:
        session = provider.sign_up(email, password, full_name)
    except AuthError as exc:
        raise typer.BadParameter(str(exc)) from exc
    _echo({"mode": "user", "session": session.to_dict()})


@auth_app.command("signin")
def auth_signin(
    email: str = typer.Option(..., "--email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
) -> None:
    provider = _provider()
    try:
        session = provider.sign_in(email, password)
    except AuthError as exc:
        raise typer.BadParameter(str(exc)) from exc
    _echo({"mode": "user", "session": session.to_dict()})


@auth_app.command("signout")
def auth_signout() -> None:
    provider = _provider()
    provider.sign_out()
    _echo({"mode": "guest"})


@auth_app.command("whoami")
def auth_whoami() -> None:
    provider = _provider()
    session = provider.current()
    settings = get_settings()
    guest = GuestStore(LocalStore(settings.local_storage_dir), max_activity=settings.activity_max_items)
    _echo(
        {
            "mode": provider.mode(),
            "session": session.to_dict() if session else None,
            "guestData": guest.has_data(),
        }
    )


@records_app.command("list")
def records_list(
    bucket: str = typer.Argument(..., callback=_check_bucket),
    query: str = typer.Option("", "--query", "-q"),
) -> None:
    with _tracker() as tracker:
        _echo(tracker.list_records(bucket, query))


@records_app.command("add")
def records_add(
    bucket: str = typer.Argument(..., callback=_check_bucket),
    field: list[str] = typer.Option([], "--field", "-f", help="key=value, repeatable"),
) -> None:
    with _tracker() as tracker:
        _echo(tracker.create_record(bucket, _parse_fields(field)))


@records_app.command("edit")
def records_edit(
    bucket: str = typer.Argument(..., callback=_check_bucket),
    record_id: str = typer.Argument(...),
    field: list[str] = typer.Option([], "--field", "-f", help="key=value, repeatable"),
) -> None:
    with _tracker() as tracker:
        try:
            _echo(tracker.update_record(bucket, record_id, _parse_fields(field)))
        except RecordNotFound as exc:
            raise typer.BadParameter(str(exc)) from exc


@records_app.command("delete")
def records_delete(
    bucket: str = typer.Argument(..., callback=_check_bucket),
    record_id: str = typer.Argument(...),
) -> None:
    with _tracker() as tracker:
        try:
            tracker.delete_record(bucket, record_id)
        except RecordNotFound as exc:
            raise typer.BadParameter(str(exc)) from exc
    _echo({"ok": True, "id": record_id})


@records_app.command("move")
def records_move(
    bucket: str = typer.Argument(..., callback=_check_bucket),
    record_id: str = typer.Argument(...),
    to: str = typer.Option(..., "--to", callback=_check_bucket),
    field: list[str] = typer.Option([], "--field", "-f", help="key=value, repeatable"),
) -> None:
    with _tracker() as tracker:
        try:
            record = tracker.move_record(bucket, record_id, to, _parse_fields(field))
        except (RecordNotFound, ValueError) as exc:
            raise typer.BadParameter(str(exc)) from exc
    _echo({"bucket": to, "record": record})


@records_app.command("offer-status")
def records_offer_status(
    record_id: str = typer.Argument(...),
    status: str = typer.Option(..., "--status", help="received, accepted or declined"),
    on: str | None = typer.Option(None, "--date"),
) -> None:
    with _tracker() as tracker:
        try:
            _echo(tracker.set_offer_status(record_id, status, on))
        except (RecordNotFound, ValueError) as exc:
            raise typer.BadParameter(str(exc)) from exc


@records_app.command("counts")
def records_counts() -> None:
    with _tracker() as tracker:
        _echo(tracker.counts())


@records_app.command("clear")
def records_clear(
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt"),
) -> None:
    """Delete every record and activity entry but keep the account."""
    if not yes:
        typer.confirm("Delete all tracked data? The account stays.", abort=True)
    with _tracker() as tracker:
        _echo({"ok": True, "deleted": tracker.clear_all_data()})


@app.command("search")
def search_cmd(query: str = typer.Argument(...)) -> None:
    """Search every bucket at once."""
    with _tracker() as tracker:
        _echo(tracker.search(query))


@jobs_app.command("search")
def jobs_search(
    what: str = typer.Option("", "--what"),
    where: str = typer.Option("", "--where"),
    radius: str = typer.Option("", "--radius"),
    page: int = typer.Option(1, "--page"),
    size: int = typer.Option(20, "--size"),
) -> None:
    configure_logging()
    params = JobSearchParams(was=what, wo=where, umkreis=radius, page=page, size=size)
    try:
        result = JobSearchClient().search(params)
    except UpstreamError as exc:
        _echo({"error": f"Upstream error {exc.status_code}", "upstream": exc.body, "forwardedUrl": exc.forwarded_url})
        raise typer.Exit(code=1) from exc
    _echo(result.model_dump())


@suggest_app.command("keywords")
def suggest_keywords(query: str = typer.Argument(...)) -> None:
    configure_logging()
    _echo({"suggestions": JobSearchClient().keyword_suggestions(query)})


@suggest_app.command("locations")
def suggest_locations(query: str = typer.Argument(...)) -> None:
    configure_logging()
    _echo({"suggestions": LocationClient().suggestions(query)})


@reminders_app.command("send")
def reminders_send(
    hours_before: int | None = typer.Option(None, "--hours-before"),
    test_mode: bool = typer.Option(False, "--test-mode"),
    direct: bool = typer.Option(False, "--direct", help="Send from this process instead of the functions host"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    hours = hours_before or settings.reminder_hours_before

    client = EdgeFunctionClient(settings)
    if not direct and client.configured:
        try:
            _echo(client.send_interview_reminders(hours))
        except EdgeFunctionError as exc:
            _echo({"error": "Failed to send reminders", "details": exc.details})
            raise typer.Exit(code=1) from exc
        return

    with SessionLocal() as db:
        result = ReminderService(Repository(db), settings=settings).send_interview_reminders(
            hours_before=hours,
            test_mode=test_mode,
        )
    _echo(result.model_dump())


@digest_app.command("send")
def digest_send(
    direct: bool = typer.Option(False, "--direct", help="Send from this process instead of the functions host"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()

    client = EdgeFunctionClient(settings)
    if not direct and client.configured:
        try:
            _echo(client.send_monthly_digest())
        except EdgeFunctionError as exc:
            _echo({"error": "Failed to send digest", "details": exc.details})
            raise typer.Exit(code=1) from exc
        return

    with SessionLocal() as db:
        result = DigestService(Repository(db), settings=settings).send_monthly_digest()
    _echo(result.model_dump())


@backup_app.command("export")
def backup_export(output: Path | None = typer.Option(None, "--output", "-o")) -> None:
    with _tracker() as tracker:
        payload = tracker.export_backup()
    target = output or Path(backup_filename())
    target.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    _echo({"ok": True, "path": str(target), "summary": summarize_backup(payload)})


@backup_app.command("import")
def backup_import(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt"),
) -> None:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        summary = summarize_backup(payload)
    except (json.JSONDecodeError, BackupError) as exc:
        raise typer.BadParameter(f"Import failed: {exc}") from exc
    if not yes:
        typer.echo(json.dumps({"fileName": path.name, **summary}, indent=2))
        typer.confirm("Import these entries?", abort=True)
    with _tracker() as tracker:
        _echo(tracker.import_backup(payload).to_dict())
