from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import requests
from fastapi import APIRouter, Body, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from apptracker.api.deps import get_db
from apptracker.api.schemas import EdgeFunctionRequest
from apptracker.config import get_settings
from apptracker.core.digest import DigestService
from apptracker.core.edge import EdgeFunctionClient, EdgeFunctionError, edge_auth_error, verify_cron_request
from apptracker.core.reminders import ReminderService
from apptracker.db.repositories import Repository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cron"])

_UNAUTHORIZED = {"error": "Unauthorized"}


def _timestamp() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _trigger(authorization: str | None, call: Callable[[EdgeFunctionClient], dict[str, Any]], failure: str) -> JSONResponse:
    settings = get_settings()
    if not verify_cron_request(authorization, settings):
        return JSONResponse(_UNAUTHORIZED, status_code=401)

    client = EdgeFunctionClient(settings)
    if not client.configured:
        return JSONResponse({"error": "Missing backend configuration"}, status_code=500)

    try:
        result = call(client)
    except EdgeFunctionError as exc:
        return JSONResponse({"error": failure, "details": exc.details}, status_code=exc.status_code)
    except requests.RequestException:
        logger.exception("Cron trigger failed")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"success": True, "timestamp": _timestamp(), **result})


@router.api_route("/api/cron/interview-reminders", methods=["GET", "POST"])
def cron_interview_reminders(authorization: str | None = Header(None)) -> JSONResponse:
    return _trigger(
        authorization,
        lambda client: client.send_interview_reminders(get_settings().reminder_hours_before),
        "Failed to send reminders",
    )


@router.api_route("/api/cron/monthly-digest", methods=["GET", "POST"])
def cron_monthly_digest(authorization: str | None = Header(None)) -> JSONResponse:
    return _trigger(authorization, lambda client: client.send_monthly_digest(), "Failed to send digest")


@router.api_route("/api/send-reminders", methods=["GET", "POST"])
def send_reminders_direct(authorization: str | None = Header(None), db: Session = Depends(get_db)) -> JSONResponse:
    settings = get_settings()
    if not verify_cron_request(authorization, settings):
        return JSONResponse(_UNAUTHORIZED, status_code=401)
    if not settings.resend_api_key:
        return JSONResponse({"error": "RESEND_API_KEY not configured"}, status_code=500)

    result = ReminderService(Repository(db), settings=settings).send_interview_reminders(
        hours_before=settings.reminder_hours_before,
        respect_preferences=False,
    )
    return JSONResponse({"success": True, "timestamp": _timestamp(), **result.model_dump()})


@router.post("/functions/v1/send-interview-reminders")
def edge_send_interview_reminders(
    payload: EdgeFunctionRequest | None = Body(None),
    authorization: str | None = Header(None),
    db: Session = Depends(get_db),
) -> JSONResponse:
    error = edge_auth_error(authorization)
    if error:
        return JSONResponse({"error": error}, status_code=401)

    payload = payload or EdgeFunctionRequest()
    result = ReminderService(Repository(db)).send_interview_reminders(
        hours_before=payload.hoursBeforeInterview,
        test_mode=payload.testMode,
    )
    return JSONResponse(result.model_dump())


@router.post("/functions/v1/send-monthly-digest")
def edge_send_monthly_digest(
    authorization: str | None = Header(None),
    db: Session = Depends(get_db),
) -> JSONResponse:
    error = edge_auth_error(authorization)
    if error:
        return JSONResponse({"error": error}, status_code=401)
    return JSONResponse(DigestService(Repository(db)).send_monthly_digest().model_dump())
