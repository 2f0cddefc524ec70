from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from apptracker.types import OfferStatus


class SignUpRequest(BaseModel):
    email: str
    password: str
    full_name: str = ""


class SignInRequest(BaseModel):
    email: str
    password: str


class SessionResponse(BaseModel):
    access_token: str
    user_id: str
    email: str
    expires_at: str


class MoveRequest(BaseModel):
    to: str
    fields: dict[str, Any] = Field(default_factory=dict)


class OfferStatusRequest(BaseModel):
    status: OfferStatus
    date: str | None = None


class EmailPreferencesUpdate(BaseModel):
    email_reminders_enabled: bool | None = None
    reminder_hours_before: int | None = Field(default=None, ge=1, le=336)
    monthly_digest_enabled: bool | None = None


class MergeRequest(BaseModel):
    buckets: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    activity: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)


class EdgeFunctionRequest(BaseModel):
    hoursBeforeInterview: int | None = Field(default=None, ge=1)
    testMode: bool = False
