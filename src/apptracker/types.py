from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Bucket = Literal["applied", "interviews", "offers", "rejected", "withdrawn", "wishlist", "notes"]
ActivityVariant = Literal["applied", "interviews", "rejected", "withdrawn", "offers"]
ActivityType = Literal[
    "added",
    "edited",
    "deleted",
    "moved_to_applied",
    "moved_to_interviews",
    "moved_to_offers",
    "moved_to_rejected",
    "moved_to_withdrawn",
    "moved_to_wishlist",
]
OfferStatus = Literal["received", "accepted", "declined"]
StorageMode = Literal["guest", "user"]


class ActivityItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    appId: str
    type: ActivityType
    timestamp: str = ""
    company: str = ""
    role: str | None = None
    location: str | None = None
    fromStatus: str | None = None
    toStatus: str | None = None
    note: str | None = None
    appliedOn: str | None = None
    offerReceivedDate: str | None = None
    offerAcceptedDate: str | None = None
    offerDeclinedDate: str | None = None


class JobPosting(BaseModel):
    title: str
    employer: str = ""
    location: str = ""
    hashId: str | None = None
    detailUrl: str | None = None
    offerType: Any = None
    logoUrl: str | None = None
    distanceKm: Any = None


class JobSearchPage(BaseModel):
    results: list[JobPosting] = Field(default_factory=list)
    total: int | float | None = None
    page: int = 1
    size: int = 20
    upstreamPage: Any = None


class SendResult(BaseModel):
    email: str = "unknown"
    success: bool
    error: str | None = None


class BatchResult(BaseModel):
    message: str = ""
    processed: int = 0
    sent: int = 0
    failed: int = 0
    results: list[SendResult] = Field(default_factory=list)

    def record(self, result: SendResult) -> None:
        self.results.append(result)
        if result.success:
            self.sent += 1
        else:
            self.failed += 1


class EmailPreferences(BaseModel):
    email_reminders_enabled: bool = True
    reminder_hours_before: int = 24
    monthly_digest_enabled: bool = False

    @field_validator("reminder_hours_before")
    @classmethod
    def validate_hours(cls, value: int) -> int:
        if value < 1 or value > 24 * 14:
            raise ValueError("reminder_hours_before must be between 1 and 336")
        return value
