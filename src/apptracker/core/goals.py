from __future__ import annotations

import copy
from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta
from typing import Any

DEFAULT_GOALS: dict[str, dict[str, int]] = {
    "interviews": {"target": 3, "periodDays": 30},
    "offers": {"target": 1, "periodDays": 30},
    "overview": {"weeklyTarget": 2, "monthlyTarget": 8},
}


def _positive_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


def parse_goals(raw: Any) -> dict[str, dict[str, int]]:
    goals = copy.deepcopy(DEFAULT_GOALS)
    if not isinstance(raw, Mapping):
        return goals
    for section, defaults in DEFAULT_GOALS.items():
        values = raw.get(section)
        if not isinstance(values, Mapping):
            continue
        for key, fallback in defaults.items():
            goals[section][key] = _positive_int(values.get(key), fallback)
    return goals


def _day(value: Any) -> date | None:
    if not value:
        return None
    head = str(value).split("T", 1)[0].strip()
    try:
        return date.fromisoformat(head)
    except ValueError:
        return None


def within_last_days(value: Any, now: datetime, days: int) -> bool:
    day = _day(value)
    if day is None:
        return False
    today = now.astimezone(UTC).date() if now.tzinfo else now.date()
    start = today - timedelta(days=max(days, 1) - 1)
    return start <= day <= today


def goal_progress(
    goals: Mapping[str, Any],
    records_by_bucket: Mapping[str, list[dict[str, Any]]],
    now: datetime,
) -> dict[str, dict[str, int]]:
    settings = parse_goals(goals)
    interviews = records_by_bucket.get("interviews", [])
    offers = records_by_bucket.get("offers", [])

    interview_days = settings["interviews"]["periodDays"]
    offer_days = settings["offers"]["periodDays"]
    return {
        "interviews": {
            "current": sum(1 for item in interviews if within_last_days(item.get("date"), now, interview_days)),
            "target": settings["interviews"]["target"],
            "periodDays": interview_days,
        },
        "offers": {
            "current": sum(
                1
                for item in offers
                if within_last_days(item.get("offerReceivedDate") or item.get("decisionDate"), now, offer_days)
            ),
            "target": settings["offers"]["target"],
            "periodDays": offer_days,
        },
        "weekly": {
            "current": sum(1 for item in interviews if within_last_days(item.get("date"), now, 7)),
            "target": settings["overview"]["weeklyTarget"],
            "periodDays": 7,
        },
        "monthly": {
            "current": sum(1 for item in interviews if within_last_days(item.get("date"), now, 30)),
            "target": settings["overview"]["monthlyTarget"],
            "periodDays": 30,
        },
    }
