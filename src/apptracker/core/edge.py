from __future__ import annotations

import hmac
import json
import logging
from typing import Any

import requests

from apptracker.config import Settings, get_settings

logger = logging.getLogger(__name__)

REMINDERS_FUNCTION = "send-interview-reminders"
DIGEST_FUNCTION = "send-monthly-digest"


class EdgeFunctionError(Exception):
    def __init__(self, status_code: int, details: Any):
        super().__init__(f"Edge function returned {status_code}")
        self.status_code = status_code
        self.details = details


def _matches(header: str | None, secret: str) -> bool:
    return hmac.compare_digest((header or "").encode("utf-8"), f"Bearer {secret}".encode("utf-8"))


def verify_cron_request(authorization: str | None, settings: Settings | None = None) -> bool:
    """Scheduler calls must carry ``Bearer <CRON_SECRET>`` whenever a secret is configured."""
    settings = settings or get_settings()
    if not settings.cron_secret:
        return True
    return _matches(authorization, settings.cron_secret)


def edge_auth_error(authorization: str | None, settings: Settings | None = None) -> str | None:
    settings = settings or get_settings()
    if not authorization:
        return "Missing authorization"
    if settings.service_role_key and not _matches(authorization, settings.service_role_key):
        return "Unauthorized"
    return None


class EdgeFunctionClient:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return self.settings.functions_configured

    def invoke(self, name: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.settings.functions_base_url.rstrip('/')}/{name}"
        response = requests.post(
            url,
            headers={
                "Authorization": f"Bearer {self.settings.service_role_key}",
                "Content-Type": "application/json",
            },
            json=payload or {},
            timeout=self.settings.http_timeout_sec,
        )
        try:
            body: Any = response.json()
        except (json.JSONDecodeError, ValueError):
            body = response.text

        if not response.ok:
            logger.error("Edge function %s failed status=%s", name, response.status_code)
            raise EdgeFunctionError(response.status_code, body)
        return body if isinstance(body, dict) else {"result": body}

    def send_interview_reminders(self, hours_before: int = 24) -> dict[str, Any]:
        return self.invoke(REMINDERS_FUNCTION, {"hoursBeforeInterview": hours_before})

    def send_monthly_digest(self) -> dict[str, Any]:
        return self.invoke(DIGEST_FUNCTION)
