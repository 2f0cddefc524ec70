from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import requests
from jinja2 import Environment, FileSystemLoader, select_autoescape

from apptracker.config import Settings, get_settings
from apptracker.types import SendResult

logger = logging.getLogger(__name__)

EMAIL_TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "web" / "templates" / "emails"

_env = Environment(
    loader=FileSystemLoader(str(EMAIL_TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


def render_email(template_name: str, **context: Any) -> str:
    return _env.get_template(template_name).render(**context)


class ResendMailer:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return bool(self.settings.resend_api_key)

    def send(self, to: str, subject: str, html: str) -> SendResult:
        if not self.configured:
            return SendResult(email=to, success=False, error="RESEND_API_KEY not configured")

        try:
            response = requests.post(
                self.settings.resend_base_url,
                headers={
                    "Authorization": f"Bearer {self.settings.resend_api_key}",
                    "Content-Type": "application/json",
                },
                json={"from": self.settings.email_from, "to": [to], "subject": subject, "html": html},
                timeout=self.settings.http_timeout_sec,
            )
        except requests.RequestException as exc:
            logger.warning("Email delivery to %s failed: %s", to, exc)
            return SendResult(email=to, success=False, error=str(exc))

        if not response.ok:
            logger.warning("Email provider rejected message to %s status=%s", to, response.status_code)
            return SendResult(email=to, success=False, error=response.text)
        return SendResult(email=to, success=True)
