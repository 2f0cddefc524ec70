from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Applications Tracker"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8787
    app_public_url: str = "http://127.0.0.1:8787"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/apptracker.db"
    data_dir: Path = Path("./data")
    local_storage_dir: Path = Path("./data/local_storage")

    jobsuche_base_url: str = "https://rest.arbeitsagentur.de/jobboerse/jobsuche-service/pc/v4/jobs"
    jobsuche_api_key: str = "jobboerse-jobsuche"
    jobsuche_detail_url: str = "https://www.arbeitsagentur.de/jobsuche/jobdetail"
    berufenet_base_url: str = "https://rest.arbeitsagentur.de/infosysbub/bnet/pc/v1/berufe"
    berufenet_api_key: str = "infosysbub-berufenet"
    photon_base_url: str = "https://photon.komoot.io/api/"
    photon_lang: str = "de"
    location_country_code: str = "de"
    http_timeout_sec: int = 15

    cron_secret: str = ""
    functions_base_url: str = ""
    service_role_key: str = ""

    resend_api_key: str = ""
    resend_base_url: str = "https://api.resend.com/emails"
    email_from: str = "Applications Tracker <onboarding@resend.dev>"
    reminder_hours_before: int = 24
    reminder_window_min: int = 60
    upcoming_interview_days: int = 30

    activity_max_items: int = 200
    session_ttl_min: int = 720
    session_cookie_name: str = "apptracker_session"
    web_ui_enabled: bool = True
    cors_origins: str = "http://127.0.0.1:8787"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("reminder_hours_before", "activity_max_items")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be positive")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def functions_configured(self) -> bool:
        return bool(self.functions_base_url and self.service_role_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
