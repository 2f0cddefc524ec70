from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from apptracker.config import Settings, get_settings
from apptracker.core.goals import DEFAULT_GOALS
from apptracker.db.base import as_utc, utcnow
from apptracker.db.models import User
from apptracker.db.repositories import Repository

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 240_000
MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class AuthSessionInfo:
    access_token: str
    user_id: str
    email: str
    expires_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "access_token": self.access_token,
            "user_id": self.user_id,
            "email": self.email,
            "expires_at": self.expires_at.isoformat(),
        }


def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def hash_password(password: str, *, salt: str | None = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = salt or _b64(secrets.token_bytes(16))
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${_b64(digest)}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, _ = encoded.split("$", 3)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256" or not iterations.isdigit():
        return False
    candidate = hash_password(password, salt=salt, iterations=int(iterations))
    return hmac.compare_digest(candidate, encoded)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(self, repo: Repository, settings: Settings | None = None):
        self.repo = repo
        self.settings = settings or get_settings()

    def _issue(self, user: User) -> AuthSessionInfo:
        token = secrets.token_urlsafe(32)
        expires_at = utcnow() + timedelta(minutes=self.settings.session_ttl_min)
        self.repo.create_auth_session(token=token, user_id=user.id, expires_at=expires_at)
        return AuthSessionInfo(access_token=token, user_id=user.id, email=user.email, expires_at=expires_at)

    def sign_up(self, email: str, password: str, full_name: str = "") -> AuthSessionInfo:
        address = normalize_email(email)
        if "@" not in address:
            raise AuthError("A valid email address is required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if self.repo.get_user_by_email(address) is not None:
            raise AuthError("User already registered")

        user = self.repo.create_user(
            user_id=str(uuid.uuid4()),
            email=address,
            password_hash=hash_password(password),
            full_name=full_name.strip(),
            goals=DEFAULT_GOALS,
        )
        logger.info("Created account %s", user.id)
        return self._issue(user)

    def sign_in(self, email: str, password: str) -> AuthSessionInfo:
        user = self.repo.get_user_by_email(normalize_email(email))
        if user is None or not verify_password(password, user.password_hash):
            raise AuthError("Invalid login credentials")
        return self._issue(user)

    def sign_out(self, token: str) -> None:
        self.repo.delete_auth_session(token)

    def resolve(self, token: str | None) -> User | None:
        if not token:
            return None
        row = self.repo.get_auth_session(token)
        if row is None:
            return None
        if as_utc(row.expires_at) <= utcnow():
            self.repo.delete_auth_session(token)
            return None
        return self.repo.get_user(row.user_id)

    def session_info(self, token: str | None) -> AuthSessionInfo | None:
        user = self.resolve(token)
        if user is None or token is None:
            return None
        row = self.repo.get_auth_session(token)
        if row is None:
            return None
        return AuthSessionInfo(
            access_token=token,
            user_id=user.id,
            email=user.email,
            expires_at=as_utc(row.expires_at),
        )
