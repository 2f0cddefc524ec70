from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from apptracker.config import get_settings
from apptracker.core.auth import AuthService
from apptracker.db.models import User
from apptracker.db.repositories import Repository
from apptracker.db.session import get_db_session


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def request_token(request: Request) -> str | None:
    """Bearer header for API clients, the session cookie for pages."""
    token = bearer_token(request.headers.get("Authorization"))
    if token:
        return token
    return request.cookies.get(get_settings().session_cookie_name) or None


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> User | None:
    return AuthService(Repository(db)).resolve(request_token(request))


def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
