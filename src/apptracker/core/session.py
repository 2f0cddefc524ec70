from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime

from apptracker.config import Settings, get_settings
from apptracker.core.auth import AuthService, AuthSessionInfo
from apptracker.core.local_store import STORAGE_KEYS, GuestStore, LocalStore
from apptracker.core.migration import GuestMigrator, database_repository
from apptracker.db.base import as_utc, utcnow
from apptracker.db.repositories import Repository
from apptracker.types import StorageMode

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
INITIAL_SESSION = "INITIAL_SESSION"

AuthStateListener = Callable[[str, AuthSessionInfo | None], None]


class SessionProvider:
    """Holds the signed-in session for the local client and announces changes."""

    def __init__(
        self,
        store: LocalStore,
        repository_factory: Callable[[], AbstractContextManager[Repository]] = database_repository,
        settings: Settings | None = None,
    ):
        self.store = store
        self.repository_factory = repository_factory
        self.settings = settings or get_settings()
        self._loaded = False
        self._cached: AuthSessionInfo | None = None
        self._listeners: list[AuthStateListener] = []

    def add_listener(self, listener: AuthStateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, event: str, session: AuthSessionInfo | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth state listener failed event=%s", event)

    def _remember(self, session: AuthSessionInfo | None) -> None:
        self._loaded = True
        self._cached = session
        if session is None:
            self.store.remove(STORAGE_KEYS["session"])
            return
        self.store.write(STORAGE_KEYS["session"], session.to_dict())
        self.store.write(STORAGE_KEYS["last_user_id"], session.user_id)

    def _load(self) -> AuthSessionInfo | None:
        raw = self.store.read(STORAGE_KEYS["session"])
        if not isinstance(raw, dict):
            return None
        try:
            session = AuthSessionInfo(
                access_token=str(raw["access_token"]),
                user_id=str(raw["user_id"]),
                email=str(raw.get("email", "")),
                expires_at=as_utc(datetime.fromisoformat(str(raw["expires_at"]))),
            )
        except (KeyError, ValueError) as exc:
            logger.warning("Discarding unreadable cached session: %s", exc)
            return None
        if session.expires_at <= utcnow():
            return None
        with self.repository_factory() as repo:
            if AuthService(repo, self.settings).resolve(session.access_token) is None:
                return None
        return session

    def current(self) -> AuthSessionInfo | None:
        if not self._loaded:
            self._cached = self._load()
            self._loaded = True
        return self._cached

    def mode(self) -> StorageMode:
        return "user" if self.current() is not None else "guest"

    def restore(self) -> AuthSessionInfo | None:
        session = self.current()
        if session is not None:
            self._notify(INITIAL_SESSION, session)
        return session

    def sign_up(self, email: str, password: str, full_name: str = "") -> AuthSessionInfo:
        with self.repository_factory() as repo:
            session = AuthService(repo, self.settings).sign_up(email, password, full_name)
        self._remember(session)
        self._notify(SIGNED_IN, session)
        return session

    def sign_in(self, email: str, password: str) -> AuthSessionInfo:
        with self.repository_factory() as repo:
            session = AuthService(repo, self.settings).sign_in(email, password)
        self._remember(session)
        self._notify(SIGNED_IN, session)
        return session

    def sign_out(self) -> None:
        session = self.current()
        if session is not None:
            with self.repository_factory() as repo:
                AuthService(repo, self.settings).sign_out(session.access_token)
        self._remember(None)
        self._notify(SIGNED_OUT, None)


def migration_listener(migrator: GuestMigrator) -> AuthStateListener:
    signed_in: set[str] = set()

    def on_auth_state(event: str, session: AuthSessionInfo | None) -> None:
        if event in {SIGNED_IN, INITIAL_SESSION} and session is not None:
            signed_in.add(session.access_token)
            result = migrator.migrate(session)
            if result.errors:
                logger.warning("Guest migration finished with errors: %s", result.errors)
        elif event == SIGNED_OUT:
            while signed_in:
                migrator.registry.forget(signed_in.pop())

    return on_auth_state


def build_session_provider(settings: Settings | None = None) -> SessionProvider:
    """Session provider with guest migration wired to sign-in."""
    settings = settings or get_settings()
    store = LocalStore(settings.local_storage_dir)
    provider = SessionProvider(store, settings=settings)
    guest = GuestStore(store, max_activity=settings.activity_max_items)
    provider.add_listener(migration_listener(GuestMigrator(guest, max_activity=settings.activity_max_items)))
    return provider
