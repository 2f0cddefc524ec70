from apptracker.core.local_store import STORAGE_KEYS, GuestStore, LocalStore
from apptracker.core.migration import GuestMigrator, MigrationRegistry
from apptracker.core.session import INITIAL_SESSION, SIGNED_IN, SIGNED_OUT, SessionProvider, migration_listener
from apptracker.db.repositories import Repository
from apptracker.db.session import SessionLocal


def test_listeners_see_sign_in_and_sign_out(tmp_path) -> None:
    provider = SessionProvider(LocalStore(tmp_path))
    events = []
    remove = provider.add_listener(lambda event, session: events.append((event, session is not None)))

    session = provider.sign_up("ada@example.com", "secret123")
    assert provider.mode() == "user"
    assert provider.current() == session

    provider.sign_out()
    assert provider.mode() == "guest"
    assert events == [(SIGNED_IN, True), (SIGNED_OUT, False)]

    remove()
    provider.sign_in("ada@example.com", "secret123")
    assert len(events) == 2


def test_session_is_restored_from_local_storage(tmp_path) -> None:
    store = LocalStore(tmp_path)
    session = SessionProvider(store).sign_up("ada@example.com", "secret123")
    assert store.read(STORAGE_KEYS["last_user_id"]) == session.user_id

    restored = SessionProvider(store)
    events = []
    restored.add_listener(lambda event, current: events.append(event))
    assert restored.restore() == session
    assert events == [INITIAL_SESSION]


def test_revoked_session_is_not_restored(tmp_path) -> None:
    store = LocalStore(tmp_path)
    session = SessionProvider(store).sign_up("ada@example.com", "secret123")
    with SessionLocal() as db:
        Repository(db).delete_auth_session(session.access_token)

    assert SessionProvider(store).current() is None


def test_listener_errors_do_not_break_sign_in(tmp_path) -> None:
    provider = SessionProvider(LocalStore(tmp_path))

    def broken(event, session):
        raise RuntimeError("listener failed")

    provider.add_listener(broken)
    assert provider.sign_up("ada@example.com", "secret123").email == "ada@example.com"


def test_sign_out_forgets_the_migrated_session(tmp_path) -> None:
    store = LocalStore(tmp_path)
    registry = MigrationRegistry()
    provider = SessionProvider(store)
    provider.add_listener(migration_listener(GuestMigrator(GuestStore(store), registry=registry)))

    session = provider.sign_up("ada@example.com", "secret123")
    assert registry.result(session.access_token) is not None

    provider.sign_out()
    assert registry.result(session.access_token) is None
    assert len(registry) == 0
