from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

_TMP_DIR = Path(tempfile.mkdtemp(prefix="apptracker-tests-"))
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'apptracker.db'}"
os.environ["DATA_DIR"] = str(_TMP_DIR)
os.environ["LOCAL_STORAGE_DIR"] = str(_TMP_DIR / "local_storage")
for _name in ("CRON_SECRET", "RESEND_API_KEY", "FUNCTIONS_BASE_URL", "SERVICE_ROLE_KEY"):
    os.environ[_name] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from apptracker.api.app import create_app  # noqa: E402
from apptracker.config import get_settings  # noqa: E402
from apptracker.core.migration import get_migration_registry  # noqa: E402
from apptracker.db.base import Base  # noqa: E402
from apptracker.db.session import engine  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    shutil.rmtree(get_settings().local_storage_dir, ignore_errors=True)
    get_migration_registry().reset()
    yield


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())


@pytest.fixture
def auth_headers(client: TestClient) -> dict[str, str]:
    response = client.post("/api/auth/signup", json={"email": "ada@example.com", "password": "secret123"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
