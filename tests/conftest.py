import pathlib
import sys

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from recruit_grid.authorization import ROLE_ADMIN, Principal
from recruit_grid.main import create_app
from recruit_grid.notifications import NotificationDispatcher
from recruit_grid.security import GlobalAdmin, SessionSecurityConfig, hash_password
from recruit_grid.store import store

SESSION_SECRET = "grid_test_secret"
SESSION_ISSUER = "recruit-grid-test"
ADMIN_EMAIL = "admin@grid.test"
ADMIN_PASSWORD = "admin-pass"
ADMIN_HASH = hash_password(ADMIN_PASSWORD, rounds=4)


class RecordingSink:
    def __init__(self):
        self.events = []

    def send(self, event):
        self.events.append(event)

    def kinds(self):
        return [event.kind for event in self.events]


@pytest.fixture(autouse=True)
def reset_store(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("GRID_OBJECT_STORAGE_BACKEND", "local")
    monkeypatch.setenv("OBJECT_STORAGE_ROOT", str(tmp_path / "object_store"))
    monkeypatch.setenv("GRID_BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("GRID_MIGRATION_LOCK_TIMEOUT_S", "0.5")
    store.reset()
    yield


@pytest.fixture(autouse=True)
def events(monkeypatch: pytest.MonkeyPatch) -> RecordingSink:
    sink = RecordingSink()
    monkeypatch.setattr(store, "notifier", NotificationDispatcher(sinks=[sink], max_workers=0))
    return sink


@pytest.fixture
def admin() -> Principal:
    return Principal(email=ADMIN_EMAIL, name="Grid Admin", role=ROLE_ADMIN)


@pytest.fixture
def security_cfg() -> SessionSecurityConfig:
    return SessionSecurityConfig(
        shared_secret=SESSION_SECRET,
        issuer=SESSION_ISSUER,
        ttl_minutes=480,
        log_redaction_enabled=True,
    )


@pytest.fixture
def client(security_cfg: SessionSecurityConfig) -> TestClient:
    admins = {ADMIN_EMAIL: GlobalAdmin(email=ADMIN_EMAIL, name="Grid Admin", password_hash=ADMIN_HASH)}
    app = create_app(admins=admins, security_cfg=security_cfg, environ={})
    return TestClient(app)


@pytest.fixture
def login(client: TestClient):
    def _login(email: str, password: str) -> dict[str, str]:
        resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['data']['token']}"}

    return _login


@pytest.fixture
def admin_headers(login) -> dict[str, str]:
    return login(ADMIN_EMAIL, ADMIN_PASSWORD)
