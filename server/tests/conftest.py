import base64
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from core.config import AppSettings
from core.db import build_engine
from core.store import JsonFileStore, SqlEntityStore
from main import create_app

PROOF_URL = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\nreceipt").decode()
PDF_URL = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4 lesson notes").decode()


def make_settings(tmp_path, **overrides) -> AppSettings:
    values = dict(
        database_url=f"sqlite:///{tmp_path / 'academy.db'}",
        storage_backend="sql",
        data_root=str(tmp_path / "data"),
        legacy_data_root=None,
        session_days=7,
        bootstrap_password="123",
        debug=False,
        log_level="WARNING",
        login_max_attempts=50,
        login_window_seconds=300,
        max_proof_bytes=1024,
    )
    values.update(overrides)
    return AppSettings(**values)


class FakeClock:
    def __init__(self, now: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture(params=["sql", "file"])
def store(request, tmp_path):
    settings = make_settings(tmp_path, storage_backend=request.param)
    if request.param == "sql":
        backend = SqlEntityStore(build_engine(settings))
    else:
        backend = JsonFileStore(settings.data_dir)
    backend.init()
    yield backend
    backend.close()


@pytest.fixture(params=["sql", "file"])
def client(request, tmp_path):
    app = create_app(make_settings(tmp_path, storage_backend=request.param))
    with TestClient(app) as test_client:
        yield test_client


def login(client: TestClient, username: str, password: str) -> dict:
    response = client.post("/auth", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def admin(client):
    return login(client, "admin", "123")


@pytest.fixture
def teacher(client):
    return login(client, "teacher", "123")


@pytest.fixture
def sales(client):
    return login(client, "sales", "123")


def create_student(client: TestClient, headers: dict, name="Youssef Adel", phone="01001234567", plan=None) -> dict:
    body = {"name": name, "phone": phone}
    if plan:
        body["plan"] = plan
    response = client.post("/students", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["student"]
