import json

import pytest
from fastapi.testclient import TestClient

from conftest import create_student, login, make_settings
from core.auth import get_current_user, get_password_hash
from core.models import UserRole
from core.sessions import Identity
from main import create_app


def test_health_and_root(client):
    assert client.get("/health").json()["status"] == "ok"
    assert client.get("/").json()["docs"] == "/docs"


def test_bootstrap_login_provisions_account(client):
    response = client.post("/auth", json={"username": "admin", "password": "123"})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["role"] == "ADMIN"
    assert body["token"]
    assert body["expiresAt"]
    assert "passwordHash" not in body["user"]

    # second login goes through the stored hash
    assert client.post("/auth", json={"username": "admin", "password": "123"}).status_code == 200


@pytest.mark.parametrize(
    "payload",
    [{}, {"username": "admin"}, {"password": "123"}, {"username": "  ", "password": "123"}],
)
def test_login_requires_both_fields(client, payload):
    response = client.post("/auth", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Username and password are required"


def test_wrong_password_rejected(client):
    assert client.post("/auth", json={"username": "admin", "password": "nope"}).status_code == 401
    assert client.post("/auth", json={"username": "nobody", "password": "123"}).status_code == 401


def test_rotated_password_beats_bootstrap(client, admin):
    rotated = client.post("/users/update-passwords", headers=admin).json()["passwords"]
    assert set(rotated) == {"admin"}

    # the bootstrap password no longer works once a hash is stored
    assert client.post("/auth", json={"username": "admin", "password": "123"}).status_code == 401
    assert client.post("/auth", json={"username": "admin", "password": rotated["admin"]}).status_code == 200


def test_student_logs_in_with_phone(client, admin):
    student = create_student(client, admin, phone="01001234567")
    headers = login(client, "01001234567", "01001234567")

    me = client.get("/auth", headers=headers).json()["user"]
    assert me["role"] == "STUDENT"
    assert me["studentId"] == student["id"]
    assert client.post("/auth", json={"username": "01001234567", "password": "123"}).status_code == 401


def test_current_user_and_logout(client, teacher):
    assert client.get("/auth", headers=teacher).json()["user"]["username"] == "teacher"

    assert client.delete("/auth", headers=teacher).status_code == 200
    response = client.get("/auth", headers=teacher)
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"

    # logout stays idempotent
    assert client.delete("/auth", headers=teacher).status_code == 200
    assert client.delete("/auth").status_code == 200


def test_raw_token_header_accepted(client, sales):
    raw = {"Authorization": sales["Authorization"].split(" ", 1)[1]}
    assert client.get("/auth", headers=raw).status_code == 200
    assert client.get("/auth", headers={"Authorization": "Bearer "}).status_code == 401


def test_users_admin_only(client, admin, teacher):
    assert client.get("/users", headers=teacher).status_code == 403
    body = client.get("/users", headers=admin).json()
    assert body["count"] == 2
    assert {user["username"] for user in body["users"]} == {"admin", "teacher"}
    assert all("passwordHash" not in user for user in body["users"])


def test_update_passwords_skips_phone_accounts(client, admin, sales):
    create_student(client, admin, phone="01112223334")
    login(client, "01112223334", "01112223334")

    response = client.post("/users/update-passwords", headers=admin)
    assert response.status_code == 200
    passwords = response.json()["passwords"]
    assert set(passwords) == {"admin", "sales"}
    assert all(len(value) == 12 for value in passwords.values())
    # student login keeps working
    login(client, "01112223334", "01112223334")


def test_login_rate_limited(tmp_path):
    app = create_app(make_settings(tmp_path, login_max_attempts=3))
    with TestClient(app) as client:
        for _ in range(3):
            response = client.post("/auth", json={"username": "admin", "password": "wrong"})
            assert response.status_code == 401
            assert "X-RateLimit-Remaining" in response.headers

        blocked = client.post("/auth", json={"username": "admin", "password": "123"})
        assert blocked.status_code == 429
        assert blocked.headers["X-RateLimit-Remaining"] == "0"
        assert int(blocked.headers["Retry-After"]) >= 1

        # other routes are not counted
        assert client.get("/health").status_code == 200


def test_legacy_file_users_are_imported(tmp_path):
    legacy = tmp_path / "legacy"
    legacy.mkdir()
    (legacy / "users.json").write_text(
        json.dumps(
            [
                {
                    "id": "coach-1",
                    "username": "coach",
                    "displayName": "Coach Hany",
                    "password": get_password_hash("whistle"),
                    "role": "TEACHER",
                    "createdAt": "2024-05-01T08:00:00.000Z",
                }
            ]
        ),
        encoding="utf-8",
    )
    app = create_app(make_settings(tmp_path, legacy_data_root=str(legacy)))
    with TestClient(app) as client:
        assert client.post("/auth", json={"username": "coach", "password": "bad"}).status_code == 401

        headers = login(client, "coach", "whistle")
        assert client.get("/auth", headers=headers).json()["user"]["displayName"] == "Coach Hany"
        assert app.state.store.get("users", "coach-1") is not None

        # legacy file is left untouched
        rows = json.loads((legacy / "users.json").read_text(encoding="utf-8"))
        assert len(rows) == 1


def test_current_user_gone_after_token_check(client):
    ghost = Identity(user_id="deleted-user", username="ghost", role=UserRole.TEACHER)
    client.app.dependency_overrides[get_current_user] = lambda: ghost
    try:
        response = client.get("/auth")
    finally:
        client.app.dependency_overrides.clear()
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
