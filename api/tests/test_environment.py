"""
Tests for the workspace environment endpoints.

The connection tester is replaced with a recording fake so no external
database is needed.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from app.main import app
from app.models.environment import Environment
from app.services.environment import (
    PASSWORD_MASK,
    ConnectionProfile,
    ConnectionResult,
    ConnectionTester,
    get_connection_tester,
)

ENV_PAYLOAD = {
    "name": "Production",
    "host": "sql.example.com",
    "port": 1433,
    "database": "sales",
    "username": "reporting",
    "password": "s3cret!",
}


class FakeTester:
    def __init__(self, success: bool = True):
        self.success = success
        self.profiles: list[ConnectionProfile] = []

    def test(self, profile: ConnectionProfile) -> ConnectionResult:
        self.profiles.append(profile)
        if self.success:
            return ConnectionResult(success=True, message="Connection test successful", latency_ms=1.5)
        return ConnectionResult(success=False, message="Connection test failed", error="Login failed")


@pytest.fixture
def fake_tester():
    tester = FakeTester()
    app.dependency_overrides[get_connection_tester] = lambda: tester
    yield tester
    app.dependency_overrides.pop(get_connection_tester, None)


@pytest.fixture
def configured(client: TestClient, auth_headers, test_workspace) -> dict:
    response = client.post("/c/test-ws/environment", headers=auth_headers, json=ENV_PAYLOAD)
    assert response.status_code == 201
    return response.json()


class TestEnvironmentCrud:

    def test_get_missing(self, client: TestClient, auth_headers, test_workspace):
        assert client.get("/c/test-ws/environment", headers=auth_headers).status_code == 404

    def test_create_masks_password(self, configured):
        assert configured["password"] == PASSWORD_MASK
        assert configured["status"] == "unknown"
        assert configured["connection_timeout"] == 30000
        assert configured["encrypt"] is True

    def test_password_stored_verbatim(self, db, configured):
        env = db.execute(select(Environment)).scalar_one()
        assert env.password == "s3cret!"

    def test_create_twice_conflicts(self, client: TestClient, auth_headers, configured):
        response = client.post("/c/test-ws/environment", headers=auth_headers, json=ENV_PAYLOAD)
        assert response.status_code == 409

    def test_member_can_read_but_not_write(self, client: TestClient, member_user, configured):
        _, headers = member_user
        assert client.get("/c/test-ws/environment", headers=headers).status_code == 200
        response = client.put("/c/test-ws/environment", headers=headers, json={"host": "evil"})
        assert response.status_code == 403

    def test_author_can_write(self, client: TestClient, author_user, configured):
        _, headers = author_user
        response = client.put("/c/test-ws/environment", headers=headers, json={"database": "archive"})
        assert response.status_code == 200
        assert response.json()["database"] == "archive"

    def test_masked_password_keeps_stored(self, client: TestClient, db, auth_headers, configured):
        response = client.put(
            "/c/test-ws/environment",
            headers=auth_headers,
            json={"host": "sql2.example.com", "password": PASSWORD_MASK},
        )
        assert response.status_code == 200
        db.expire_all()
        env = db.execute(select(Environment)).scalar_one()
        assert env.host == "sql2.example.com"
        assert env.password == "s3cret!"

    def test_new_password_replaces_stored(self, client: TestClient, db, auth_headers, configured):
        client.put("/c/test-ws/environment", headers=auth_headers, json={"password": "rotated"})
        db.expire_all()
        assert db.execute(select(Environment)).scalar_one().password == "rotated"

    def test_put_creates_when_missing(self, client: TestClient, auth_headers, test_workspace):
        response = client.put("/c/test-ws/environment", headers=auth_headers, json=ENV_PAYLOAD)
        assert response.status_code == 201

    def test_put_create_requires_fields(self, client: TestClient, auth_headers, test_workspace):
        response = client.put("/c/test-ws/environment", headers=auth_headers, json={"host": "only-host"})
        assert response.status_code == 400

    def test_delete(self, client: TestClient, auth_headers, configured):
        assert client.delete("/c/test-ws/environment", headers=auth_headers).status_code == 200
        assert client.get("/c/test-ws/environment", headers=auth_headers).status_code == 404

    def test_invalid_port(self, client: TestClient, auth_headers, test_workspace):
        payload = {**ENV_PAYLOAD, "port": 70000}
        assert client.post("/c/test-ws/environment", headers=auth_headers, json=payload).status_code == 422


class TestConnectionTest:

    def test_uses_stored_profile(self, client: TestClient, auth_headers, configured, fake_tester):
        response = client.post("/c/test-ws/environment/test", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["success"] is True

        profile = fake_tester.profiles[0]
        assert profile.host == "sql.example.com"
        assert profile.password == "s3cret!"

        env = client.get("/c/test-ws/environment", headers=auth_headers).json()
        assert env["status"] == "connected"
        assert env["last_tested_at"] is not None

    def test_failure_is_cached(self, client: TestClient, auth_headers, configured, fake_tester):
        fake_tester.success = False
        response = client.post("/c/test-ws/environment/test", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["error"] == "Login failed"

        env = client.get("/c/test-ws/environment", headers=auth_headers).json()
        assert env["status"] == "failed"

    def test_submitted_fields_override(self, client: TestClient, auth_headers, configured, fake_tester):
        client.post(
            "/c/test-ws/environment/test",
            headers=auth_headers,
            json={"host": "replica.example.com", "password": PASSWORD_MASK},
        )
        profile = fake_tester.profiles[0]
        assert profile.host == "replica.example.com"
        assert profile.password == "s3cret!"

    def test_update_resets_status(self, client: TestClient, auth_headers, configured, fake_tester):
        client.post("/c/test-ws/environment/test", headers=auth_headers)
        response = client.put("/c/test-ws/environment", headers=auth_headers, json={"port": 1444})
        assert response.json()["status"] == "unknown"
        assert response.json()["last_tested_at"] is None

    def test_without_environment_needs_fields(self, client: TestClient, auth_headers, test_workspace, fake_tester):
        response = client.post("/c/test-ws/environment/test", headers=auth_headers)
        assert response.status_code == 400
        assert fake_tester.profiles == []

    def test_member_cannot_test(self, client: TestClient, member_user, configured, fake_tester):
        _, headers = member_user
        assert client.post("/c/test-ws/environment/test", headers=headers).status_code == 403


class TestConnectionTester:

    def test_unreachable_database_reports_failure(self):
        tester = ConnectionTester(driver="sqlite")
        profile = ConnectionProfile(
            host="",
            port=0,
            database="/nonexistent/dir/missing.db",
            username="",
            password=None,
        )
        result = tester.test(profile)
        assert result.success is False
        assert result.error

    def test_connect_args_follow_timeout(self):
        tester = ConnectionTester(driver="mssql+pymssql")
        profile = ConnectionProfile(
            host="h", port=1433, database="d", username="u", password="p", connection_timeout=15000
        )
        assert tester.connect_args(profile) == {"login_timeout": 15, "timeout": 15}
