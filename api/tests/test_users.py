"""
Tests for profile self-service and platform user administration.
"""
import base64

from fastapi.testclient import TestClient

from shared.enums import PlatformRole


class TestProfile:
    """Self-service profile endpoints."""

    def test_update_profile(self, client: TestClient, auth_headers):
        response = client.put(
            "/users/profile",
            headers=auth_headers,
            json={"name": "Alice Liddell", "bio": "Down the rabbit hole", "date_of_birth": "1990-05-04"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Alice Liddell"
        assert data["bio"] == "Down the rabbit hole"
        assert data["date_of_birth"] == "1990-05-04"

    def test_username_is_immutable(self, client: TestClient, auth_headers):
        """Unknown fields such as username are ignored."""
        response = client.put(
            "/users/profile",
            headers=auth_headers,
            json={"username": "mallory", "name": "Still Alice"},
        )
        assert response.status_code == 200
        assert response.json()["username"] == "alice"

    def test_upload_avatar(self, client: TestClient, auth_headers):
        png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
        response = client.put(
            "/users/avatar",
            headers=auth_headers,
            files={"avatar": ("me.png", png, "image/png")},
        )
        assert response.status_code == 200
        avatar = response.json()["avatar"]
        assert avatar.startswith("data:image/png;base64,")
        assert base64.b64decode(avatar.split(",", 1)[1]) == png

    def test_avatar_rejects_non_image(self, client: TestClient, auth_headers):
        response = client.put(
            "/users/avatar",
            headers=auth_headers,
            files={"avatar": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400

    def test_avatar_rejects_large_file(self, client: TestClient, auth_headers):
        big = b"\x00" * (2 * 1024 * 1024 + 1)
        response = client.put(
            "/users/avatar",
            headers=auth_headers,
            files={"avatar": ("big.png", big, "image/png")},
        )
        assert response.status_code == 413

    def test_list_roles(self, client: TestClient, auth_headers):
        response = client.get("/users/roles", headers=auth_headers)
        assert response.status_code == 200
        assert sorted(r["name"] for r in response.json()) == ["Admin", "User"]


class TestUserAdministration:
    """Admin-only user management."""

    def test_regular_user_cannot_list_users(self, client: TestClient, auth_headers):
        response = client.get("/users", headers=auth_headers)
        assert response.status_code == 403

    def test_admin_lists_users(self, client: TestClient, admin_user, test_user):
        _, headers = admin_user
        response = client.get("/users", headers=headers, params={"search": "ali"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["username"] == "alice"

    def test_admin_creates_user(self, client: TestClient, admin_user):
        _, headers = admin_user
        response = client.post(
            "/users",
            headers=headers,
            json={"username": "bob", "name": "Bob", "password": "secret123", "role": "ADMIN"},
        )
        assert response.status_code == 201
        assert response.json()["role"] == "Admin"

        login = client.post("/auth/login", json={"username": "bob", "password": "secret123"})
        assert login.status_code == 200

    def test_duplicate_username_conflicts(self, client: TestClient, admin_user, test_user):
        _, headers = admin_user
        response = client.post(
            "/users",
            headers=headers,
            json={"username": "alice", "name": "Other", "password": "secret123"},
        )
        assert response.status_code == 409

    def test_unknown_role_rejected(self, client: TestClient, admin_user):
        _, headers = admin_user
        response = client.post(
            "/users",
            headers=headers,
            json={"username": "carol", "name": "Carol", "password": "secret123", "role": "Superuser"},
        )
        assert response.status_code == 422

    def test_admin_cannot_deactivate_self(self, client: TestClient, admin_user):
        admin, headers = admin_user
        response = client.patch(f"/users/{admin.id}/status", headers=headers, json={"is_active": False})
        assert response.status_code == 400

    def test_deactivated_user_cannot_authenticate(self, client: TestClient, admin_user, test_user, auth_headers):
        _, headers = admin_user
        response = client.patch(f"/users/{test_user.id}/status", headers=headers, json={"is_active": False})
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        assert client.get("/auth/profile", headers=auth_headers).status_code == 401

    def test_admin_cannot_change_own_role(self, client: TestClient, admin_user):
        admin, headers = admin_user
        response = client.patch(f"/users/{admin.id}/role", headers=headers, json={"role": "User"})
        assert response.status_code == 400

    def test_demote_other_admin(self, client: TestClient, make_user, admin_user):
        _, headers = admin_user
        second = make_user(username="second-admin", role=PlatformRole.ADMIN)

        response = client.patch(f"/users/{second.id}/role", headers=headers, json={"role": "user"})
        assert response.status_code == 200
        assert response.json()["role"] == "User"

    def test_promote_user(self, client: TestClient, admin_user, test_user):
        _, headers = admin_user
        response = client.patch(f"/users/{test_user.id}/role", headers=headers, json={"role": "admin"})
        assert response.status_code == 200
        assert response.json()["role"] == "Admin"

    def test_missing_user_404(self, client: TestClient, admin_user):
        _, headers = admin_user
        response = client.patch(
            "/users/00000000-0000-0000-0000-000000000000/status",
            headers=headers,
            json={"is_active": True},
        )
        assert response.status_code == 404
