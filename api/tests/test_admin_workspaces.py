"""
Tests for the platform admin workspace surface (``/admin/...``).
"""
from fastapi.testclient import TestClient
from sqlalchemy import select

from app.models.activity import Activity
from app.models.workspace import WorkspaceMember
from shared.enums import WorkspaceRole


class TestWorkspaceAdministration:

    def test_non_admin_forbidden(self, client: TestClient, auth_headers):
        assert client.get("/admin/workspaces", headers=auth_headers).status_code == 403

    def test_create_workspace(self, client: TestClient, admin_user):
        admin, headers = admin_user
        response = client.post(
            "/admin/workspaces",
            headers=headers,
            json={"name": "Research", "slug": "research"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["slug"] == "research"
        assert data["member_count"] == 1

        members = client.get("/admin/c/research/users", headers=headers).json()
        assert members[0]["username"] == admin.username
        assert members[0]["role"] == "Owner"

    def test_duplicate_slug(self, client: TestClient, admin_user, test_workspace):
        _, headers = admin_user
        response = client.post(
            "/admin/workspaces",
            headers=headers,
            json={"name": "Copy", "slug": "test-ws"},
        )
        assert response.status_code == 409

    def test_invalid_slug(self, client: TestClient, admin_user):
        _, headers = admin_user
        response = client.post(
            "/admin/workspaces",
            headers=headers,
            json={"name": "Bad", "slug": "Not A Slug"},
        )
        assert response.status_code == 422

    def test_list_and_search(self, client: TestClient, admin_user, test_workspace):
        _, headers = admin_user
        client.post("/admin/workspaces", headers=headers, json={"name": "Other", "slug": "other"})

        response = client.get("/admin/workspaces", headers=headers, params={"search": "test"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["slug"] == "test-ws"

    def test_deactivate_hides_from_members(self, client: TestClient, admin_user, auth_headers, test_workspace):
        _, headers = admin_user
        response = client.patch("/admin/c/test-ws", headers=headers, json={"is_active": False})
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        assert client.get("/c/test-ws/users", headers=auth_headers).status_code == 404
        assert client.get("/admin/c/test-ws", headers=headers).status_code == 200

        inactive = client.get("/admin/workspaces", headers=headers, params={"is_active": False}).json()
        assert [w["slug"] for w in inactive["items"]] == ["test-ws"]

    def test_rename_keeps_slug(self, client: TestClient, admin_user, test_workspace):
        _, headers = admin_user
        response = client.patch("/admin/c/test-ws", headers=headers, json={"name": "Renamed", "slug": "new"})
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["slug"] == "test-ws"

    def test_delete_cascades(self, client: TestClient, db, admin_user, test_workspace, member_user):
        _, headers = admin_user
        workspace_id = test_workspace.id

        response = client.delete("/admin/c/test-ws", headers=headers)
        assert response.status_code == 200
        assert client.get("/admin/c/test-ws", headers=headers).status_code == 404

        db.expire_all()
        remaining = db.execute(
            select(WorkspaceMember).where(WorkspaceMember.workspace_id == workspace_id)
        ).scalars().all()
        assert remaining == []

    def test_stats(self, client: TestClient, admin_user, author_user, member_user):
        _, headers = admin_user
        response = client.get("/admin/c/test-ws/stats", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["active_members"] == 3
        assert data["owners"] == 1
        assert data["authors"] == 1
        assert data["members"] == 1


class TestAdminMembership:

    def test_add_existing_user_by_username(self, client: TestClient, admin_user, make_user, test_workspace):
        _, headers = admin_user
        make_user(username="bob")
        response = client.post(
            "/admin/c/test-ws/users",
            headers=headers,
            json={"username": "bob", "role": "Author"},
        )
        assert response.status_code == 201
        assert response.json()["role"] == "Author"

    def test_add_creates_user_with_password(self, client: TestClient, admin_user, test_workspace):
        _, headers = admin_user
        response = client.post(
            "/admin/c/test-ws/users",
            headers=headers,
            json={"username": "newbie", "name": "New Bie", "password": "secret123"},
        )
        assert response.status_code == 201
        assert response.json()["username"] == "newbie"

        login = client.post("/auth/login", json={"username": "newbie", "password": "secret123"})
        assert login.status_code == 200

    def test_add_unknown_username_without_password(self, client: TestClient, admin_user, test_workspace):
        _, headers = admin_user
        response = client.post(
            "/admin/c/test-ws/users",
            headers=headers,
            json={"username": "ghost"},
        )
        assert response.status_code == 404

    def test_user_reference_required(self, client: TestClient, admin_user, test_workspace):
        _, headers = admin_user
        response = client.post("/admin/c/test-ws/users", headers=headers, json={"role": "Member"})
        assert response.status_code == 422

    def test_second_owner_rejected(self, client: TestClient, admin_user, make_user, test_workspace):
        _, headers = admin_user
        other = make_user()
        response = client.post(
            "/admin/c/test-ws/users",
            headers=headers,
            json={"user_id": str(other.id), "role": "Owner"},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "OWNER_EXISTS"

    def test_replace_owner(self, client: TestClient, admin_user, test_user, author_user):
        _, headers = admin_user
        author, _ = author_user

        response = client.post(
            "/admin/c/test-ws/users/replace-owner",
            headers=headers,
            json={"new_owner_id": str(author.id)},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["new_owner"]["user_id"] == str(author.id)
        assert data["previous_owner_ids"] == [str(test_user.id)]

        roles = {m["username"]: m["role"] for m in client.get("/admin/c/test-ws/users", headers=headers).json()}
        assert roles == {"alice": "Author", "author": "Owner"}

    def test_replace_owner_with_inactive_member(self, client: TestClient, admin_user, member_user):
        _, headers = admin_user
        member, _ = member_user
        client.patch(f"/admin/c/test-ws/users/{member.id}/status", headers=headers, json={"is_active": False})

        response = client.post(
            "/admin/c/test-ws/users/replace-owner",
            headers=headers,
            json={"new_owner_id": str(member.id)},
        )
        assert response.status_code == 409

        roles = [m["role"] for m in client.get("/admin/c/test-ws/users", headers=headers).json()]
        assert roles.count(WorkspaceRole.OWNER.value) == 1

    def test_replace_owner_without_active_owner(self, client: TestClient, db, admin_user, test_user, author_user):
        _, headers = admin_user
        author, _ = author_user
        owner_row = db.execute(
            select(WorkspaceMember).where(WorkspaceMember.user_id == test_user.id)
        ).scalar_one()
        owner_row.is_active = False
        db.commit()

        response = client.post(
            "/admin/c/test-ws/users/replace-owner",
            headers=headers,
            json={"new_owner_id": str(author.id)},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "NO_OWNER"

        db.expire_all()
        roles = {m.user_id: m.role for m in db.execute(select(WorkspaceMember)).scalars()}
        assert roles == {test_user.id: "Owner", author.id: "Author"}

    def test_last_owner_cannot_be_removed(self, client: TestClient, admin_user, test_user, test_workspace):
        _, headers = admin_user
        response = client.delete(f"/admin/c/test-ws/users/{test_user.id}", headers=headers)
        assert response.status_code == 409

    def test_actions_are_recorded(self, client: TestClient, db, admin_user, member_user):
        admin, headers = admin_user
        member, _ = member_user
        client.patch(
            f"/admin/c/test-ws/users/{member.id}/role",
            headers=headers,
            json={"role": "Author"},
        )

        entries = db.execute(
            select(Activity).where(Activity.owner_id == admin.id)
        ).scalars().all()
        assert [e.type for e in entries] == ["member_role_changed"]
        assert entries[0].scope == "workspace"
