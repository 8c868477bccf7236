"""
Tests for workspace-scoped access control (``/c/{slug}/...``).
"""
from fastapi.testclient import TestClient

from app.services import membership
from shared.enums import WorkspaceRole


class TestWorkspaceAccess:

    def test_requires_authentication(self, client: TestClient, test_workspace):
        response = client.get("/c/test-ws/users")
        assert response.status_code == 401

    def test_non_member_forbidden(self, client: TestClient, outsider_user, test_workspace):
        _, headers = outsider_user
        response = client.get("/c/test-ws/users", headers=headers)
        assert response.status_code == 403

    def test_unknown_workspace(self, client: TestClient, auth_headers):
        response = client.get("/c/does-not-exist/users", headers=auth_headers)
        assert response.status_code == 404

    def test_member_can_read(self, client: TestClient, member_user):
        _, headers = member_user
        response = client.get("/c/test-ws/users", headers=headers)
        assert response.status_code == 200
        assert {m["role"] for m in response.json()} == {"Owner", "Member"}

    def test_platform_admin_without_membership(self, client: TestClient, admin_user, test_workspace):
        """Admins reach the workspace through /admin, not through /c/."""
        _, headers = admin_user
        assert client.get("/c/test-ws/users", headers=headers).status_code == 403
        assert client.get("/admin/c/test-ws/users", headers=headers).status_code == 200

    def test_inactive_member_forbidden(self, client: TestClient, db, test_workspace, member_user):
        user, headers = member_user
        membership.set_member_status(db, test_workspace, user.id, False)
        db.commit()

        assert client.get("/c/test-ws/users", headers=headers).status_code == 403

    def test_my_workspaces(self, client: TestClient, member_user):
        _, headers = member_user
        response = client.get("/workspaces", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["slug"] == "test-ws"
        assert data[0]["role"] == "Member"

    def test_workspace_profile(self, client: TestClient, author_user):
        user, headers = author_user
        response = client.get("/c/test-ws/auth/profile", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["username"] == user.username
        assert data["workspace_role"] == "Author"
        assert data["global_role"] == "User"


class TestAddingMembers:

    def test_member_cannot_add(self, client: TestClient, make_user, member_user):
        _, headers = member_user
        newcomer = make_user()
        response = client.post(
            "/c/test-ws/users",
            headers=headers,
            json={"user_id": str(newcomer.id), "role": "Member"},
        )
        assert response.status_code == 403

    def test_author_adds_member(self, client: TestClient, make_user, author_user):
        _, headers = author_user
        newcomer = make_user()
        response = client.post(
            "/c/test-ws/users",
            headers=headers,
            json={"user_id": str(newcomer.id), "role": "member"},
        )
        assert response.status_code == 201
        assert response.json()["role"] == "Member"

        stats = client.get("/c/test-ws/stats", headers=headers).json()
        assert stats["active_members"] == 3

    def test_legacy_admin_role_maps_to_author(self, client: TestClient, make_user, author_user):
        _, headers = author_user
        newcomer = make_user()
        response = client.post(
            "/c/test-ws/users",
            headers=headers,
            json={"user_id": str(newcomer.id), "role": "admin"},
        )
        assert response.status_code == 201
        assert response.json()["role"] == "Author"

    def test_owner_cannot_be_granted_directly(self, client: TestClient, make_user, auth_headers, test_workspace):
        newcomer = make_user()
        response = client.post(
            "/c/test-ws/users",
            headers=auth_headers,
            json={"user_id": str(newcomer.id), "role": "Owner"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "OWNER_REQUIRES_TRANSFER"

    def test_already_member_conflicts(self, client: TestClient, auth_headers, member_user):
        user, _ = member_user
        response = client.post(
            "/c/test-ws/users",
            headers=auth_headers,
            json={"user_id": str(user.id)},
        )
        assert response.status_code == 409


class TestOwnerActions:

    def test_author_cannot_change_roles(self, client: TestClient, author_user, member_user):
        _, headers = author_user
        member, _ = member_user
        response = client.patch(
            f"/c/test-ws/users/{member.id}/role",
            headers=headers,
            json={"role": "Author"},
        )
        assert response.status_code == 403

    def test_owner_changes_role(self, client: TestClient, auth_headers, member_user):
        member, _ = member_user
        response = client.patch(
            f"/c/test-ws/users/{member.id}/role",
            headers=auth_headers,
            json={"role": "Author"},
        )
        assert response.status_code == 200
        assert response.json()["role"] == "Author"

    def test_owner_role_via_patch_rejected(self, client: TestClient, auth_headers, member_user):
        member, _ = member_user
        response = client.patch(
            f"/c/test-ws/users/{member.id}/role",
            headers=auth_headers,
            json={"role": "Owner"},
        )
        assert response.status_code == 400

    def test_owner_cannot_demote_self(self, client: TestClient, test_user, auth_headers, test_workspace):
        response = client.patch(
            f"/c/test-ws/users/{test_user.id}/role",
            headers=auth_headers,
            json={"role": "Member"},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "LAST_OWNER"

    def test_deactivate_and_remove(self, client: TestClient, auth_headers, member_user):
        member, member_headers = member_user

        response = client.patch(
            f"/c/test-ws/users/{member.id}/status",
            headers=auth_headers,
            json={"is_active": False},
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert client.get("/c/test-ws/users", headers=member_headers).status_code == 403

        response = client.delete(f"/c/test-ws/users/{member.id}", headers=auth_headers)
        assert response.status_code == 200
        members = client.get("/c/test-ws/users", headers=auth_headers).json()
        assert [m["username"] for m in members] == ["alice"]

    def test_replace_owner(self, client: TestClient, test_user, auth_headers, add_member):
        candidate, candidate_headers = add_member(WorkspaceRole.MEMBER)

        response = client.post(
            "/c/test-ws/users/replace-owner",
            headers=auth_headers,
            json={"new_owner_id": str(candidate.id)},
        )
        assert response.status_code == 200
        assert response.json()["role"] == "Owner"

        members = {m["username"]: m["role"] for m in client.get("/c/test-ws/users", headers=candidate_headers).json()}
        assert members == {"alice": "Author", candidate.username: "Owner"}

        # The previous owner lost owner-only actions
        response = client.patch(
            f"/c/test-ws/users/{candidate.id}/status",
            headers=auth_headers,
            json={"is_active": False},
        )
        assert response.status_code == 403

    def test_replace_owner_with_non_member(self, client: TestClient, make_user, auth_headers, test_workspace):
        outsider = make_user()
        response = client.post(
            "/c/test-ws/users/replace-owner",
            headers=auth_headers,
            json={"new_owner_id": str(outsider.id)},
        )
        assert response.status_code == 409
        roles = [m["role"] for m in client.get("/c/test-ws/users", headers=auth_headers).json()]
        assert roles == ["Owner"]
