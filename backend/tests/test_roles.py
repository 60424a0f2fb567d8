# tests/test_roles.py — Role management and user administration
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers


@pytest.mark.asyncio
class TestRoles:
    async def test_list_roles(self, client: AsyncClient, test_user):
        res = await client.get("/api/v1/roles", headers=get_auth_headers(test_user))
        assert res.status_code == 200
        roles = {r["name"]: r for r in res.json()}
        assert set(roles) == {"admin", "moderator", "member"}
        assert roles["member"]["capabilities"] == ["can_create_threads", "can_reply"]
        assert roles["admin"]["color"] == "#FF4444"

    async def test_admin_creates_role(self, client: AsyncClient, admin_user):
        res = await client.post(
            "/api/v1/roles",
            json={
                "name": "mentor",
                "color": "#3366FF",
                "permissions": {"can_reply": True, "can_pin_threads": False},
            },
            headers=get_auth_headers(admin_user),
        )
        assert res.status_code == 201
        data = res.json()
        assert data["name"] == "mentor"
        assert data["capabilities"] == ["can_reply"]

    async def test_duplicate_role_conflicts(self, client: AsyncClient, admin_user):
        res = await client.post(
            "/api/v1/roles", json={"name": "member"}, headers=get_auth_headers(admin_user)
        )
        assert res.status_code == 409

    async def test_unknown_capability_rejected(self, client: AsyncClient, admin_user):
        res = await client.post(
            "/api/v1/roles",
            json={"name": "pilot", "permissions": {"can_fly": True}},
            headers=get_auth_headers(admin_user),
        )
        assert res.status_code == 422

    async def test_member_cannot_create_role(self, client: AsyncClient, test_user):
        res = await client.post(
            "/api/v1/roles", json={"name": "sneaky"}, headers=get_auth_headers(test_user)
        )
        assert res.status_code == 403
        assert res.json()["detail"] == "Missing required permission: can_manage_roles"


@pytest.mark.asyncio
class TestUserAdministration:
    async def test_admin_lists_users(self, client: AsyncClient, admin_user, test_user, other_user):
        res = await client.get(
            "/api/v1/admin/users", params={"page_size": 2}, headers=get_auth_headers(admin_user)
        )
        assert res.status_code == 200
        data = res.json()
        assert data["total"] == 3
        assert data["page_size"] == 2
        assert len(data["users"]) == 2
        assert all(u["role"] is not None for u in data["users"])

    async def test_moderator_cannot_list_users(self, client: AsyncClient, moderator_user):
        res = await client.get("/api/v1/admin/users", headers=get_auth_headers(moderator_user))
        assert res.status_code == 403

    async def test_assign_role(self, client: AsyncClient, admin_user, test_user, roles):
        headers = get_auth_headers(admin_user)
        res = await client.patch(
            f"/api/v1/admin/users/{test_user.id}/role",
            json={"role_id": roles["moderator"].id},
            headers=headers,
        )
        assert res.status_code == 200
        assert res.json()["role"]["name"] == "moderator"

        # The new grants apply to the member's next request
        res = await client.get("/api/v1/profile", headers=get_auth_headers(test_user))
        assert res.json()["profile"]["role"]["name"] == "moderator"

    async def test_assign_unknown_role(self, client: AsyncClient, admin_user, test_user):
        res = await client.patch(
            f"/api/v1/admin/users/{test_user.id}/role",
            json={"role_id": "missing"},
            headers=get_auth_headers(admin_user),
        )
        assert res.status_code == 404
        assert res.json()["detail"] == "Role not found"

    async def test_assign_role_to_unknown_user(self, client: AsyncClient, admin_user, roles):
        res = await client.patch(
            "/api/v1/admin/users/missing/role",
            json={"role_id": roles["member"].id},
            headers=get_auth_headers(admin_user),
        )
        assert res.status_code == 404

    async def test_member_cannot_assign_roles(self, client: AsyncClient, test_user, other_user, roles):
        res = await client.patch(
            f"/api/v1/admin/users/{other_user.id}/role",
            json={"role_id": roles["admin"].id},
            headers=get_auth_headers(test_user),
        )
        assert res.status_code == 403
