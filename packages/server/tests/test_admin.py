"""
Integration tests for administration endpoints (permission-string checks).

Tests cover:
- Roles: create with catalog validation, list system-wide and per app
- Teams: create, add members, scope rules
- Users: list, flag updates, effective permissions, team listing
- Category and global wildcards on the caller's roles
"""

from __future__ import annotations

import uuid

import pytest


@pytest.fixture
async def app_row(seed):
    org = await seed.org()
    return await seed.app(org.id)


@pytest.fixture
def admin_headers(seed, app_row, auth_for):
    """Headers for a caller with a system-wide ``*`` role."""

    async def _make(permissions=("*",)):
        user_id = uuid.uuid4()
        await seed.team_role(user_id, list(permissions), team_app_id=app_row.id)
        return auth_for(user_id)

    return _make


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

class TestRoles:
    @pytest.mark.asyncio
    async def test_create_system_role(self, client, admin_headers):
        headers = await admin_headers(["manage:roles"])

        response = await client.post(
            "/api/v1/admin/roles",
            json={"name": "Release Manager", "permissions": ["write:updates", "read:*", "write:updates"]},
            headers=headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["app_id"] is None
        assert data["permissions"] == ["write:updates", "read:*"]

    @pytest.mark.asyncio
    async def test_unknown_permission_rejected(self, client, admin_headers):
        headers = await admin_headers(["manage:roles"])
        response = await client.post(
            "/api/v1/admin/roles",
            json={"name": "Bad", "permissions": ["launch:rockets"]},
            headers=headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_create_requires_permission(self, client, admin_headers):
        headers = await admin_headers(["read:roles"])
        response = await client.post(
            "/api/v1/admin/roles", json={"name": "X", "permissions": ["read:app"]}, headers=headers
        )
        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Insufficient permissions"

    @pytest.mark.asyncio
    async def test_category_wildcard_grants(self, client, admin_headers):
        headers = await admin_headers(["manage:*"])
        response = await client.post(
            "/api/v1/admin/roles", json={"name": "X", "permissions": ["read:app"]}, headers=headers
        )
        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_app_role_for_missing_app(self, client, admin_headers):
        headers = await admin_headers()
        response = await client.post(
            "/api/v1/admin/roles",
            json={"name": "X", "app_id": str(uuid.uuid4()), "permissions": ["read:app"]},
            headers=headers,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_system_and_app_roles(self, client, admin_headers, seed, app_row, auth_for):
        headers = await admin_headers()
        await seed.role(["write:updates"], app_id=app_row.id, name="App Role")

        system = await client.get("/api/v1/admin/roles", headers=auth_for(uuid.uuid4()))
        scoped = await client.get(
            "/api/v1/admin/roles", params={"app_id": str(app_row.id)}, headers=headers
        )

        assert system.status_code == 200
        assert all(r["app_id"] is None for r in system.json()["data"])
        assert [r["name"] for r in scoped.json()["data"]] == ["App Role"]


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

class TestTeams:
    @pytest.mark.asyncio
    async def test_create_team_and_add_member(self, client, admin_headers, seed, app_row):
        headers = await admin_headers(["manage:teams"])
        role = await seed.role(["read:app"], app_id=app_row.id)
        user_id = uuid.uuid4()

        team = await client.post(
            "/api/v1/admin/teams", json={"name": "QA", "app_id": str(app_row.id)}, headers=headers
        )
        assert team.status_code == 201
        team_id = team.json()["id"]

        body = {"user_id": str(user_id), "team_id": team_id, "role_id": str(role.id)}
        added = await client.post("/api/v1/admin/teams/members", json=body, headers=headers)
        assert added.status_code == 201

        duplicate = await client.post("/api/v1/admin/teams/members", json=body, headers=headers)
        assert duplicate.status_code == 409

    @pytest.mark.asyncio
    async def test_team_for_missing_app(self, client, admin_headers):
        headers = await admin_headers(["manage:teams"])
        response = await client.post(
            "/api/v1/admin/teams", json={"name": "QA", "app_id": str(uuid.uuid4())}, headers=headers
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_role_from_other_app_rejected(self, client, admin_headers, seed, app_row):
        headers = await admin_headers(["manage:teams"])
        other = await seed.app(app_row.organization_id)
        role = await seed.role(["read:app"], app_id=other.id)
        team = await client.post(
            "/api/v1/admin/teams", json={"name": "QA", "app_id": str(app_row.id)}, headers=headers
        )

        response = await client.post(
            "/api/v1/admin/teams/members",
            json={"user_id": str(uuid.uuid4()), "team_id": team.json()["id"], "role_id": str(role.id)},
            headers=headers,
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_app_scoped_role_does_not_grant_admin_endpoints(self, client, seed, app_row, auth_for):
        user_id = uuid.uuid4()
        await seed.team_role(user_id, ["*"], team_app_id=app_row.id, role_app_id=app_row.id)

        response = await client.post(
            "/api/v1/admin/teams",
            json={"name": "QA", "app_id": str(app_row.id)},
            headers=auth_for(user_id),
        )
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class TestUsers:
    @pytest.mark.asyncio
    async def test_list_and_filter(self, client, admin_headers, seed):
        headers = await admin_headers(["manage:users"])
        await seed.user("active@example.com")
        await seed.user("disabled@example.com", is_active=False)

        everyone = await client.get("/api/v1/admin/users", headers=headers)
        disabled = await client.get("/api/v1/admin/users", params={"is_active": "false"}, headers=headers)

        assert [u["email"] for u in everyone.json()["data"]] == ["active@example.com", "disabled@example.com"]
        assert [u["email"] for u in disabled.json()["data"]] == ["disabled@example.com"]

    @pytest.mark.asyncio
    async def test_update_flags(self, client, admin_headers, seed):
        headers = await admin_headers(["manage:users"])
        user = await seed.user()

        response = await client.put(
            f"/api/v1/admin/users/{user.id}", json={"is_active": False}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is False

    @pytest.mark.asyncio
    async def test_update_nothing(self, client, admin_headers, seed):
        headers = await admin_headers(["manage:users"])
        user = await seed.user()
        response = await client.put(f"/api/v1/admin/users/{user.id}", json={}, headers=headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_unknown_user(self, client, admin_headers):
        headers = await admin_headers(["manage:users"])
        response = await client.put(
            f"/api/v1/admin/users/{uuid.uuid4()}", json={"is_verified": True}, headers=headers
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_effective_permissions(self, client, admin_headers, seed, app_row):
        headers = await admin_headers(["read:roles"])
        user_id = uuid.uuid4()
        await seed.team_role(user_id, ["read:stats", "read:app"], team_app_id=app_row.id)
        await seed.team_role(user_id, ["write:updates"], team_app_id=app_row.id, role_app_id=app_row.id)

        system = await client.get(f"/api/v1/admin/users/{user_id}/permissions", headers=headers)
        scoped = await client.get(
            f"/api/v1/admin/users/{user_id}/permissions",
            params={"app_id": str(app_row.id)},
            headers=headers,
        )

        assert system.json() == {"user_id": str(user_id), "scope": None, "permissions": ["read:app", "read:stats"]}
        assert scoped.json()["permissions"] == ["write:updates"]

    @pytest.mark.asyncio
    async def test_user_teams(self, client, admin_headers, seed, app_row):
        headers = await admin_headers(["read:*"])
        user_id = uuid.uuid4()
        await seed.team_role(user_id, ["read:app"], team_app_id=app_row.id)

        response = await client.get(f"/api/v1/admin/users/{user_id}/teams", headers=headers)

        assert response.status_code == 200
        assert [t["app_id"] for t in response.json()] == [str(app_row.id)]

    @pytest.mark.asyncio
    async def test_no_roles_denied(self, client, auth_for):
        response = await client.get("/api/v1/admin/users", headers=auth_for(uuid.uuid4()))
        assert response.status_code == 403
