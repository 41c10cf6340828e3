"""Tests for organization user management endpoints."""

import pytest
from httpx import AsyncClient

from backend.campusops.config import Settings
from backend.campusops.db.models import AuditLog, User, UserStatus
from backend.campusops.db.scoped import UnscopedDatabase
from tests.helpers import Tenant, auth_headers


class TestInvite:
    """Test inviting users by setup link."""

    @pytest.mark.asyncio
    async def test_invite_returns_setup_link(
        self,
        client: AsyncClient,
        unscoped: UnscopedDatabase,
        settings: Settings,
        tenant_a: Tenant,
    ) -> None:
        response = await client.post(
            "/settings/users",
            json={"email": "New.Staff@north-high.example", "name": "New Staff"},
            headers=auth_headers(settings, tenant_a.admin),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["user"]["email"] == "new.staff@north-high.example"
        assert data["user"]["status"] == UserStatus.pending.value
        assert data["user"]["role"] == "member"
        assert data["setup_link"].startswith(f"{settings.app_base_url}/set-password?token=")

        user = await unscoped.find_first(User, User.email == "new.staff@north-high.example")
        assert user is not None
        assert user.organization_id == tenant_a.org.id

    @pytest.mark.asyncio
    async def test_invited_user_activates_through_link(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        invite = await client.post(
            "/settings/users",
            json={"email": "coach@north-high.example"},
            headers=auth_headers(settings, tenant_a.admin),
        )
        token = invite.json()["setup_link"].split("token=")[1]

        before = await client.post(
            "/auth/login", json={"email": "coach@north-high.example", "password": "coach-password"}
        )
        await client.post("/auth/set-password", json={"token": token, "password": "coach-password"})
        after = await client.post(
            "/auth/login", json={"email": "coach@north-high.example", "password": "coach-password"}
        )

        assert before.status_code == 401
        assert after.status_code == 200

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts_across_orgs(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant, tenant_b: Tenant
    ) -> None:
        response = await client.post(
            "/settings/users",
            json={"email": "member@south-high.example"},
            headers=auth_headers(settings, tenant_a.admin),
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_member_cannot_invite(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.post(
            "/settings/users",
            json={"email": "friend@north-high.example"},
            headers=auth_headers(settings, tenant_a.member),
        )

        assert response.status_code == 403
        assert response.json()["detail"]["message"] == "Insufficient permissions: users:invite"

    @pytest.mark.asyncio
    async def test_admin_cannot_invite_super_admin(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.post(
            "/settings/users",
            json={"email": "boss@north-high.example", "role": "super-admin"},
            headers=auth_headers(settings, tenant_a.admin),
        )

        assert response.status_code == 403


class TestRoles:
    @pytest.mark.asyncio
    async def test_role_change_takes_effect_for_existing_token(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        """Test a promoted member's already-issued token gains the new grants."""
        member_headers = auth_headers(settings, tenant_a.member)
        denied = await client.patch(
            "/organization/settings", json={"name": "Renamed"}, headers=member_headers
        )
        assert denied.status_code == 403

        promoted = await client.patch(
            f"/settings/users/{tenant_a.member.id}/role",
            json={"role": "admin"},
            headers=auth_headers(settings, tenant_a.admin),
        )
        assert promoted.json()["role"] == "admin"

        allowed = await client.patch(
            "/organization/settings", json={"name": "Renamed"}, headers=member_headers
        )
        assert allowed.status_code == 200
        assert allowed.json()["name"] == "Renamed"

    @pytest.mark.asyncio
    async def test_last_super_admin_cannot_be_demoted(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.patch(
            f"/settings/users/{tenant_a.super_admin.id}/role",
            json={"role": "admin"},
            headers=auth_headers(settings, tenant_a.super_admin),
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_cannot_change_role_of_other_org_user(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant, tenant_b: Tenant
    ) -> None:
        response = await client.patch(
            f"/settings/users/{tenant_b.member.id}/role",
            json={"role": "admin"},
            headers=auth_headers(settings, tenant_a.super_admin),
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_users_only_own_org(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant, tenant_b: Tenant
    ) -> None:
        response = await client.get("/settings/users", headers=auth_headers(settings, tenant_a.admin))

        assert {u["email"] for u in response.json()} == {
            "admin@north-high.example",
            "member@north-high.example",
            "owner@north-high.example",
        }


class TestPermissionOverrides:
    @pytest.mark.asyncio
    async def test_grant_and_revoke(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.put(
            f"/settings/users/{tenant_a.member.id}/permissions",
            json={
                "overrides": [
                    {"permission": "events:create", "granted": True},
                    {"permission": "campus:read", "granted": False},
                ]
            },
            headers=auth_headers(settings, tenant_a.admin),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["overrides"] == [
            {"permission": "campus:read", "granted": False},
            {"permission": "events:create", "granted": True},
        ]
        assert "events:create" in data["effective"]
        assert "campus:read" not in data["effective"]

        me = await client.get("/user/me", headers=auth_headers(settings, tenant_a.member))
        assert "events:create" in me.json()["permissions"]

    @pytest.mark.asyncio
    async def test_replacing_overrides_clears_previous(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        url = f"/settings/users/{tenant_a.member.id}/permissions"
        headers = auth_headers(settings, tenant_a.admin)
        await client.put(
            url, json={"overrides": [{"permission": "events:create", "granted": True}]}, headers=headers
        )

        response = await client.put(url, json={"overrides": []}, headers=headers)

        assert response.json()["overrides"] == []
        assert "events:create" not in response.json()["effective"]

    @pytest.mark.asyncio
    async def test_cannot_grant_what_caller_lacks(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.put(
            f"/settings/users/{tenant_a.member.id}/permissions",
            json={"overrides": [{"permission": "*:*", "granted": True}]},
            headers=auth_headers(settings, tenant_a.admin),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_permission_rejected(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.put(
            f"/settings/users/{tenant_a.member.id}/permissions",
            json={"overrides": [{"permission": "rockets:launch", "granted": True}]},
            headers=auth_headers(settings, tenant_a.admin),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_duplicate_permission_rejected(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        url = f"/settings/users/{tenant_a.member.id}/permissions"
        headers = auth_headers(settings, tenant_a.admin)
        await client.put(
            url, json={"overrides": [{"permission": "events:create", "granted": True}]}, headers=headers
        )

        response = await client.put(
            url,
            json={
                "overrides": [
                    {"permission": "events:read", "granted": False},
                    {"permission": "events:read", "granted": False},
                ]
            },
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Duplicate permission: events:read"
        me = await client.get("/user/me", headers=auth_headers(settings, tenant_a.member))
        assert "events:create" in me.json()["permissions"]

    @pytest.mark.asyncio
    async def test_team_scoped_permissions_can_be_granted(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.put(
            f"/settings/users/{tenant_a.member.id}/permissions",
            json={
                "overrides": [
                    {"permission": "tickets:read:team", "granted": True},
                    {"permission": "tickets:update:team", "granted": True},
                ]
            },
            headers=auth_headers(settings, tenant_a.admin),
        )

        assert response.status_code == 200
        assert {"tickets:read:team", "tickets:update:team"} <= set(response.json()["effective"])


class TestPermissionStatus:
    @pytest.mark.asyncio
    async def test_reports_inherited_granted_revoked_and_none(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        headers = auth_headers(settings, tenant_a.admin)
        url = f"/settings/users/{tenant_a.member.id}/permissions"
        await client.put(
            url,
            json={
                "overrides": [
                    {"permission": "events:create", "granted": True},
                    {"permission": "campus:read", "granted": False},
                ]
            },
            headers=headers,
        )

        response = await client.get(url, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "member"
        by_key = {p["permission"]: (p["status"], p["enabled"]) for p in data["permissions"]}
        assert by_key["tickets:create"] == ("inherited", True)
        assert by_key["events:create"] == ("granted", True)
        assert by_key["campus:read"] == ("revoked", False)
        assert by_key["settings:billing"] == ("none", False)
        assert "*:*" not in by_key

    @pytest.mark.asyncio
    async def test_wildcard_role_inherits_everything(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.get(
            f"/settings/users/{tenant_a.super_admin.id}/permissions",
            headers=auth_headers(settings, tenant_a.super_admin),
        )

        assert {p["status"] for p in response.json()["permissions"]} == {"inherited"}

    @pytest.mark.asyncio
    async def test_member_cannot_view(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.get(
            f"/settings/users/{tenant_a.member.id}/permissions",
            headers=auth_headers(settings, tenant_a.member),
        )

        assert response.status_code == 403


class TestUserDetail:
    @pytest.mark.asyncio
    async def test_get_and_rename(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        headers = auth_headers(settings, tenant_a.admin)
        url = f"/settings/users/{tenant_a.member.id}"

        renamed = await client.patch(url, json={"name": "Pat Member"}, headers=headers)
        fetched = await client.get(url, headers=headers)

        assert renamed.status_code == 200
        assert fetched.json()["name"] == "Pat Member"
        assert fetched.json()["role"] == "member"
        assert fetched.json()["team_ids"] == []

    @pytest.mark.asyncio
    async def test_other_org_user_not_found(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant, tenant_b: Tenant
    ) -> None:
        headers = auth_headers(settings, tenant_a.super_admin)

        fetched = await client.get(f"/settings/users/{tenant_b.member.id}", headers=headers)
        patched = await client.patch(
            f"/settings/users/{tenant_b.member.id}", json={"name": "x"}, headers=headers
        )

        assert fetched.status_code == 404
        assert patched.status_code == 404

    @pytest.mark.asyncio
    async def test_role_change_through_update(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.patch(
            f"/settings/users/{tenant_a.member.id}",
            json={"role": "viewer"},
            headers=auth_headers(settings, tenant_a.admin),
        )

        assert response.status_code == 200
        assert response.json()["role"] == "viewer"

    @pytest.mark.asyncio
    async def test_null_role_and_empty_body_rejected(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        headers = auth_headers(settings, tenant_a.admin)
        url = f"/settings/users/{tenant_a.member.id}"

        assert (await client.patch(url, json={"role": None}, headers=headers)).status_code == 422
        assert (await client.patch(url, json={"team_ids": None}, headers=headers)).status_code == 422
        assert (await client.patch(url, json={}, headers=headers)).status_code == 400

    @pytest.mark.asyncio
    async def test_member_cannot_update_others(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.patch(
            f"/settings/users/{tenant_a.admin.id}",
            json={"name": "Hijacked"},
            headers=auth_headers(settings, tenant_a.member),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_update_is_audited(
        self,
        client: AsyncClient,
        unscoped: UnscopedDatabase,
        settings: Settings,
        tenant_a: Tenant,
    ) -> None:
        await client.patch(
            f"/settings/users/{tenant_a.member.id}",
            json={"name": "Pat"},
            headers=auth_headers(settings, tenant_a.admin),
        )

        entry = await unscoped.find_first(AuditLog, AuditLog.action == "user.update")
        assert entry is not None
        assert entry.organization_id == tenant_a.org.id
        assert entry.resource_id == str(tenant_a.member.id)
        assert entry.changes == {"name": "Pat"}


class TestDeleteUser:
    @pytest.mark.asyncio
    async def test_super_admin_soft_deletes_member(
        self,
        client: AsyncClient,
        unscoped: UnscopedDatabase,
        settings: Settings,
        tenant_a: Tenant,
    ) -> None:
        member_headers = auth_headers(settings, tenant_a.member)
        owner_headers = auth_headers(settings, tenant_a.super_admin)

        response = await client.delete(f"/settings/users/{tenant_a.member.id}", headers=owner_headers)

        assert response.status_code == 204
        assert (await client.get(f"/settings/users/{tenant_a.member.id}", headers=owner_headers)).status_code == 404
        assert (await client.get("/user/me", headers=member_headers)).status_code == 401
        row = await unscoped.get(User, tenant_a.member.id)
        assert row is not None and row.deleted_at is not None
        assert await unscoped.find_first(AuditLog, AuditLog.action == "user.delete") is not None

    @pytest.mark.asyncio
    async def test_admin_lacks_delete_permission(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.delete(
            f"/settings/users/{tenant_a.member.id}", headers=auth_headers(settings, tenant_a.admin)
        )

        assert response.status_code == 403
        assert response.json()["detail"]["message"] == "Insufficient permissions: users:delete"

    @pytest.mark.asyncio
    async def test_cannot_delete_self(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        response = await client.delete(
            f"/settings/users/{tenant_a.super_admin.id}",
            headers=auth_headers(settings, tenant_a.super_admin),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_admin_with_delete_grant_cannot_remove_super_admin(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant
    ) -> None:
        await client.put(
            f"/settings/users/{tenant_a.admin.id}/permissions",
            json={"overrides": [{"permission": "users:delete", "granted": True}]},
            headers=auth_headers(settings, tenant_a.super_admin),
        )
        admin_headers = auth_headers(settings, tenant_a.admin)

        owner = await client.delete(f"/settings/users/{tenant_a.super_admin.id}", headers=admin_headers)
        member = await client.delete(f"/settings/users/{tenant_a.member.id}", headers=admin_headers)

        assert owner.status_code == 403
        assert member.status_code == 204

    @pytest.mark.asyncio
    async def test_other_org_user_not_found(
        self, client: AsyncClient, settings: Settings, tenant_a: Tenant, tenant_b: Tenant
    ) -> None:
        response = await client.delete(
            f"/settings/users/{tenant_b.member.id}",
            headers=auth_headers(settings, tenant_a.super_admin),
        )

        assert response.status_code == 404
