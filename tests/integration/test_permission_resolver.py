"""Tests for permission resolution against the database."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.campusops.api.auth import get_permission_resolver
from backend.campusops.auth.permissions import ADMIN_ROLE, PERMISSIONS
from backend.campusops.auth.resolver import PermissionCache, PermissionResolver
from backend.campusops.config import Settings
from backend.campusops.db.models import Team, User, UserPermission, UserTeam
from backend.campusops.db.scoped import ScopedDatabase, UnscopedDatabase
from backend.campusops.db.seed import find_permission
from backend.campusops.errors import InsufficientPermissions, MissingOrgContext
from backend.campusops.tenancy.context import organization_context
from tests.helpers import Tenant


@pytest.mark.asyncio
async def test_role_change_applies_on_next_check(
    scoped: ScopedDatabase, unscoped: UnscopedDatabase, tenant_a: Tenant
) -> None:
    """Test a member gains settings:manage as soon as they are made admin."""
    resolver = PermissionResolver(scoped)
    member = tenant_a.member

    with organization_context(tenant_a.org.id):
        assert await resolver.can(member.id, PERMISSIONS.SETTINGS_MANAGE) is False

        await scoped.update(
            User, User.id == member.id, values={"role_id": tenant_a.roles[ADMIN_ROLE].id}
        )

        assert await resolver.can(member.id, PERMISSIONS.SETTINGS_MANAGE) is True


@pytest.mark.asyncio
async def test_super_admin_wildcard_covers_everything(
    scoped: ScopedDatabase, tenant_a: Tenant
) -> None:
    resolver = PermissionResolver(scoped)

    with organization_context(tenant_a.org.id):
        assert await resolver.can(tenant_a.super_admin.id, PERMISSIONS.SETTINGS_BILLING) is True
        assert await resolver.can_all(
            tenant_a.super_admin.id, [PERMISSIONS.USERS_INVITE, PERMISSIONS.AUDIT_READ]
        )


@pytest.mark.asyncio
async def test_any_versus_all_for_member(scoped: ScopedDatabase, tenant_a: Tenant) -> None:
    resolver = PermissionResolver(scoped)
    wanted = [PERMISSIONS.SETTINGS_MANAGE, PERMISSIONS.CAMPUS_READ]

    with organization_context(tenant_a.org.id):
        assert await resolver.can_any(tenant_a.member.id, wanted) is True
        assert await resolver.can_all(tenant_a.member.id, wanted) is False
        assert await resolver.can_any(tenant_a.member.id, [PERMISSIONS.AUDIT_READ]) is False


@pytest.mark.asyncio
async def test_user_overrides_grant_and_revoke(
    scoped: ScopedDatabase, tenant_a: Tenant
) -> None:
    """Test user-level grants are added and revokes are removed last."""
    resolver = PermissionResolver(scoped)
    member = tenant_a.member

    with organization_context(tenant_a.org.id):
        events_create = await find_permission(scoped, PERMISSIONS.EVENTS_CREATE)
        campus_read = await find_permission(scoped, PERMISSIONS.CAMPUS_READ)
        assert events_create is not None and campus_read is not None

        await scoped.create_many(
            UserPermission,
            [
                {"user_id": member.id, "permission_id": events_create.id, "granted": True},
                {"user_id": member.id, "permission_id": campus_read.id, "granted": False},
            ],
        )

        permissions = await resolver.get_user_permissions(member.id)

    assert PERMISSIONS.EVENTS_CREATE in permissions
    assert PERMISSIONS.CAMPUS_READ not in permissions
    assert PERMISSIONS.TICKETS_CREATE in permissions


@pytest.mark.asyncio
async def test_user_of_other_org_has_no_permissions(
    scoped: ScopedDatabase, tenant_a: Tenant, tenant_b: Tenant
) -> None:
    resolver = PermissionResolver(scoped)

    with organization_context(tenant_a.org.id):
        assert await resolver.get_user_permissions(tenant_b.super_admin.id) == frozenset()
        assert await resolver.can(tenant_b.super_admin.id, PERMISSIONS.TICKETS_READ_OWN) is False


@pytest.mark.asyncio
async def test_resolver_requires_org_context(scoped: ScopedDatabase, tenant_a: Tenant) -> None:
    resolver = PermissionResolver(scoped)

    with pytest.raises(MissingOrgContext):
        await resolver.can(tenant_a.member.id, PERMISSIONS.TICKETS_CREATE)


@pytest.mark.asyncio
async def test_assert_can_raises_with_key(scoped: ScopedDatabase, tenant_a: Tenant) -> None:
    resolver = PermissionResolver(scoped)

    with organization_context(tenant_a.org.id):
        with pytest.raises(InsufficientPermissions) as exc_info:
            await resolver.assert_can(tenant_a.member.id, PERMISSIONS.USERS_INVITE)

    assert exc_info.value.permission == PERMISSIONS.USERS_INVITE


class TestCanAccessResource:
    """Test own/team/all scoped access to individual records."""

    @pytest.mark.asyncio
    async def test_own_scope_only_covers_own_records(
        self, scoped: ScopedDatabase, tenant_a: Tenant
    ) -> None:
        resolver = PermissionResolver(scoped)
        member = tenant_a.member

        with organization_context(tenant_a.org.id):
            assert await resolver.can_access_resource(member.id, "tickets:read", owner_id=member.id)
            assert not await resolver.can_access_resource(
                member.id, "tickets:read", owner_id=tenant_a.admin.id
            )

    @pytest.mark.asyncio
    async def test_all_scope_covers_any_record(
        self, scoped: ScopedDatabase, tenant_a: Tenant
    ) -> None:
        resolver = PermissionResolver(scoped)

        with organization_context(tenant_a.org.id):
            assert await resolver.can_access_resource(
                tenant_a.admin.id, "tickets:update", owner_id=tenant_a.member.id
            )

    @pytest.mark.asyncio
    async def test_team_scope_requires_shared_team(
        self, scoped: ScopedDatabase, unscoped: UnscopedDatabase, tenant_a: Tenant
    ) -> None:
        resolver = PermissionResolver(scoped)
        member = tenant_a.member

        with organization_context(tenant_a.org.id):
            facilities = await scoped.create(Team, slug="facilities", name="Facilities")
            grounds = await scoped.create(Team, slug="grounds", name="Grounds")
            read_team = await find_permission(scoped, PERMISSIONS.TICKETS_READ_TEAM)
            assert read_team is not None
            await scoped.create(
                UserPermission, user_id=member.id, permission_id=read_team.id, granted=True
            )
        await unscoped.create(UserTeam, user_id=member.id, team_id=facilities.id)

        with organization_context(tenant_a.org.id):
            assert await resolver.get_user_team_ids(member.id) == {facilities.id}
            assert await resolver.can_access_resource(
                member.id, "tickets:read", owner_id=tenant_a.admin.id, team_ids=[facilities.id]
            )
            assert not await resolver.can_access_resource(
                member.id, "tickets:read", owner_id=tenant_a.admin.id, team_ids=[grounds.id]
            )


@pytest.mark.asyncio
async def test_cached_grants_refresh_after_invalidate(
    scoped: ScopedDatabase, tenant_a: Tenant
) -> None:
    """Test a caching resolver serves stale grants until invalidated."""
    resolver = PermissionResolver(scoped, cache_ttl_seconds=300)
    member = tenant_a.member

    with organization_context(tenant_a.org.id):
        assert await resolver.can(member.id, PERMISSIONS.SETTINGS_MANAGE) is False

        await scoped.update(
            User, User.id == member.id, values={"role_id": tenant_a.roles[ADMIN_ROLE].id}
        )
        assert await resolver.can(member.id, PERMISSIONS.SETTINGS_MANAGE) is False

        resolver.invalidate(member.id)
        assert await resolver.can(member.id, PERMISSIONS.SETTINGS_MANAGE) is True


def test_expired_cache_entries_pruned_on_write() -> None:
    cache = PermissionCache(ttl_seconds=10)
    org_id = uuid.uuid4()

    for _ in range(20):
        cache.put((org_id, uuid.uuid4()), frozenset({"campus:read"}), now=100.0)
    assert len(cache) == 20

    fresh = (org_id, uuid.uuid4())
    cache.put(fresh, frozenset(), now=111.0)

    assert len(cache) == 1
    assert cache.get(fresh, now=112.0) == frozenset()
    assert cache.get(fresh, now=121.0) is None


def test_disabled_cache_stores_nothing() -> None:
    cache = PermissionCache()

    cache.put((uuid.uuid4(), uuid.uuid4()), frozenset({"campus:read"}))

    assert len(cache) == 0


@pytest.mark.asyncio
async def test_request_resolvers_use_their_own_handle_and_share_cache(
    sessions: async_sessionmaker[AsyncSession],
) -> None:
    """Test each request gets a resolver over its own handle with one shared cache."""
    settings = Settings(permission_cache_ttl_seconds=30)
    first_db = ScopedDatabase(sessions)
    second_db = ScopedDatabase(sessions)

    first = get_permission_resolver(first_db, settings)
    second = get_permission_resolver(second_db, settings)

    assert first is not second
    assert first.cache is second.cache
    assert first.cache.ttl_seconds == 30
