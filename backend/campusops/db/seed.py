"""Organization bootstrap: permission catalog and default roles.

``seed_dev_data`` (run as ``python -m backend.campusops.db.seed``) creates a
development organization with one super-admin user. It is idempotent.
"""

import asyncio
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.campusops.auth.passwords import hash_password
from backend.campusops.auth.permissions import (
    DEFAULT_ROLES,
    GLOBAL_SCOPE,
    SUPER_ADMIN_ROLE,
    catalog_permissions,
    format_permission,
    parse_permission,
)
from backend.campusops.db.engine import get_session_factory
from backend.campusops.db.models import Organization, Permission, Role, RolePermission, User
from backend.campusops.db.scoped import DataHandle, ScopedDatabase, UnscopedDatabase
from backend.campusops.tenancy.context import run_with_organization

DEV_ORG_SLUG = "dev-school"
DEV_ADMIN_EMAIL = "admin@dev-school.example"
DEV_ADMIN_PASSWORD = "devpassword"


async def seed_permission_catalog(db: DataHandle) -> dict[str, Permission]:
    """Ensure every declared permission exists in the global catalog.

    Returns:
        Catalog rows keyed by permission string
    """
    existing = {
        format_permission(p.resource, p.action, p.scope): p
        for p in await db.find_many(Permission)
    }
    missing = [grant for grant in catalog_permissions() if str(grant) not in existing]
    created = await db.create_many(
        Permission,
        [
            {
                "resource": grant.resource,
                "action": grant.action,
                "scope": grant.scope or GLOBAL_SCOPE,
            }
            for grant in missing
        ],
    )
    for permission in created:
        existing[format_permission(permission.resource, permission.action, permission.scope)] = permission
    return existing


async def find_permission(db: DataHandle, key: str) -> Permission | None:
    """Catalog row for a permission string, or None."""
    grant = parse_permission(key)
    return await db.find_first(
        Permission,
        Permission.resource == grant.resource,
        Permission.action == grant.action,
        Permission.scope == (grant.scope or GLOBAL_SCOPE),
    )


async def seed_default_roles(db: ScopedDatabase) -> dict[str, Role]:
    """Create the default roles of the current organization and their grants.

    Must run inside an organization context. Roles that already exist are
    left untouched.

    Returns:
        The organization's roles keyed by slug
    """
    async with db.transaction() as tx:
        catalog = await seed_permission_catalog(tx)
        roles = {role.slug: role for role in await tx.find_many(Role)}

        for definition in DEFAULT_ROLES.values():
            if definition.slug in roles:
                continue
            role = await tx.create(
                Role,
                slug=definition.slug,
                name=definition.name,
                description=definition.description,
                is_system=True,
            )
            await tx.create_many(
                RolePermission,
                [
                    {"role_id": role.id, "permission_id": catalog[key].id}
                    for key in definition.permissions
                ],
            )
            roles[role.slug] = role

    return roles


async def create_organization(
    sessions: async_sessionmaker[AsyncSession], name: str, slug: str
) -> Organization:
    """Create an organization together with its default roles."""
    org = await UnscopedDatabase(sessions).create(Organization, name=name, slug=slug)
    await run_with_organization(org.id, seed_default_roles, ScopedDatabase(sessions))
    return org


async def seed_dev_data(sessions: async_sessionmaker[AsyncSession] | None = None) -> uuid.UUID:
    """Seed a development organization with one super admin.

    Returns:
        The development organization id
    """
    sessions = sessions or get_session_factory()
    unscoped = UnscopedDatabase(sessions)

    org = await unscoped.find_first(Organization, Organization.slug == DEV_ORG_SLUG)
    if org is None:
        print(f"Creating dev organization {DEV_ORG_SLUG}...")
        org = await create_organization(sessions, "Dev School", DEV_ORG_SLUG)
    else:
        print(f"Dev organization already exists: {org.name}")

    user = await unscoped.find_first(User, User.email == DEV_ADMIN_EMAIL)
    if user is None:
        print(f"Creating dev admin {DEV_ADMIN_EMAIL}...")
        role = await unscoped.find_first(
            Role, Role.organization_id == org.id, Role.slug == SUPER_ADMIN_ROLE
        )
        await unscoped.create(
            User,
            organization_id=org.id,
            email=DEV_ADMIN_EMAIL,
            name="Dev Admin",
            password_hash=hash_password(DEV_ADMIN_PASSWORD),
            role_id=role.id if role is not None else None,
        )
    else:
        print(f"Dev admin already exists: {user.email}")

    print("Dev seeding complete")
    return org.id


if __name__ == "__main__":
    asyncio.run(seed_dev_data())
