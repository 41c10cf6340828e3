"""Builders shared by the test suites."""

import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.campusops.auth.identity import OrgClaims, PlatformClaims
from backend.campusops.auth.passwords import hash_password
from backend.campusops.auth.permissions import ADMIN_ROLE, MEMBER_ROLE, SUPER_ADMIN_ROLE
from backend.campusops.auth.tokens import sign_auth_token, sign_platform_auth_token
from backend.campusops.config import Settings
from backend.campusops.db.models import Organization, PlatformAdmin, Role, User
from backend.campusops.db.scoped import UnscopedDatabase
from backend.campusops.db.seed import create_organization

TEST_PASSWORD = "correct-horse-battery"


@dataclass
class Tenant:
    """One seeded organization with a user per default role."""

    org: Organization
    roles: dict[str, Role]
    super_admin: User
    admin: User
    member: User


async def make_user(
    unscoped: UnscopedDatabase,
    org: Organization,
    role: Role | None,
    email: str,
    password: str = TEST_PASSWORD,
) -> User:
    return await unscoped.create(
        User,
        organization_id=org.id,
        email=email,
        name=email.split("@")[0],
        password_hash=hash_password(password),
        role_id=role.id if role is not None else None,
    )


async def make_tenant(sessions: async_sessionmaker[AsyncSession], slug: str) -> Tenant:
    unscoped = UnscopedDatabase(sessions)
    org = await create_organization(sessions, slug.title(), slug)
    roles = {r.slug: r for r in await unscoped.find_many(Role, Role.organization_id == org.id)}
    return Tenant(
        org=org,
        roles=roles,
        super_admin=await make_user(unscoped, org, roles[SUPER_ADMIN_ROLE], f"owner@{slug}.example"),
        admin=await make_user(unscoped, org, roles[ADMIN_ROLE], f"admin@{slug}.example"),
        member=await make_user(unscoped, org, roles[MEMBER_ROLE], f"member@{slug}.example"),
    )


async def make_platform_admin(unscoped: UnscopedDatabase, role: str) -> PlatformAdmin:
    return await unscoped.create(
        PlatformAdmin,
        email=f"{role.lower()}-{uuid.uuid4().hex[:6]}@platform.example",
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )


def auth_headers(settings: Settings, user: User) -> dict[str, str]:
    token = sign_auth_token(
        OrgClaims(user_id=user.id, organization_id=user.organization_id, email=user.email),
        settings,
    )
    return {"Authorization": f"Bearer {token}"}


def platform_headers(settings: Settings, admin: PlatformAdmin) -> dict[str, str]:
    token = sign_platform_auth_token(PlatformClaims(admin_id=admin.id, email=admin.email), settings)
    return {"Authorization": f"Bearer {token}"}
