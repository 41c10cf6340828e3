"""Request authentication and organization scoping dependencies.

Route handlers take the identity from here and then open the organization
scope themselves with ``organization_context(...)``. A verified bearer token
always decides the organization; ``x-org-id`` is only consulted when no
bearer is presented and the header fallback is enabled.
"""

import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Literal

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.campusops.auth.identity import OrgClaims, OrgUserIdentity, PlatformAdminIdentity
from backend.campusops.auth.resolver import PermissionCache, PermissionResolver
from backend.campusops.auth.tokens import (
    bearer_token,
    verify_auth_token,
    verify_platform_auth_token,
)
from backend.campusops.config import Settings, get_settings
from backend.campusops.db.engine import get_session_factory
from backend.campusops.db.models import Organization, PlatformAdmin, Role, User
from backend.campusops.db.scoped import ScopedDatabase, UnscopedDatabase
from backend.campusops.errors import InvalidOrganization, InvalidToken, MissingOrgContext
from backend.campusops.utils.metrics import tenancy_metrics

logger = logging.getLogger(__name__)


def get_db_sessions() -> async_sessionmaker[AsyncSession]:
    """Shared session factory (overridden in tests)."""
    return get_session_factory()


def get_scoped_db(
    sessions: Annotated[async_sessionmaker[AsyncSession], Depends(get_db_sessions)],
) -> ScopedDatabase:
    return ScopedDatabase(sessions)


def get_unscoped_db(
    sessions: Annotated[async_sessionmaker[AsyncSession], Depends(get_db_sessions)],
) -> UnscopedDatabase:
    return UnscopedDatabase(sessions)


AppSettings = Annotated[Settings, Depends(get_settings)]
ScopedDB = Annotated[ScopedDatabase, Depends(get_scoped_db)]
UnscopedDB = Annotated[UnscopedDatabase, Depends(get_unscoped_db)]


@lru_cache
def get_permission_cache(ttl_seconds: int) -> PermissionCache:
    """Process-wide grants cache for one TTL setting."""
    return PermissionCache(ttl_seconds)


def get_permission_resolver(db: ScopedDB, settings: AppSettings) -> PermissionResolver:
    """Per-request resolver over the request's handle; the cache is shared."""
    return PermissionResolver(db, cache=get_permission_cache(settings.permission_cache_ttl_seconds))


Resolver = Annotated[PermissionResolver, Depends(get_permission_resolver)]


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def ensure_organization(db: UnscopedDatabase, organization_id: uuid.UUID) -> Organization:
    """Load an organization that requests may be scoped to.

    Raises:
        InvalidOrganization: Unknown or suspended organization
    """
    org = await db.get(Organization, organization_id)
    if org is None:
        raise InvalidOrganization()
    if org.suspended:
        raise InvalidOrganization("Organization is suspended")
    return org


async def load_org_user(db: UnscopedDatabase, claims: OrgClaims) -> OrgUserIdentity:
    """Resolve verified token claims to the current state of the user.

    Raises:
        InvalidToken: User is gone or no longer belongs to the token's organization
        InvalidOrganization: Organization is unknown or suspended
    """
    user = await db.get(User, claims.user_id)
    if user is None or user.deleted_at is not None:
        raise InvalidToken("User no longer exists")
    if user.organization_id != claims.organization_id:
        raise InvalidToken("Token organization does not match user")

    await ensure_organization(db, user.organization_id)

    role = await db.get(Role, user.role_id) if user.role_id is not None else None
    return OrgUserIdentity(
        user_id=user.id,
        organization_id=user.organization_id,
        email=user.email,
        role=role.slug if role is not None else None,
    )


async def get_org_user(
    settings: AppSettings,
    db: UnscopedDB,
    authorization: Annotated[str | None, Header()] = None,
) -> OrgUserIdentity:
    """Require an org-user bearer token.

    Raises:
        InvalidToken: No token, or a token that fails verification
    """
    token = bearer_token(authorization)
    if token is None:
        raise InvalidToken("Authentication required")
    return await load_org_user(db, verify_auth_token(token, settings))


async def get_optional_org_user(
    settings: AppSettings,
    db: UnscopedDB,
    authorization: Annotated[str | None, Header()] = None,
) -> OrgUserIdentity | None:
    """Org user if a bearer token is presented; a bad token still fails."""
    token = bearer_token(authorization)
    if token is None:
        return None
    return await load_org_user(db, verify_auth_token(token, settings))


async def get_platform_admin(
    settings: AppSettings,
    db: UnscopedDB,
    authorization: Annotated[str | None, Header()] = None,
) -> PlatformAdminIdentity:
    """Require a platform-admin bearer token.

    Raises:
        InvalidToken: No token, a token that fails verification, or an unknown admin
    """
    token = bearer_token(authorization)
    if token is None:
        raise InvalidToken("Authentication required")
    claims = verify_platform_auth_token(token, settings)

    admin = await db.get(PlatformAdmin, claims.admin_id)
    if admin is None:
        raise InvalidToken("Platform admin no longer exists")
    return PlatformAdminIdentity(admin_id=admin.id, email=admin.email, role=admin.role)


@dataclass(frozen=True)
class RequestOrganization:
    """Organization a request is scoped to, and how it was selected."""

    organization_id: uuid.UUID
    caller: OrgUserIdentity | None
    source: Literal["token", "header"]


async def get_request_organization(
    settings: AppSettings,
    db: UnscopedDB,
    authorization: Annotated[str | None, Header()] = None,
    x_org_id: Annotated[str | None, Header()] = None,
) -> RequestOrganization:
    """Select the organization for a request that may be unauthenticated.

    Raises:
        InvalidToken: A bearer token was presented and failed verification
        InvalidOrganization: The header names an unknown or suspended organization
        MissingOrgContext: Neither a token nor an allowed header selects one
    """
    token = bearer_token(authorization)
    if token is not None:
        caller = await load_org_user(db, verify_auth_token(token, settings))
        if x_org_id and x_org_id != str(caller.organization_id):
            logger.warning(
                "Ignoring x-org-id that disagrees with bearer token",
                extra={
                    "structured": {
                        "token_org": str(caller.organization_id),
                        "header_org": x_org_id,
                    }
                },
            )
        return RequestOrganization(
            organization_id=caller.organization_id, caller=caller, source="token"
        )

    if not x_org_id or not settings.allow_org_header_fallback:
        tenancy_metrics.record_denial("missing_org_context")
        raise MissingOrgContext("Authentication required")

    try:
        organization_id = uuid.UUID(x_org_id)
    except ValueError as e:
        raise InvalidOrganization("Invalid organization id") from e

    await ensure_organization(db, organization_id)
    logger.info(
        "Request scoped by x-org-id header",
        extra={"structured": {"organization_id": str(organization_id)}},
    )
    return RequestOrganization(organization_id=organization_id, caller=None, source="header")


OrgUser = Annotated[OrgUserIdentity, Depends(get_org_user)]
OptionalOrgUser = Annotated[OrgUserIdentity | None, Depends(get_optional_org_user)]
PlatformAdminUser = Annotated[PlatformAdminIdentity, Depends(get_platform_admin)]
RequestOrg = Annotated[RequestOrganization, Depends(get_request_organization)]
