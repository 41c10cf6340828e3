"""Organization user management: invites, roles, per-user overrides, audit log."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Query, Request, Response, status

from backend.campusops.api.auth import (
    AppSettings,
    OrgUser,
    Resolver,
    ScopedDB,
    UnscopedDB,
    client_ip,
)
from backend.campusops.auth.identity import OrgUserIdentity
from backend.campusops.auth.permissions import (
    PERMISSIONS,
    SUPER_ADMIN_ROLE,
    can_assign_role,
    format_permission,
    matches_permission,
)
from backend.campusops.auth.resolver import PermissionResolver
from backend.campusops.auth.setup_tokens import issue_setup_token
from backend.campusops.db.models import (
    AuditLog,
    Permission,
    Role,
    Team,
    User,
    UserPermission,
    UserStatus,
    UserTeam,
)
from backend.campusops.db.scoped import ScopedDatabase
from backend.campusops.db.seed import find_permission
from backend.campusops.errors import BadRequest, Conflict, InsufficientPermissions, NotFound
from backend.campusops.models.users import (
    AssignRoleRequest,
    AuditLogResponse,
    InviteUserRequest,
    InviteUserResponse,
    PermissionOverride,
    PermissionStatus,
    UpdatePermissionsRequest,
    UpdateUserRequest,
    UserDetailResponse,
    UserPermissionStatusResponse,
    UserPermissionsResponse,
    UserResponse,
)
from backend.campusops.services.audit import AuditAction, record_audit
from backend.campusops.tenancy.context import organization_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])

# Invited users cannot log in until a setup link is redeemed
UNUSABLE_PASSWORD_HASH = "!"


def _user_response(user: User, roles_by_id: dict[uuid.UUID, Role]) -> UserResponse:
    role = roles_by_id.get(user.role_id) if user.role_id is not None else None
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        status=user.status,
        role=role.slug if role is not None else None,
        created_at=user.created_at,
    )


async def _user_detail(db: ScopedDatabase, user: User) -> UserDetailResponse:
    role = await db.get(Role, user.role_id) if user.role_id is not None else None
    memberships = await db.find_many(UserTeam, UserTeam.user_id == user.id)
    summary = _user_response(user, {role.id: role} if role is not None else {})
    return UserDetailResponse(
        **summary.model_dump(), team_ids=sorted(m.team_id for m in memberships)
    )


async def _visible_user(db: ScopedDatabase, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def _assignable_role(db: ScopedDatabase, caller: OrgUserIdentity, slug: str) -> Role:
    role = await db.find_first(Role, Role.slug == slug)
    if role is None:
        raise BadRequest(f"Unknown role: {slug}")
    if not can_assign_role(caller.role, role.slug):
        raise InsufficientPermissions(
            PERMISSIONS.USERS_MANAGE_ROLES, f"Role {slug} cannot be assigned by {caller.role}"
        )
    return role


async def _guard_last_super_admin(db: ScopedDatabase, target: User, new_role: Role | None) -> None:
    """Refuse to leave the organization without a super admin.

    Args:
        target: User whose role is changing or who is being removed
        new_role: Role the user moves to, or None when the user is removed
    """
    super_admin = await db.find_first(Role, Role.slug == SUPER_ADMIN_ROLE)
    if super_admin is None or target.role_id != super_admin.id:
        return
    if new_role is not None and new_role.id == super_admin.id:
        return
    if await db.count(User, User.role_id == super_admin.id) <= 1:
        raise Conflict("Cannot remove the last super admin")


@router.get("/users", response_model=list[UserResponse])
async def list_users(caller: OrgUser, db: ScopedDB, resolver: Resolver) -> list[UserResponse]:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.USERS_READ)
        users = await db.find_many(User, order_by=(User.email,))
        roles = {r.id: r for r in await db.find_many(Role)}

    return [_user_response(u, roles) for u in users]


@router.post("/users", response_model=InviteUserResponse, status_code=status.HTTP_201_CREATED)
async def invite_user(
    body: InviteUserRequest,
    request: Request,
    caller: OrgUser,
    settings: AppSettings,
    db: ScopedDB,
    unscoped: UnscopedDB,
    resolver: Resolver,
) -> InviteUserResponse:
    """Create a pending user and return their single-use setup link."""
    email = body.email.strip().lower()

    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.USERS_INVITE)
        role = await _assignable_role(db, caller, body.role)

        # Emails are unique across every organization
        if await unscoped.find_first(User, User.email == email) is not None:
            raise Conflict("A user with this email already exists")

        async with db.transaction() as tx:
            user = await tx.create(
                User,
                email=email,
                name=body.name,
                password_hash=UNUSABLE_PASSWORD_HASH,
                status=UserStatus.pending.value,
                role_id=role.id,
            )
            issued = await issue_setup_token(tx, user.id, settings)

        await record_audit(
            db,
            action=AuditAction.USER_INVITE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="user",
            resource_id=user.id,
            resource_label=user.email,
            changes={"role": role.slug},
            ip_address=client_ip(request),
        )

    logger.info(
        "User invited",
        extra={"structured": {"organization_id": str(caller.organization_id), "user_id": str(user.id)}},
    )
    return InviteUserResponse(
        user=_user_response(user, {role.id: role}),
        setup_link=issued.link,
        expires_at=issued.expires_at,
    )


@router.get("/users/{user_id}", response_model=UserDetailResponse)
async def get_user(
    user_id: uuid.UUID, caller: OrgUser, db: ScopedDB, resolver: Resolver
) -> UserDetailResponse:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.USERS_READ)
        return await _user_detail(db, await _visible_user(db, user_id))


@router.patch("/users/{user_id}", response_model=UserDetailResponse)
async def update_user(
    user_id: uuid.UUID,
    body: UpdateUserRequest,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> UserDetailResponse:
    """Update a user's name, role and team memberships.

    ``team_ids`` replaces the user's memberships. Role and team changes
    additionally need ``users:manage:roles``.
    """
    changes = body.model_dump(exclude_unset=True, mode="json")
    if not changes:
        raise BadRequest("No changes")

    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.USERS_UPDATE)
        if "role" in changes or "team_ids" in changes:
            await resolver.assert_can(caller.user_id, PERMISSIONS.USERS_MANAGE_ROLES)
        target = await _visible_user(db, user_id)

        values: dict[str, object] = {}
        if "name" in changes:
            values["name"] = body.name
        if body.role is not None:
            role = await _assignable_role(db, caller, body.role)
            await _guard_last_super_admin(db, target, role)
            values["role_id"] = role.id

        team_ids = set(body.team_ids) if body.team_ids is not None else None
        if team_ids:
            teams = await db.find_many(Team, Team.id.in_(list(team_ids)))
            if len(teams) != len(team_ids):
                raise BadRequest("Unknown team")

        async with db.transaction() as tx:
            if values:
                await tx.update(User, User.id == target.id, values=values)
            if team_ids is not None:
                await tx.delete(UserTeam, UserTeam.user_id == target.id)
                await tx.create_many(
                    UserTeam, [{"user_id": target.id, "team_id": team_id} for team_id in team_ids]
                )
        resolver.invalidate(target.id)

        await record_audit(
            db,
            action=AuditAction.USER_UPDATE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="user",
            resource_id=target.id,
            resource_label=target.email,
            changes=changes,
            ip_address=client_ip(request),
        )
        return await _user_detail(db, await _visible_user(db, user_id))


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: uuid.UUID,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> Response:
    """Soft-delete a user; their issued tokens stop working on the next request."""
    if user_id == caller.user_id:
        raise BadRequest("You cannot delete your own account")

    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.USERS_DELETE)
        target = await _visible_user(db, user_id)

        target_role = await db.get(Role, target.role_id) if target.role_id is not None else None
        if target_role is not None and not can_assign_role(caller.role, target_role.slug):
            raise InsufficientPermissions(
                PERMISSIONS.USERS_DELETE,
                f"Users with role {target_role.slug} cannot be removed by {caller.role}",
            )
        await _guard_last_super_admin(db, target, None)

        async with db.transaction() as tx:
            await tx.delete(UserTeam, UserTeam.user_id == target.id)
            await tx.delete(UserPermission, UserPermission.user_id == target.id)
            await tx.delete(User, User.id == target.id)
        resolver.invalidate(target.id)

        await record_audit(
            db,
            action=AuditAction.USER_DELETE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="user",
            resource_id=target.id,
            resource_label=target.email,
            ip_address=client_ip(request),
        )

    logger.info(
        "User deleted",
        extra={"structured": {"organization_id": str(caller.organization_id), "user_id": str(user_id)}},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/users/{user_id}/role", response_model=UserResponse)
async def assign_role(
    user_id: uuid.UUID,
    body: AssignRoleRequest,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> UserResponse:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.USERS_MANAGE_ROLES)
        target = await _visible_user(db, user_id)
        role = await _assignable_role(db, caller, body.role)
        await _guard_last_super_admin(db, target, role)

        previous = target.role_id
        await db.update(User, User.id == target.id, values={"role_id": role.id})
        resolver.invalidate(target.id)
        await record_audit(
            db,
            action=AuditAction.ROLE_ASSIGN,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="user",
            resource_id=target.id,
            resource_label=target.email,
            changes={"role_id": {"from": str(previous) if previous else None, "to": str(role.id)}},
            ip_address=client_ip(request),
        )
        target = await _visible_user(db, user_id)

    return _user_response(target, {role.id: role})


async def _overrides(
    db: ScopedDatabase, resolver: PermissionResolver, user_id: uuid.UUID
) -> UserPermissionsResponse:
    rows = await db.find_many(UserPermission, UserPermission.user_id == user_id)
    granted = {row.permission_id: row.granted for row in rows}
    catalog = await db.find_many(Permission, Permission.id.in_(list(granted)))
    overrides = [
        PermissionOverride(
            permission=format_permission(p.resource, p.action, p.scope), granted=granted[p.id]
        )
        for p in catalog
    ]
    effective = await resolver.get_user_permissions(user_id)
    return UserPermissionsResponse(
        user_id=user_id,
        overrides=sorted(overrides, key=lambda o: o.permission),
        effective=sorted(effective),
    )


@router.get("/users/{user_id}/permissions", response_model=UserPermissionStatusResponse)
async def get_user_permission_status(
    user_id: uuid.UUID, caller: OrgUser, db: ScopedDB, resolver: Resolver
) -> UserPermissionStatusResponse:
    """Every catalog permission (except the wildcard) with how the user holds it."""
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.USERS_MANAGE_ROLES)
        target = await _visible_user(db, user_id)

        role = await db.get(Role, target.role_id) if target.role_id is not None else None
        from_role = await resolver.get_role_permissions(role.id) if role is not None else frozenset()
        overrides = {
            row.permission_id: row.granted
            for row in await db.find_many(UserPermission, UserPermission.user_id == target.id)
        }
        catalog = await db.find_many(
            Permission,
            Permission.resource != "*",
            order_by=(Permission.resource, Permission.action, Permission.scope),
        )

    entries = []
    for permission in catalog:
        key = format_permission(permission.resource, permission.action, permission.scope)
        if permission.id in overrides:
            enabled = overrides[permission.id]
            entry_status = "granted" if enabled else "revoked"
        elif any(matches_permission(held, key) for held in from_role):
            enabled, entry_status = True, "inherited"
        else:
            enabled, entry_status = False, "none"
        entries.append(
            PermissionStatus(
                permission=key,
                description=permission.description,
                status=entry_status,
                enabled=enabled,
            )
        )

    return UserPermissionStatusResponse(
        user_id=target.id,
        email=target.email,
        role=role.slug if role is not None else None,
        permissions=entries,
    )


@router.put("/users/{user_id}/permissions", response_model=UserPermissionsResponse)
async def replace_user_permissions(
    user_id: uuid.UUID,
    body: UpdatePermissionsRequest,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> UserPermissionsResponse:
    """Replace the user's per-user grants and revokes.

    A caller may only grant permissions they hold themselves. Each permission
    may appear once.
    """
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.USERS_MANAGE_ROLES)
        target = await _visible_user(db, user_id)

        rows: dict[uuid.UUID, dict[str, object]] = {}
        for override in body.overrides:
            permission = await find_permission(db, override.permission)
            if permission is None:
                raise BadRequest(f"Unknown permission: {override.permission}")
            if permission.id in rows:
                raise BadRequest(f"Duplicate permission: {override.permission}")
            if override.granted:
                await resolver.assert_can(caller.user_id, override.permission)
            rows[permission.id] = {
                "user_id": target.id,
                "permission_id": permission.id,
                "granted": override.granted,
            }

        async with db.transaction() as tx:
            await tx.delete(UserPermission, UserPermission.user_id == target.id)
            await tx.create_many(UserPermission, rows.values())
        resolver.invalidate(target.id)

        await record_audit(
            db,
            action=AuditAction.PERMISSIONS_UPDATE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="user",
            resource_id=target.id,
            resource_label=target.email,
            changes={"overrides": [o.model_dump() for o in body.overrides]},
            ip_address=client_ip(request),
        )
        return await _overrides(db, resolver, target.id)


@router.get("/audit-logs", response_model=list[AuditLogResponse])
async def list_audit_logs(
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[AuditLogResponse]:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.AUDIT_READ)
        logs = await db.find_many(AuditLog, order_by=(AuditLog.created_at.desc(),), limit=limit)

    return [AuditLogResponse.model_validate(entry) for entry in logs]
