"""Organization roles: list, create custom roles with grants, delete."""

import logging
import uuid

from fastapi import APIRouter, Request, Response, status

from backend.campusops.api.auth import OrgUser, Resolver, ScopedDB, client_ip
from backend.campusops.auth.permissions import PERMISSIONS
from backend.campusops.auth.resolver import PermissionResolver
from backend.campusops.db.models import Role, RolePermission, User
from backend.campusops.db.scoped import ScopedDatabase
from backend.campusops.db.seed import find_permission
from backend.campusops.errors import BadRequest, Conflict, InsufficientPermissions, NotFound
from backend.campusops.models.users import CreateRoleRequest, RoleResponse
from backend.campusops.services.audit import AuditAction, record_audit
from backend.campusops.tenancy.context import organization_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings/roles", tags=["settings"])


async def _role_response(
    db: ScopedDatabase, resolver: PermissionResolver, role: Role
) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        slug=role.slug,
        name=role.name,
        description=role.description,
        is_system=role.is_system,
        permissions=sorted(await resolver.get_role_permissions(role.id)),
        user_count=await db.count(User, User.role_id == role.id),
    )


@router.get("", response_model=list[RoleResponse])
async def list_roles(caller: OrgUser, db: ScopedDB, resolver: Resolver) -> list[RoleResponse]:
    """System roles first, then custom roles by name."""
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.ROLES_READ)
        roles = await db.find_many(Role, order_by=(Role.is_system.desc(), Role.name))
        return [await _role_response(db, resolver, role) for role in roles]


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    body: CreateRoleRequest,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> RoleResponse:
    """Create a custom role.

    The caller must hold every permission the role grants.
    """
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.ROLES_MANAGE)
        if await db.find_first(Role, Role.slug == body.slug) is not None:
            raise Conflict(f"Role {body.slug} already exists")

        permission_ids: dict[uuid.UUID, str] = {}
        for key in body.permissions:
            permission = await find_permission(db, key)
            if permission is None:
                raise BadRequest(f"Unknown permission: {key}")
            await resolver.assert_can(caller.user_id, key)
            permission_ids[permission.id] = key

        async with db.transaction() as tx:
            role = await tx.create(
                Role,
                slug=body.slug,
                name=body.name,
                description=body.description,
                is_system=False,
            )
            await tx.create_many(
                RolePermission,
                [{"role_id": role.id, "permission_id": pid} for pid in permission_ids],
            )

        await record_audit(
            db,
            action=AuditAction.ROLE_CREATE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="role",
            resource_id=role.id,
            resource_label=role.slug,
            changes={"permissions": sorted(permission_ids.values())},
            ip_address=client_ip(request),
        )
        return await _role_response(db, resolver, role)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: uuid.UUID,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> Response:
    """Delete a custom role that no user holds."""
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.ROLES_MANAGE)
        role = await db.get(Role, role_id)
        if role is None:
            raise NotFound("Role not found")
        if role.is_system:
            raise InsufficientPermissions(PERMISSIONS.ROLES_MANAGE, "System roles cannot be deleted")
        if await db.count(User, User.role_id == role.id) > 0:
            raise Conflict("Cannot delete a role that is assigned to users")

        async with db.transaction() as tx:
            await tx.delete(RolePermission, RolePermission.role_id == role.id)
            await tx.delete(Role, Role.id == role.id)

        await record_audit(
            db,
            action=AuditAction.ROLE_DELETE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="role",
            resource_id=role.id,
            resource_label=role.slug,
            ip_address=client_ip(request),
        )

    logger.info(
        "Role deleted",
        extra={"structured": {"organization_id": str(caller.organization_id), "role": role.slug}},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
