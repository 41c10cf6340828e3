"""Platform-admin endpoints.

These work across organizations through the unscoped handle. Every route
past login is gated by a platform permission check first.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from backend.campusops.api.auth import AppSettings, PlatformAdminUser, UnscopedDB, client_ip
from backend.campusops.auth.identity import PlatformClaims
from backend.campusops.auth.passwords import hash_password, verify_password
from backend.campusops.auth.platform import (
    PLATFORM_PERMISSIONS,
    assert_platform_admin_can,
    get_platform_role_permissions,
)
from backend.campusops.auth.tokens import sign_platform_auth_token
from backend.campusops.config import Settings
from backend.campusops.db.models import AuditLog, Organization, PlatformAdmin, PlatformAdminRole, User
from backend.campusops.errors import BadRequest, Conflict, InvalidToken, NotFound
from backend.campusops.middleware.ratelimit import enforce_rate_limit
from backend.campusops.models.auth import LoginRequest
from backend.campusops.models.platform import (
    OrganizationSummary,
    PlatformAdminResponse,
    PlatformAuditLogResponse,
    PlatformLoginResponse,
    PlatformSetupRequest,
    UpdateOrganizationRequest,
)
from backend.campusops.models.users import AuditLogResponse, UserResponse
from backend.campusops.services.platform_audit import (
    PlatformAuditAction,
    query_platform_audit_logs,
    record_platform_audit,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/platform", tags=["platform"])


def _admin_response(admin_id: uuid.UUID, email: str, role: str) -> PlatformAdminResponse:
    return PlatformAdminResponse(
        admin_id=admin_id,
        email=email,
        role=role,
        permissions=list(get_platform_role_permissions(role)),
    )


def _login_response(admin: PlatformAdmin, settings: Settings) -> PlatformLoginResponse:
    token = sign_platform_auth_token(PlatformClaims(admin_id=admin.id, email=admin.email), settings)
    return PlatformLoginResponse(
        token=token, admin=_admin_response(admin.id, admin.email, admin.role)
    )


@router.post(
    "/auth/setup",
    response_model=PlatformLoginResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def setup(
    body: PlatformSetupRequest, request: Request, settings: AppSettings, db: UnscopedDB
) -> PlatformLoginResponse:
    """Create the first platform super admin. Rejected once any admin exists."""
    if await db.count(PlatformAdmin) > 0:
        raise Conflict("Platform setup has already been completed")
    if len(body.password) < settings.min_password_length:
        raise BadRequest(f"Password must be at least {settings.min_password_length} characters")

    admin = await db.create(
        PlatformAdmin,
        email=body.email.strip().lower(),
        name=body.name,
        password_hash=hash_password(body.password),
        role=PlatformAdminRole.super_admin.value,
    )
    logger.info("Platform setup completed", extra={"structured": {"admin_id": str(admin.id)}})
    await record_platform_audit(
        db, admin_id=admin.id, action=PlatformAuditAction.SETUP, ip_address=client_ip(request)
    )
    return _login_response(admin, settings)


@router.post(
    "/auth/login",
    response_model=PlatformLoginResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def login(
    body: LoginRequest, request: Request, settings: AppSettings, db: UnscopedDB
) -> PlatformLoginResponse:
    admin = await db.find_first(PlatformAdmin, PlatformAdmin.email == body.email.strip().lower())
    if admin is None or not verify_password(body.password, admin.password_hash):
        raise InvalidToken("Invalid email or password")
    await record_platform_audit(
        db, admin_id=admin.id, action=PlatformAuditAction.LOGIN, ip_address=client_ip(request)
    )
    return _login_response(admin, settings)


@router.get("/auth/me", response_model=PlatformAdminResponse)
async def me(admin: PlatformAdminUser) -> PlatformAdminResponse:
    return _admin_response(admin.admin_id, admin.email, admin.role)


@router.get("/organizations", response_model=list[OrganizationSummary])
async def list_organizations(admin: PlatformAdminUser, db: UnscopedDB) -> list[OrganizationSummary]:
    assert_platform_admin_can(admin.role, PLATFORM_PERMISSIONS.ORGANIZATIONS_READ)

    summaries = []
    for org in await db.find_many(Organization, order_by=(Organization.created_at,)):
        summary = OrganizationSummary.model_validate(org)
        summary.user_count = await db.count(
            User, User.organization_id == org.id, User.deleted_at.is_(None)
        )
        summaries.append(summary)
    return summaries


def _required_permissions(body: UpdateOrganizationRequest) -> list[str]:
    required = []
    if body.suspended is not None:
        required.append(PLATFORM_PERMISSIONS.ORGANIZATIONS_SUSPEND)
    if body.name is not None:
        required.append(PLATFORM_PERMISSIONS.ORGANIZATIONS_UPDATE)
    return required


def _organization_action(body: UpdateOrganizationRequest) -> str:
    if body.suspended is None:
        return PlatformAuditAction.ORGANIZATION_UPDATE
    if body.suspended:
        return PlatformAuditAction.ORGANIZATION_SUSPEND
    return PlatformAuditAction.ORGANIZATION_UNSUSPEND


@router.patch("/organizations/{organization_id}", response_model=OrganizationSummary)
async def update_organization(
    organization_id: uuid.UUID,
    body: UpdateOrganizationRequest,
    request: Request,
    admin: PlatformAdminUser,
    db: UnscopedDB,
) -> OrganizationSummary:
    """Rename, suspend or unsuspend an organization.

    Suspension needs its own permission; operators may rename but not suspend.
    """
    required = _required_permissions(body)
    if not required:
        raise BadRequest("No changes")
    for permission in required:
        assert_platform_admin_can(admin.role, permission)

    if await db.get(Organization, organization_id) is None:
        raise NotFound("Organization not found")

    changes = body.model_dump(exclude_none=True)
    await db.update(Organization, Organization.id == organization_id, values=changes)
    logger.info(
        "Platform admin action",
        extra={
            "structured": {
                "admin_id": str(admin.admin_id),
                "organization_id": str(organization_id),
                "changes": changes,
            }
        },
    )
    await record_platform_audit(
        db,
        admin_id=admin.admin_id,
        action=_organization_action(body),
        resource_type="organization",
        resource_id=organization_id,
        details=changes,
        ip_address=client_ip(request),
    )

    org = await db.get(Organization, organization_id)
    return OrganizationSummary.model_validate(org)


@router.get("/organizations/{organization_id}/users", response_model=list[UserResponse])
async def list_organization_users(
    organization_id: uuid.UUID, admin: PlatformAdminUser, db: UnscopedDB
) -> list[UserResponse]:
    assert_platform_admin_can(admin.role, PLATFORM_PERMISSIONS.USERS_READ)
    if await db.get(Organization, organization_id) is None:
        raise NotFound("Organization not found")

    users = await db.find_many(
        User,
        User.organization_id == organization_id,
        User.deleted_at.is_(None),
        order_by=(User.email,),
    )
    return [UserResponse.model_validate(u) for u in users]


@router.get("/audit-logs", response_model=list[AuditLogResponse])
async def list_audit_logs(
    admin: PlatformAdminUser,
    db: UnscopedDB,
    organization_id: uuid.UUID | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[AuditLogResponse]:
    """Audit entries across organizations, optionally for one."""
    assert_platform_admin_can(admin.role, PLATFORM_PERMISSIONS.AUDIT_LOGS_READ)

    where = [AuditLog.organization_id == organization_id] if organization_id else []
    logs = await db.find_many(
        AuditLog, *where, order_by=(AuditLog.created_at.desc(),), limit=limit
    )
    return [AuditLogResponse.model_validate(entry) for entry in logs]


@router.get("/platform-audit-logs", response_model=list[PlatformAuditLogResponse])
async def list_platform_audit_logs(
    admin: PlatformAdminUser,
    db: UnscopedDB,
    admin_id: uuid.UUID | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[PlatformAuditLogResponse]:
    """Platform-admin actions, newest first."""
    assert_platform_admin_can(admin.role, PLATFORM_PERMISSIONS.AUDIT_LOGS_READ)

    logs = await query_platform_audit_logs(
        db, admin_id=admin_id, action=action, resource_type=resource_type, limit=limit
    )
    return [PlatformAuditLogResponse.model_validate(entry) for entry in logs]
