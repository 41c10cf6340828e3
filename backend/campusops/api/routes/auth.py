"""Org-user credential endpoints: login and password setup."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from backend.campusops.api.auth import (
    AppSettings,
    ScopedDB,
    UnscopedDB,
    client_ip,
    ensure_organization,
    load_org_user,
)
from backend.campusops.auth.identity import OrgClaims
from backend.campusops.auth.passwords import verify_password
from backend.campusops.auth.setup_tokens import redeem_setup_token, validate_setup_token
from backend.campusops.auth.tokens import sign_auth_token
from backend.campusops.db.models import User, UserStatus
from backend.campusops.errors import InvalidSetupToken, InvalidToken, TokenExpired, TokenUsed
from backend.campusops.middleware.ratelimit import enforce_rate_limit
from backend.campusops.models.auth import (
    LoginRequest,
    LoginResponse,
    SetPasswordRequest,
    SetPasswordResponse,
    SetupTokenValidation,
)
from backend.campusops.services.audit import AuditAction, record_audit
from backend.campusops.tenancy.context import organization_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(enforce_rate_limit)])


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    request: Request,
    settings: AppSettings,
    unscoped: UnscopedDB,
    scoped: ScopedDB,
) -> LoginResponse:
    """Exchange email and password for an org-user token.

    Unknown email, wrong password and not-yet-activated accounts all fail
    the same way.
    """
    user = await unscoped.find_first(
        User, User.email == body.email.strip().lower(), User.deleted_at.is_(None)
    )
    if (
        user is None
        or user.status != UserStatus.active.value
        or not verify_password(body.password, user.password_hash)
    ):
        raise InvalidToken("Invalid email or password")

    await ensure_organization(unscoped, user.organization_id)

    claims = OrgClaims(user_id=user.id, organization_id=user.organization_id, email=user.email)
    identity = await load_org_user(unscoped, claims)
    token = sign_auth_token(claims, settings)

    with organization_context(user.organization_id):
        await record_audit(
            scoped,
            action=AuditAction.USER_LOGIN,
            user_id=user.id,
            user_email=user.email,
            resource_type="user",
            resource_id=user.id,
            ip_address=client_ip(request),
        )

    return LoginResponse(
        token=token,
        user_id=identity.user_id,
        organization_id=identity.organization_id,
        email=identity.email,
        role=identity.role,
    )


@router.get("/set-password/validate", response_model=SetupTokenValidation)
async def validate_set_password_token(
    token: Annotated[str, Query(min_length=1)],
    unscoped: UnscopedDB,
) -> SetupTokenValidation:
    """Report whether a setup link can still be used."""
    try:
        validated = await validate_setup_token(unscoped, token)
    except (InvalidSetupToken, TokenUsed, TokenExpired) as e:
        return SetupTokenValidation(valid=False, reason=e.code)

    return SetupTokenValidation(valid=True, email=validated.user.email)


@router.post("/set-password", response_model=SetPasswordResponse)
async def set_password(
    body: SetPasswordRequest,
    request: Request,
    settings: AppSettings,
    unscoped: UnscopedDB,
    scoped: ScopedDB,
) -> SetPasswordResponse:
    """Redeem a setup link: set the password and activate the account."""
    user = await redeem_setup_token(unscoped, body.token, body.password, settings)

    with organization_context(user.organization_id):
        await record_audit(
            scoped,
            action=AuditAction.USER_SET_PASSWORD,
            user_id=user.id,
            user_email=user.email,
            resource_type="user",
            resource_id=user.id,
            ip_address=client_ip(request),
        )

    return SetPasswordResponse(success=True, email=user.email)
