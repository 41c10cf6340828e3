"""User, role and organization contracts for org-user routes."""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SLUG_PATTERN = r"^[a-z0-9][a-z0-9-]*$"


class MeResponse(BaseModel):
    """Response for GET /user/me."""

    user_id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    name: str | None
    role: str | None
    permissions: list[str]


class CanSubmitEventsResponse(BaseModel):
    can_submit: bool
    authenticated: bool


class OrganizationSettingsResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    settings: dict[str, Any]


class UpdateOrganizationSettingsRequest(BaseModel):
    name: str | None = Field(None, min_length=1)
    settings: dict[str, Any] | None = None


class UserResponse(BaseModel):
    """One org user as listed under /settings/users."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str | None
    status: str
    role: str | None = None
    created_at: datetime


class UserDetailResponse(UserResponse):
    team_ids: list[uuid.UUID] = []


class UpdateUserRequest(BaseModel):
    """Partial update; role and team changes need ``users:manage:roles``."""

    name: str | None = None
    role: str | None = Field(None, min_length=1)
    team_ids: list[uuid.UUID] | None = None

    @field_validator("role", "team_ids")
    @classmethod
    def _not_null(cls, value: object) -> object:
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class InviteUserRequest(BaseModel):
    email: str = Field(..., min_length=3)
    name: str | None = None
    role: str = "member"


class InviteUserResponse(BaseModel):
    """The setup link is returned to the inviting admin to deliver."""

    user: UserResponse
    setup_link: str
    expires_at: datetime


class AssignRoleRequest(BaseModel):
    role: str = Field(..., min_length=1)


class PermissionOverride(BaseModel):
    """``granted=True`` adds the permission, ``False`` revokes it."""

    permission: str = Field(..., min_length=3)
    granted: bool


class UpdatePermissionsRequest(BaseModel):
    overrides: list[PermissionOverride]


class UserPermissionsResponse(BaseModel):
    user_id: uuid.UUID
    overrides: list[PermissionOverride]
    effective: list[str]


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID | None
    user_email: str | None
    action: str
    resource_type: str | None
    resource_id: str | None
    resource_label: str | None
    changes: dict[str, Any] | None
    created_at: datetime


class PermissionStatus(BaseModel):
    """One catalog permission as it applies to a user.

    ``inherited`` comes from the role, ``granted`` and ``revoked`` are
    per-user overrides, ``none`` is not held at all.
    """

    permission: str
    description: str | None
    status: Literal["inherited", "granted", "revoked", "none"]
    enabled: bool


class UserPermissionStatusResponse(BaseModel):
    user_id: uuid.UUID
    email: str
    role: str | None
    permissions: list[PermissionStatus]


class RoleResponse(BaseModel):
    id: uuid.UUID
    slug: str
    name: str
    description: str | None
    is_system: bool
    permissions: list[str]
    user_count: int


class CreateRoleRequest(BaseModel):
    slug: str = Field(..., pattern=SLUG_PATTERN)
    name: str = Field(..., min_length=1)
    description: str | None = None
    permissions: list[str] = []


class TeamResponse(BaseModel):
    id: uuid.UUID
    slug: str
    name: str
    member_count: int


class CreateTeamRequest(BaseModel):
    slug: str = Field(..., pattern=SLUG_PATTERN)
    name: str = Field(..., min_length=1)
