"""Platform-admin contracts."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PlatformSetupRequest(BaseModel):
    """First-run creation of the initial platform super admin."""

    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    name: str | None = None


class PlatformAdminResponse(BaseModel):
    admin_id: uuid.UUID
    email: str
    role: str
    permissions: list[str]


class PlatformLoginResponse(BaseModel):
    token: str
    admin: PlatformAdminResponse


class OrganizationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    slug: str
    suspended: bool
    created_at: datetime
    user_count: int = 0


class UpdateOrganizationRequest(BaseModel):
    name: str | None = Field(None, min_length=1)
    suspended: bool | None = None


class PlatformAuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    platform_admin_id: uuid.UUID
    action: str
    resource_type: str | None
    resource_id: str | None
    details: dict[str, Any] | None
    ip_address: str | None
    created_at: datetime
