"""Caller identities.

Org users and platform admins are two disjoint variants tagged by ``kind``.
Code that needs one variant declares it by type; a value of the other variant
never validates into it.
"""

import uuid
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class OrgClaims(BaseModel):
    """Verified claims of an org-user token."""

    model_config = ConfigDict(frozen=True)

    user_id: uuid.UUID
    organization_id: uuid.UUID
    email: str


class PlatformClaims(BaseModel):
    """Verified claims of a platform-admin token (no organization)."""

    model_config = ConfigDict(frozen=True)

    admin_id: uuid.UUID
    email: str


class OrgUserIdentity(BaseModel):
    """Authenticated member of one organization."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["org_user"] = "org_user"
    user_id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: str | None = None


class PlatformAdminIdentity(BaseModel):
    """Authenticated SaaS operator; operates above organization scope."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["platform_admin"] = "platform_admin"
    admin_id: uuid.UUID
    email: str
    role: str


CallerIdentity = Annotated[
    OrgUserIdentity | PlatformAdminIdentity, Field(discriminator="kind")
]
