"""Credential exchange contracts."""

import uuid

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Request body for POST /auth/login and POST /platform/auth/login."""

    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    token: str
    user_id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: str | None


class SetupTokenValidation(BaseModel):
    """Outcome of GET /auth/set-password/validate.

    Only the coarse reason is exposed; a rejected token never reveals
    whether it ever existed.
    """

    valid: bool
    reason: str | None = None
    email: str | None = None


class SetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SetPasswordResponse(BaseModel):
    success: bool
    email: str
