"""Models package - re-exports for convenience."""

from backend.campusops.models.auth import (
    LoginRequest,
    LoginResponse,
    SetPasswordRequest,
    SetPasswordResponse,
    SetupTokenValidation,
)
from backend.campusops.models.campus import (
    BuildingCreate,
    BuildingResponse,
    EventCreate,
    EventResponse,
    RoomCreate,
    RoomResponse,
    TicketCreate,
    TicketResponse,
    TicketUpdate,
)
from backend.campusops.models.platform import (
    OrganizationSummary,
    PlatformAdminResponse,
    PlatformLoginResponse,
    PlatformSetupRequest,
    UpdateOrganizationRequest,
)
from backend.campusops.models.users import (
    AssignRoleRequest,
    AuditLogResponse,
    CanSubmitEventsResponse,
    InviteUserRequest,
    InviteUserResponse,
    MeResponse,
    OrganizationSettingsResponse,
    PermissionOverride,
    UpdateOrganizationSettingsRequest,
    UpdatePermissionsRequest,
    UserPermissionsResponse,
    UserResponse,
)

__all__ = [
    # Auth
    "LoginRequest",
    "LoginResponse",
    "SetupTokenValidation",
    "SetPasswordRequest",
    "SetPasswordResponse",
    # Campus
    "BuildingCreate",
    "BuildingResponse",
    "RoomCreate",
    "RoomResponse",
    "TicketCreate",
    "TicketUpdate",
    "TicketResponse",
    "EventCreate",
    "EventResponse",
    # Users
    "MeResponse",
    "CanSubmitEventsResponse",
    "OrganizationSettingsResponse",
    "UpdateOrganizationSettingsRequest",
    "UserResponse",
    "InviteUserRequest",
    "InviteUserResponse",
    "AssignRoleRequest",
    "PermissionOverride",
    "UpdatePermissionsRequest",
    "UserPermissionsResponse",
    "AuditLogResponse",
    # Platform
    "PlatformSetupRequest",
    "PlatformAdminResponse",
    "PlatformLoginResponse",
    "OrganizationSummary",
    "UpdateOrganizationRequest",
]
