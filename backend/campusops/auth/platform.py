"""Platform-level permissions for SaaS operators.

Completely separate from org-scoped permissions: platform roles are fixed in
code and never stored per organization.
"""

import logging
from typing import Final

from backend.campusops.db.models import PlatformAdminRole
from backend.campusops.errors import InsufficientPermissions
from backend.campusops.utils.metrics import tenancy_metrics

logger = logging.getLogger(__name__)


class PLATFORM_PERMISSIONS:
    """Platform permission keys."""

    ORGANIZATIONS_READ = "platform:organizations:read"
    ORGANIZATIONS_UPDATE = "platform:organizations:update"
    ORGANIZATIONS_SUSPEND = "platform:organizations:suspend"
    USERS_READ = "platform:users:read"
    AUDIT_LOGS_READ = "platform:audit-logs:read"
    ADMINS_MANAGE = "platform:admins:manage"
    ALL = "platform:*"


ROLE_PERMISSIONS: Final[dict[str, tuple[str, ...]]] = {
    PlatformAdminRole.super_admin.value: (PLATFORM_PERMISSIONS.ALL,),
    PlatformAdminRole.operator.value: (
        PLATFORM_PERMISSIONS.ORGANIZATIONS_READ,
        PLATFORM_PERMISSIONS.ORGANIZATIONS_UPDATE,
        PLATFORM_PERMISSIONS.USERS_READ,
        PLATFORM_PERMISSIONS.AUDIT_LOGS_READ,
    ),
}


def get_platform_role_permissions(role: str) -> tuple[str, ...]:
    """Permissions granted to a platform role (empty for unknown roles)."""
    return ROLE_PERMISSIONS.get(role, ())


def platform_admin_can(role: str, permission: str) -> bool:
    """Whether a platform role holds ``permission``."""
    return any(
        p == PLATFORM_PERMISSIONS.ALL or p == permission
        for p in get_platform_role_permissions(role)
    )


def assert_platform_admin_can(role: str, permission: str) -> None:
    """Raise unless the platform role holds ``permission``.

    Raises:
        InsufficientPermissions: Carrying the denied key
    """
    if not platform_admin_can(role, permission):
        logger.warning(
            "Platform permission denied",
            extra={"structured": {"role": role, "permission": permission}},
        )
        tenancy_metrics.record_denial("insufficient_permissions")
        raise InsufficientPermissions(permission, f"Insufficient platform permissions: {permission}")
