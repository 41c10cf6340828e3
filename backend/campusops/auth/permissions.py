"""Permission keys, default roles, and grant matching.

Format: ``resource:action[:scope]``

- resource: what entity (tickets, events, settings, ...)
- action: what operation (create, read, update, delete, manage, ...)
- scope: who it covers (own, team, all); omitted means not narrowed

``*`` is a wildcard in the resource or action position; ``*:*`` grants
everything.
"""

from dataclasses import dataclass
from typing import Final

GLOBAL_SCOPE: Final = "global"


@dataclass(frozen=True)
class PermissionGrant:
    """One allowed operation on one resource type, optionally narrowed by scope."""

    resource: str
    action: str
    scope: str | None = None

    def __str__(self) -> str:
        return format_permission(self.resource, self.action, self.scope)


def parse_permission(permission: str) -> PermissionGrant:
    """Split a permission key into its parts."""
    parts = permission.split(":")
    resource = parts[0] if len(parts) > 0 else ""
    action = parts[1] if len(parts) > 1 else ""
    scope = parts[2] if len(parts) > 2 and parts[2] else None
    return PermissionGrant(resource=resource, action=action, scope=scope)


def format_permission(resource: str, action: str, scope: str | None = None) -> str:
    """Render a permission key; the catalog's ``global`` scope is omitted."""
    if not scope or scope == GLOBAL_SCOPE:
        return f"{resource}:{action}"
    return f"{resource}:{action}:{scope}"


def matches_permission(granted: str, required: str) -> bool:
    """Whether a held permission satisfies a required one.

    Args:
        granted: Permission the user holds (may contain wildcards)
        required: Permission being checked

    Returns:
        True if ``granted`` covers ``required``
    """
    if granted == "*:*":
        return True

    have = parse_permission(granted)
    need = parse_permission(required)

    if have.resource != "*" and have.resource != need.resource:
        return False
    if have.action != "*" and have.action != need.action:
        return False

    if need.scope:
        # "all" covers own/team; otherwise scopes must match exactly
        if have.scope == "all":
            return True
        if have.scope != need.scope:
            return False

    return True


class PERMISSIONS:
    """Permission keys checked by route handlers."""

    # Tickets
    TICKETS_CREATE = "tickets:create"
    TICKETS_READ_OWN = "tickets:read:own"
    TICKETS_READ_TEAM = "tickets:read:team"
    TICKETS_READ_ALL = "tickets:read:all"
    TICKETS_UPDATE_OWN = "tickets:update:own"
    TICKETS_UPDATE_TEAM = "tickets:update:team"
    TICKETS_UPDATE_ALL = "tickets:update:all"
    TICKETS_DELETE = "tickets:delete"
    TICKETS_ASSIGN = "tickets:assign"

    # Events
    EVENTS_CREATE = "events:create"
    EVENTS_READ = "events:read"
    EVENTS_UPDATE_OWN = "events:update:own"
    EVENTS_UPDATE_ALL = "events:update:all"
    EVENTS_DELETE = "events:delete"
    EVENTS_APPROVE = "events:approve"

    # Campus
    CAMPUS_READ = "campus:read"
    CAMPUS_MANAGE = "campus:manage"

    # Settings
    SETTINGS_READ = "settings:read"
    SETTINGS_MANAGE = "settings:manage"
    SETTINGS_BILLING = "settings:billing"

    # Users
    USERS_READ = "users:read"
    USERS_INVITE = "users:invite"
    USERS_UPDATE = "users:update"
    USERS_DELETE = "users:delete"
    USERS_MANAGE_ROLES = "users:manage:roles"

    # Roles and teams
    ROLES_READ = "roles:read"
    ROLES_MANAGE = "roles:manage"
    TEAMS_READ = "teams:read"
    TEAMS_MANAGE = "teams:manage"

    # Audit
    AUDIT_READ = "audit:read"

    # Wildcard (super admin)
    ALL = "*:*"


@dataclass(frozen=True)
class RoleDefinition:
    slug: str
    name: str
    description: str
    permissions: tuple[str, ...]


SUPER_ADMIN_ROLE: Final = "super-admin"
ADMIN_ROLE: Final = "admin"
MEMBER_ROLE: Final = "member"
VIEWER_ROLE: Final = "viewer"

DEFAULT_ROLES: Final[dict[str, RoleDefinition]] = {
    SUPER_ADMIN_ROLE: RoleDefinition(
        slug=SUPER_ADMIN_ROLE,
        name="Super Admin",
        description="Full system access including billing and user management",
        permissions=(PERMISSIONS.ALL,),
    ),
    ADMIN_ROLE: RoleDefinition(
        slug=ADMIN_ROLE,
        name="Administrator",
        description="Full operational access, can manage users and approve events",
        permissions=(
            PERMISSIONS.TICKETS_CREATE,
            PERMISSIONS.TICKETS_READ_ALL,
            PERMISSIONS.TICKETS_UPDATE_ALL,
            PERMISSIONS.TICKETS_DELETE,
            PERMISSIONS.TICKETS_ASSIGN,
            PERMISSIONS.EVENTS_CREATE,
            PERMISSIONS.EVENTS_READ,
            PERMISSIONS.EVENTS_UPDATE_ALL,
            PERMISSIONS.EVENTS_DELETE,
            PERMISSIONS.EVENTS_APPROVE,
            PERMISSIONS.CAMPUS_READ,
            PERMISSIONS.CAMPUS_MANAGE,
            PERMISSIONS.SETTINGS_READ,
            PERMISSIONS.SETTINGS_MANAGE,
            PERMISSIONS.USERS_READ,
            PERMISSIONS.USERS_INVITE,
            PERMISSIONS.USERS_UPDATE,
            PERMISSIONS.USERS_MANAGE_ROLES,
            PERMISSIONS.ROLES_READ,
            PERMISSIONS.ROLES_MANAGE,
            PERMISSIONS.TEAMS_READ,
            PERMISSIONS.TEAMS_MANAGE,
            PERMISSIONS.AUDIT_READ,
        ),
    ),
    MEMBER_ROLE: RoleDefinition(
        slug=MEMBER_ROLE,
        name="Member",
        description="Standard user with ability to create and manage own tickets",
        permissions=(
            PERMISSIONS.TICKETS_CREATE,
            PERMISSIONS.TICKETS_READ_OWN,
            PERMISSIONS.TICKETS_UPDATE_OWN,
            PERMISSIONS.EVENTS_READ,
            PERMISSIONS.CAMPUS_READ,
            PERMISSIONS.SETTINGS_READ,
        ),
    ),
    VIEWER_ROLE: RoleDefinition(
        slug=VIEWER_ROLE,
        name="Viewer",
        description="Read-only access",
        permissions=(
            PERMISSIONS.TICKETS_READ_OWN,
            PERMISSIONS.EVENTS_READ,
            PERMISSIONS.CAMPUS_READ,
        ),
    ),
}


def grantable_permissions() -> list[str]:
    """Every key declared on ``PERMISSIONS`` except the wildcard."""
    return [
        value
        for name, value in vars(PERMISSIONS).items()
        if name.isupper() and isinstance(value, str) and value != PERMISSIONS.ALL
    ]


def catalog_permissions() -> list[PermissionGrant]:
    """Every declared permission plus anything a default role grants, as catalog rows."""
    keys: dict[str, None] = dict.fromkeys(grantable_permissions())
    for role in DEFAULT_ROLES.values():
        for key in role.permissions:
            keys.setdefault(key, None)
    return [parse_permission(key) for key in keys]


def can_assign_role(actor_role: str | None, target_role: str) -> bool:
    """Role assignment rule.

    Only a super admin may hand out the super admin role; admins and super
    admins may assign every other role.
    """
    if target_role == SUPER_ADMIN_ROLE:
        return actor_role == SUPER_ADMIN_ROLE
    return actor_role in (SUPER_ADMIN_ROLE, ADMIN_ROLE)
