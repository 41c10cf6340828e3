"""Audit trail for sensitive mutations.

Rows are written through the scoped handle, so they are stamped with the
organization of the request that performed the change.
"""

import logging
import uuid
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from backend.campusops.db.models import AuditLog
from backend.campusops.db.scoped import ScopedDatabase

logger = logging.getLogger(__name__)


class AuditAction:
    """Audit action names."""

    USER_LOGIN = "user.login"
    USER_INVITE = "user.invite"
    USER_UPDATE = "user.update"
    USER_DELETE = "user.delete"
    USER_SET_PASSWORD = "user.set_password"
    ROLE_ASSIGN = "role.assign"
    ROLE_CREATE = "role.create"
    ROLE_DELETE = "role.delete"
    TEAM_CREATE = "team.create"
    TEAM_DELETE = "team.delete"
    PERMISSIONS_UPDATE = "permissions.update"
    TICKET_CREATE = "ticket.create"
    TICKET_UPDATE = "ticket.update"
    TICKET_DELETE = "ticket.delete"
    BUILDING_CREATE = "building.create"
    SETTINGS_UPDATE = "settings.update"


async def record_audit(
    db: ScopedDatabase,
    *,
    action: str,
    user_id: uuid.UUID | None = None,
    user_email: str | None = None,
    resource_type: str | None = None,
    resource_id: uuid.UUID | str | None = None,
    resource_label: str | None = None,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> AuditLog | None:
    """Append an audit row for the current organization.

    A failed write is logged and swallowed: the mutation being audited has
    already committed and must not be reported as failed.

    Returns:
        The stored row, or None if the write failed
    """
    try:
        return await db.create(
            AuditLog,
            user_id=user_id,
            user_email=user_email,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            resource_label=resource_label,
            changes=changes,
            ip_address=ip_address,
        )
    except SQLAlchemyError:
        logger.exception(
            "Failed to write audit log",
            extra={"structured": {"action": action, "resource_type": resource_type}},
        )
        return None
