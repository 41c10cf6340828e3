"""Audit trail for platform-admin actions.

Platform actions are not organization-scoped, so rows are written through the
unscoped handle.
"""

import logging
import uuid
from typing import Any

from sqlalchemy import ColumnElement
from sqlalchemy.exc import SQLAlchemyError

from backend.campusops.db.models import PlatformAuditLog
from backend.campusops.db.scoped import UnscopedDatabase

logger = logging.getLogger(__name__)


class PlatformAuditAction:
    """Platform audit action names."""

    SETUP = "platform.setup"
    LOGIN = "platform.login"
    ORGANIZATION_UPDATE = "organization.update"
    ORGANIZATION_SUSPEND = "organization.suspend"
    ORGANIZATION_UNSUSPEND = "organization.unsuspend"


async def record_platform_audit(
    db: UnscopedDatabase,
    *,
    admin_id: uuid.UUID,
    action: str,
    resource_type: str | None = None,
    resource_id: uuid.UUID | str | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> PlatformAuditLog | None:
    """Append a platform audit row.

    Like org audit writes, a failure is logged and swallowed so the action
    itself is not reported as failed.
    """
    try:
        return await db.create(
            PlatformAuditLog,
            platform_admin_id=admin_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details,
            ip_address=ip_address,
        )
    except SQLAlchemyError:
        logger.exception(
            "Failed to write platform audit log",
            extra={"structured": {"action": action, "admin_id": str(admin_id)}},
        )
        return None


async def query_platform_audit_logs(
    db: UnscopedDatabase,
    *,
    admin_id: uuid.UUID | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    limit: int = 50,
) -> list[PlatformAuditLog]:
    """Newest-first platform audit rows; ``action`` matches as a substring."""
    where: list[ColumnElement[bool]] = []
    if admin_id is not None:
        where.append(PlatformAuditLog.platform_admin_id == admin_id)
    if action:
        where.append(PlatformAuditLog.action.contains(action))
    if resource_type:
        where.append(PlatformAuditLog.resource_type == resource_type)

    return await db.find_many(
        PlatformAuditLog, *where, order_by=(PlatformAuditLog.created_at.desc(),), limit=limit
    )
