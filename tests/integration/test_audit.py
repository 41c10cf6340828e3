"""Tests for audit trail recording."""

import logging
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from backend.campusops.config import Settings
from backend.campusops.db.models import AuditLog
from backend.campusops.db.scoped import ScopedDatabase, UnscopedDatabase
from backend.campusops.services.audit import AuditAction, record_audit
from backend.campusops.tenancy.context import organization_context
from tests.helpers import Tenant, auth_headers


@pytest.mark.asyncio
async def test_audit_row_is_stamped_with_current_org(
    scoped: ScopedDatabase, tenant_a: Tenant, tenant_b: Tenant
) -> None:
    with organization_context(tenant_a.org.id):
        entry = await record_audit(
            scoped,
            action=AuditAction.SETTINGS_UPDATE,
            user_id=tenant_a.admin.id,
            resource_id=tenant_a.org.id,
            changes={"name": "North"},
        )

    assert entry is not None
    assert entry.organization_id == tenant_a.org.id
    assert entry.resource_id == str(tenant_a.org.id)

    with organization_context(tenant_b.org.id):
        assert await scoped.count(AuditLog) == 0


@pytest.mark.asyncio
async def test_audit_failure_is_logged_not_raised(
    scoped: ScopedDatabase, tenant_a: Tenant, caplog: pytest.LogCaptureFixture
) -> None:
    """Test a failed audit write doesn't fail the audited operation."""
    scoped.create = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk full")))  # type: ignore[method-assign]

    with caplog.at_level(logging.ERROR, logger="backend.campusops.services.audit"):
        with organization_context(tenant_a.org.id):
            entry = await record_audit(scoped, action=AuditAction.USER_LOGIN)

    assert entry is None
    assert "Failed to write audit log" in caplog.text


@pytest.mark.asyncio
async def test_audit_log_endpoint_lists_only_own_org(
    client: AsyncClient,
    unscoped: UnscopedDatabase,
    settings: Settings,
    tenant_a: Tenant,
    tenant_b: Tenant,
) -> None:
    await client.post(
        "/buildings", json={"name": "North Gym"}, headers=auth_headers(settings, tenant_a.admin)
    )
    await client.post(
        "/buildings", json={"name": "South Gym"}, headers=auth_headers(settings, tenant_b.admin)
    )

    response = await client.get(
        "/settings/audit-logs", headers=auth_headers(settings, tenant_a.admin)
    )

    assert response.status_code == 200
    entries = response.json()
    assert [e["resource_label"] for e in entries] == ["North Gym"]
    assert entries[0]["action"] == "building.create"
    assert await unscoped.count(AuditLog) == 2


@pytest.mark.asyncio
async def test_member_cannot_read_audit_log(
    client: AsyncClient, settings: Settings, tenant_a: Tenant
) -> None:
    response = await client.get(
        "/settings/audit-logs", headers=auth_headers(settings, tenant_a.member)
    )

    assert response.status_code == 403
