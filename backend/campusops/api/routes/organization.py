"""Settings of the caller's own organization."""

from fastapi import APIRouter, Request

from backend.campusops.api.auth import OrgUser, Resolver, ScopedDB, client_ip
from backend.campusops.auth.permissions import PERMISSIONS
from backend.campusops.db.models import Organization
from backend.campusops.errors import NotFound
from backend.campusops.models.users import (
    OrganizationSettingsResponse,
    UpdateOrganizationSettingsRequest,
)
from backend.campusops.services.audit import AuditAction, record_audit
from backend.campusops.tenancy.context import organization_context

router = APIRouter(prefix="/organization", tags=["organization"])


def _to_response(org: Organization) -> OrganizationSettingsResponse:
    return OrganizationSettingsResponse(
        id=org.id, name=org.name, slug=org.slug, settings=org.settings or {}
    )


@router.get("/settings", response_model=OrganizationSettingsResponse)
async def get_settings(caller: OrgUser, db: ScopedDB, resolver: Resolver) -> OrganizationSettingsResponse:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.SETTINGS_READ)
        # Organization is scoped on its own id: this can only be the caller's
        org = await db.find_first(Organization)
        if org is None:
            raise NotFound("Organization not found")

    return _to_response(org)


@router.patch("/settings", response_model=OrganizationSettingsResponse)
async def update_settings(
    body: UpdateOrganizationSettingsRequest,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> OrganizationSettingsResponse:
    """Rename the organization and/or merge keys into its settings."""
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.SETTINGS_MANAGE)

        org = await db.find_first(Organization)
        if org is None:
            raise NotFound("Organization not found")

        values: dict = {}
        if body.name is not None:
            values["name"] = body.name
        if body.settings is not None:
            values["settings"] = {**(org.settings or {}), **body.settings}

        if values:
            await db.update(Organization, values=values)
            await record_audit(
                db,
                action=AuditAction.SETTINGS_UPDATE,
                user_id=caller.user_id,
                user_email=caller.email,
                resource_type="organization",
                resource_id=org.id,
                resource_label=org.name,
                changes=body.model_dump(exclude_none=True),
                ip_address=client_ip(request),
            )
            org = await db.find_first(Organization)

    return _to_response(org)
