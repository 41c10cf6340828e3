"""Buildings and rooms."""

import uuid

from fastapi import APIRouter, Request, status

from backend.campusops.api.auth import OrgUser, RequestOrg, Resolver, ScopedDB, client_ip
from backend.campusops.auth.permissions import PERMISSIONS
from backend.campusops.db.models import Building, Room
from backend.campusops.db.scoped import ScopedDatabase
from backend.campusops.errors import NotFound
from backend.campusops.models.campus import (
    BuildingCreate,
    BuildingResponse,
    RoomCreate,
    RoomResponse,
)
from backend.campusops.services.audit import AuditAction, record_audit
from backend.campusops.tenancy.context import organization_context

router = APIRouter(prefix="/buildings", tags=["campus"])


@router.get("", response_model=list[BuildingResponse])
async def list_buildings(
    scope: RequestOrg, db: ScopedDB, resolver: Resolver
) -> list[BuildingResponse]:
    """List buildings of the request's organization.

    Reachable with a bearer token, or with ``x-org-id`` alone when the
    header fallback is enabled.
    """
    with organization_context(scope.organization_id):
        if scope.caller is not None:
            await resolver.assert_can(scope.caller.user_id, PERMISSIONS.CAMPUS_READ)
        buildings = await db.find_many(Building, order_by=(Building.name,))

    return [BuildingResponse.model_validate(b) for b in buildings]


@router.post("", response_model=BuildingResponse, status_code=status.HTTP_201_CREATED)
async def create_building(
    body: BuildingCreate,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> BuildingResponse:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.CAMPUS_MANAGE)
        building = await db.create(Building, name=body.name, code=body.code)
        await record_audit(
            db,
            action=AuditAction.BUILDING_CREATE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="building",
            resource_id=building.id,
            resource_label=building.name,
            ip_address=client_ip(request),
        )

    return BuildingResponse.model_validate(building)


async def _visible_building(db: ScopedDatabase, building_id: uuid.UUID) -> Building:
    building = await db.get(Building, building_id)
    if building is None:
        raise NotFound("Building not found")
    return building


@router.get("/{building_id}/rooms", response_model=list[RoomResponse])
async def list_rooms(
    building_id: uuid.UUID, caller: OrgUser, db: ScopedDB, resolver: Resolver
) -> list[RoomResponse]:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.CAMPUS_READ)
        await _visible_building(db, building_id)
        rooms = await db.find_many(Room, Room.building_id == building_id, order_by=(Room.name,))

    return [RoomResponse.model_validate(r) for r in rooms]


@router.post(
    "/{building_id}/rooms", response_model=RoomResponse, status_code=status.HTTP_201_CREATED
)
async def create_room(
    building_id: uuid.UUID,
    body: RoomCreate,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> RoomResponse:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.CAMPUS_MANAGE)
        await _visible_building(db, building_id)
        room = await db.create(
            Room,
            building_id=building_id,
            name=body.name,
            floor=body.floor,
            capacity=body.capacity,
        )

    return RoomResponse.model_validate(room)
