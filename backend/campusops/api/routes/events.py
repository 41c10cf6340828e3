"""Calendar events."""

from fastapi import APIRouter, status

from backend.campusops.api.auth import OrgUser, Resolver, ScopedDB
from backend.campusops.auth.permissions import PERMISSIONS
from backend.campusops.db.models import Event, Room
from backend.campusops.errors import BadRequest
from backend.campusops.models.campus import EventCreate, EventResponse
from backend.campusops.tenancy.context import organization_context

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=list[EventResponse])
async def list_events(caller: OrgUser, db: ScopedDB, resolver: Resolver) -> list[EventResponse]:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.EVENTS_READ)
        events = await db.find_many(Event, order_by=(Event.starts_at,))

    return [EventResponse.model_validate(e) for e in events]


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    body: EventCreate, caller: OrgUser, db: ScopedDB, resolver: Resolver
) -> EventResponse:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.EVENTS_CREATE)
        if body.room_id is not None and await db.get(Room, body.room_id) is None:
            raise BadRequest("Unknown room")

        event = await db.create(
            Event,
            title=body.title,
            starts_at=body.starts_at,
            ends_at=body.ends_at,
            room_id=body.room_id,
            created_by_id=caller.user_id,
        )

    return EventResponse.model_validate(event)
