"""Maintenance tickets with own / team / all scoped access."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Query, Request, Response, status
from sqlalchemy import ColumnElement, or_

from backend.campusops.api.auth import OrgUser, Resolver, ScopedDB, client_ip
from backend.campusops.auth.identity import OrgUserIdentity
from backend.campusops.auth.permissions import PERMISSIONS
from backend.campusops.auth.resolver import PermissionResolver
from backend.campusops.db.models import Room, Team, Ticket, TicketStatus, User
from backend.campusops.db.scoped import ScopedDatabase
from backend.campusops.errors import BadRequest, NotFound
from backend.campusops.models.campus import TicketCreate, TicketResponse, TicketUpdate
from backend.campusops.services.audit import AuditAction, record_audit
from backend.campusops.tenancy.context import organization_context

router = APIRouter(prefix="/tickets", tags=["tickets"])


async def _visibility_filter(
    resolver: PermissionResolver, caller: OrgUserIdentity
) -> list[ColumnElement[bool]]:
    """Extra filters narrowing a ticket listing to what the caller may read."""
    if await resolver.can(caller.user_id, PERMISSIONS.TICKETS_READ_ALL):
        return []

    if await resolver.can(caller.user_id, PERMISSIONS.TICKETS_READ_TEAM):
        team_ids = await resolver.get_user_team_ids(caller.user_id)
        return [or_(Ticket.created_by_id == caller.user_id, Ticket.team_id.in_(list(team_ids)))]

    await resolver.assert_can(caller.user_id, PERMISSIONS.TICKETS_READ_OWN)
    return [Ticket.created_by_id == caller.user_id]


async def _visible_ticket(db: ScopedDatabase, ticket_id: uuid.UUID) -> Ticket:
    ticket = await db.get(Ticket, ticket_id)
    if ticket is None:
        raise NotFound("Ticket not found")
    return ticket


def _ticket_teams(ticket: Ticket) -> list[uuid.UUID]:
    return [ticket.team_id] if ticket.team_id is not None else []


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
    ticket_status: Annotated[TicketStatus | None, Query(alias="status")] = None,
) -> list[TicketResponse]:
    with organization_context(caller.organization_id):
        where = await _visibility_filter(resolver, caller)
        if ticket_status is not None:
            where.append(Ticket.status == ticket_status.value)
        tickets = await db.find_many(Ticket, *where, order_by=(Ticket.created_at.desc(),))

    return [TicketResponse.model_validate(t) for t in tickets]


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    body: TicketCreate,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> TicketResponse:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.TICKETS_CREATE)

        # Referenced records must be visible in this organization
        if body.room_id is not None and await db.get(Room, body.room_id) is None:
            raise BadRequest("Unknown room")
        if body.team_id is not None and await db.get(Team, body.team_id) is None:
            raise BadRequest("Unknown team")

        ticket = await db.create(
            Ticket,
            title=body.title,
            description=body.description,
            priority=body.priority,
            room_id=body.room_id,
            team_id=body.team_id,
            created_by_id=caller.user_id,
        )
        await record_audit(
            db,
            action=AuditAction.TICKET_CREATE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="ticket",
            resource_id=ticket.id,
            resource_label=ticket.title,
            ip_address=client_ip(request),
        )

    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: uuid.UUID, caller: OrgUser, db: ScopedDB, resolver: Resolver
) -> TicketResponse:
    with organization_context(caller.organization_id):
        ticket = await _visible_ticket(db, ticket_id)
        await resolver.assert_can_access_resource(
            caller.user_id, "tickets:read", ticket.created_by_id, _ticket_teams(ticket)
        )

    return TicketResponse.model_validate(ticket)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: uuid.UUID,
    body: TicketUpdate,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> TicketResponse:
    changes = body.model_dump(exclude_unset=True, mode="json")
    if not changes:
        raise BadRequest("No changes")

    with organization_context(caller.organization_id):
        ticket = await _visible_ticket(db, ticket_id)
        await resolver.assert_can_access_resource(
            caller.user_id, "tickets:update", ticket.created_by_id, _ticket_teams(ticket)
        )

        if "assigned_to_id" in changes:
            await resolver.assert_can(caller.user_id, PERMISSIONS.TICKETS_ASSIGN)
            if body.assigned_to_id is not None and await db.get(User, body.assigned_to_id) is None:
                raise BadRequest("Unknown assignee")

        values = {**changes}
        if "assigned_to_id" in values:
            values["assigned_to_id"] = body.assigned_to_id
        await db.update(Ticket, Ticket.id == ticket.id, values=values)
        await record_audit(
            db,
            action=AuditAction.TICKET_UPDATE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="ticket",
            resource_id=ticket.id,
            resource_label=ticket.title,
            changes=changes,
            ip_address=client_ip(request),
        )
        ticket = await _visible_ticket(db, ticket_id)

    return TicketResponse.model_validate(ticket)


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(
    ticket_id: uuid.UUID,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> Response:
    """Soft-delete a ticket."""
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.TICKETS_DELETE)
        ticket = await _visible_ticket(db, ticket_id)
        await db.delete(Ticket, Ticket.id == ticket.id)
        await record_audit(
            db,
            action=AuditAction.TICKET_DELETE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="ticket",
            resource_id=ticket.id,
            resource_label=ticket.title,
            ip_address=client_ip(request),
        )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
