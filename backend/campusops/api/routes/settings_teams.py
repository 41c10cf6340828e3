"""Organization teams (departments) used by team-scoped grants.

Membership is set per user through ``PATCH /settings/users/{id}``.
"""

import uuid

from fastapi import APIRouter, Request, Response, status

from backend.campusops.api.auth import OrgUser, Resolver, ScopedDB, UnscopedDB, client_ip
from backend.campusops.auth.permissions import PERMISSIONS
from backend.campusops.db.models import Team, Ticket, UserTeam
from backend.campusops.db.scoped import ScopedDatabase
from backend.campusops.errors import Conflict, NotFound
from backend.campusops.models.users import CreateTeamRequest, TeamResponse
from backend.campusops.services.audit import AuditAction, record_audit
from backend.campusops.tenancy.context import organization_context

router = APIRouter(prefix="/settings/teams", tags=["settings"])


async def _team_response(db: ScopedDatabase, team: Team) -> TeamResponse:
    return TeamResponse(
        id=team.id,
        slug=team.slug,
        name=team.name,
        member_count=await db.count(UserTeam, UserTeam.team_id == team.id),
    )


@router.get("", response_model=list[TeamResponse])
async def list_teams(caller: OrgUser, db: ScopedDB, resolver: Resolver) -> list[TeamResponse]:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.TEAMS_READ)
        teams = await db.find_many(Team, order_by=(Team.name,))
        return [await _team_response(db, team) for team in teams]


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    body: CreateTeamRequest,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    resolver: Resolver,
) -> TeamResponse:
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.TEAMS_MANAGE)
        if await db.find_first(Team, Team.slug == body.slug) is not None:
            raise Conflict(f"Team {body.slug} already exists")

        team = await db.create(Team, slug=body.slug, name=body.name)
        await record_audit(
            db,
            action=AuditAction.TEAM_CREATE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="team",
            resource_id=team.id,
            resource_label=team.slug,
            ip_address=client_ip(request),
        )

    return TeamResponse(id=team.id, slug=team.slug, name=team.name, member_count=0)


@router.delete("/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team(
    team_id: uuid.UUID,
    request: Request,
    caller: OrgUser,
    db: ScopedDB,
    unscoped: UnscopedDB,
    resolver: Resolver,
) -> Response:
    """Delete a team with no members and no tickets."""
    with organization_context(caller.organization_id):
        await resolver.assert_can(caller.user_id, PERMISSIONS.TEAMS_MANAGE)
        team = await db.get(Team, team_id)
        if team is None:
            raise NotFound("Team not found")
        if await db.count(UserTeam, UserTeam.team_id == team.id) > 0:
            raise Conflict("Cannot delete a team that has assigned members")
        # Soft-deleted tickets still reference the team; the team is already
        # confirmed to belong to this organization
        if await unscoped.count(Ticket, Ticket.team_id == team.id) > 0:
            raise Conflict("Cannot delete a team that has tickets")

        await db.delete(Team, Team.id == team.id)
        await record_audit(
            db,
            action=AuditAction.TEAM_DELETE,
            user_id=caller.user_id,
            user_email=caller.email,
            resource_type="team",
            resource_id=team.id,
            resource_label=team.slug,
            ip_address=client_ip(request),
        )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
