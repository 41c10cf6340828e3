"""Current-user endpoints."""

from fastapi import APIRouter

from backend.campusops.api.auth import AppSettings, OptionalOrgUser, OrgUser, Resolver, ScopedDB
from backend.campusops.auth.permissions import PERMISSIONS
from backend.campusops.db.models import User
from backend.campusops.errors import NotFound
from backend.campusops.models.users import CanSubmitEventsResponse, MeResponse
from backend.campusops.tenancy.context import organization_context

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/me", response_model=MeResponse)
async def me(caller: OrgUser, db: ScopedDB, resolver: Resolver) -> MeResponse:
    """Identity of the caller and their effective permissions."""
    with organization_context(caller.organization_id):
        user = await db.get(User, caller.user_id)
        if user is None:
            raise NotFound("User not found")
        permissions = await resolver.get_user_permissions(caller.user_id)

    return MeResponse(
        user_id=user.id,
        organization_id=user.organization_id,
        email=user.email,
        name=user.name,
        role=caller.role,
        permissions=sorted(permissions),
    )


@router.get("/can-submit-events", response_model=CanSubmitEventsResponse)
async def can_submit_events(
    caller: OptionalOrgUser,
    settings: AppSettings,
    resolver: Resolver,
) -> CanSubmitEventsResponse:
    """Whether the caller may submit events.

    Without a caller the answer is ``allow_anonymous_event_submission``,
    which is off unless explicitly configured.
    """
    if caller is None:
        return CanSubmitEventsResponse(
            can_submit=settings.allow_anonymous_event_submission, authenticated=False
        )

    with organization_context(caller.organization_id):
        allowed = await resolver.can(caller.user_id, PERMISSIONS.EVENTS_CREATE)

    return CanSubmitEventsResponse(can_submit=allowed, authenticated=True)
