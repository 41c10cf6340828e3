"""Permission resolution: user -> role -> grants, plus per-user overrides.

The resolver reads through the scoped handle, so it must run inside an
organization context. A user id belonging to another organization resolves
to no permissions at all.
"""

import logging
import time
import uuid
from collections.abc import Iterable

from sqlalchemy import select

from backend.campusops.auth.permissions import format_permission, matches_permission
from backend.campusops.db.models import (
    Permission,
    Role,
    RolePermission,
    User,
    UserPermission,
    UserTeam,
)
from backend.campusops.db.scoped import ScopedDatabase
from backend.campusops.errors import InsufficientPermissions
from backend.campusops.tenancy.context import get_organization_id
from backend.campusops.utils.metrics import tenancy_metrics

logger = logging.getLogger(__name__)


def _permission_key(permission: Permission) -> str:
    return format_permission(permission.resource, permission.action, permission.scope)


CacheKey = tuple[uuid.UUID, uuid.UUID]


class PermissionCache:
    """Effective grants keyed by (organization, user), kept for a fixed TTL.

    Holds no data handle, so one instance can back the resolvers of every
    request. Expired entries are dropped whenever a new entry is stored.
    """

    def __init__(self, ttl_seconds: int = 0) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: dict[CacheKey, tuple[float, frozenset[str]]] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey, now: float | None = None) -> frozenset[str] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        now = time.monotonic() if now is None else now
        if entry[0] <= now:
            del self._entries[key]
            return None
        return entry[1]

    def put(self, key: CacheKey, permissions: frozenset[str], now: float | None = None) -> None:
        if not self.enabled:
            return
        now = time.monotonic() if now is None else now
        self.prune(now)
        self._entries[key] = (now + self.ttl_seconds, permissions)

    def prune(self, now: float | None = None) -> None:
        """Drop every expired entry."""
        now = time.monotonic() if now is None else now
        for key in [k for k, (expires, _) in self._entries.items() if expires <= now]:
            del self._entries[key]

    def invalidate(self, user_id: uuid.UUID | None = None) -> None:
        if user_id is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k[1] == user_id]:
            del self._entries[key]


class PermissionResolver:
    """Answers whether a user holds a permission.

    With caching disabled (the default) grants are re-resolved on every call,
    so role and override changes apply to already-issued tokens on the very
    next check.
    """

    def __init__(
        self,
        db: ScopedDatabase,
        cache_ttl_seconds: int = 0,
        cache: PermissionCache | None = None,
    ) -> None:
        """Initialize resolver.

        Args:
            db: Scoped data handle
            cache_ttl_seconds: Lifetime of a private cache; 0 disables caching
            cache: Shared cache to use instead of a private one
        """
        self._db = db
        self.cache = cache if cache is not None else PermissionCache(cache_ttl_seconds)

    async def get_user_permissions(self, user_id: uuid.UUID) -> frozenset[str]:
        """Effective permission keys of ``user_id`` in the current organization.

        Role grants first, then user-level grants added, then user-level
        revokes removed. Unknown users resolve to the empty set.
        """
        cache_key = (get_organization_id(), user_id)
        if self.cache.enabled:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        permissions = await self._resolve(user_id)
        self.cache.put(cache_key, permissions)
        return permissions

    async def _resolve(self, user_id: uuid.UUID) -> frozenset[str]:
        user = await self._db.get(User, user_id)
        if user is None:
            return frozenset()

        effective: set[str] = set()

        if user.role_id is not None:
            effective.update(await self.get_role_permissions(user.role_id))

        overrides = await self._db.find_many(UserPermission, UserPermission.user_id == user.id)
        if overrides:
            by_id = {o.permission_id: o.granted for o in overrides}
            catalog = await self._db.find_many(Permission, Permission.id.in_(list(by_id)))
            for permission in catalog:
                key = _permission_key(permission)
                if by_id[permission.id]:
                    effective.add(key)
                else:
                    effective.discard(key)

        return frozenset(effective)

    async def get_role_permissions(self, role_id: uuid.UUID) -> frozenset[str]:
        """Keys granted by a role of the current organization (empty if not visible)."""
        role = await self._db.get(Role, role_id)
        if role is None:
            return frozenset()
        granted = await self._db.find_many(
            Permission,
            Permission.id.in_(
                select(RolePermission.permission_id).where(RolePermission.role_id == role.id)
            ),
        )
        return frozenset(_permission_key(p) for p in granted)

    async def can(self, user_id: uuid.UUID, permission: str) -> bool:
        """Whether the user holds ``permission``."""
        held = await self.get_user_permissions(user_id)
        return any(matches_permission(p, permission) for p in held)

    async def can_any(self, user_id: uuid.UUID, permissions: Iterable[str]) -> bool:
        held = await self.get_user_permissions(user_id)
        return any(matches_permission(p, required) for required in permissions for p in held)

    async def can_all(self, user_id: uuid.UUID, permissions: Iterable[str]) -> bool:
        held = await self.get_user_permissions(user_id)
        return all(any(matches_permission(p, required) for p in held) for required in permissions)

    async def assert_can(self, user_id: uuid.UUID, permission: str) -> None:
        """Raise unless the user holds ``permission``.

        Raises:
            InsufficientPermissions: Carrying the denied key
        """
        if not await self.can(user_id, permission):
            logger.warning(
                "Permission denied",
                extra={"structured": {"user_id": str(user_id), "permission": permission}},
            )
            tenancy_metrics.record_denial("insufficient_permissions")
            raise InsufficientPermissions(permission)

    async def get_user_team_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        # Membership rows carry no organization; the user lookup confines them
        user = await self._db.get(User, user_id)
        if user is None:
            return set()
        memberships = await self._db.find_many(UserTeam, UserTeam.user_id == user.id)
        return {m.team_id for m in memberships}

    async def can_access_resource(
        self,
        user_id: uuid.UUID,
        permission: str,
        owner_id: uuid.UUID | None = None,
        team_ids: Iterable[uuid.UUID] = (),
    ) -> bool:
        """Scope-aware check against one record.

        Args:
            user_id: Caller
            permission: Unscoped key, e.g. ``tickets:update``
            owner_id: User who owns the record
            team_ids: Teams the record belongs to

        Returns:
            True for an ``all`` grant, a ``team`` grant shared with the record,
            or an ``own`` grant on the caller's own record
        """
        held = await self.get_user_permissions(user_id)

        if any(matches_permission(p, f"{permission}:all") for p in held):
            return True

        resource_teams = set(team_ids)
        if resource_teams and any(matches_permission(p, f"{permission}:team") for p in held):
            if resource_teams & await self.get_user_team_ids(user_id):
                return True

        if owner_id is not None and owner_id == user_id:
            if any(matches_permission(p, f"{permission}:own") for p in held):
                return True

        return False

    async def assert_can_access_resource(
        self,
        user_id: uuid.UUID,
        permission: str,
        owner_id: uuid.UUID | None = None,
        team_ids: Iterable[uuid.UUID] = (),
    ) -> None:
        """Raise unless ``can_access_resource`` allows the caller.

        Raises:
            InsufficientPermissions: Carrying the unscoped key
        """
        if not await self.can_access_resource(user_id, permission, owner_id, team_ids):
            logger.warning(
                "Record access denied",
                extra={"structured": {"user_id": str(user_id), "permission": permission}},
            )
            tenancy_metrics.record_denial("insufficient_permissions")
            raise InsufficientPermissions(permission)

    def invalidate(self, user_id: uuid.UUID | None = None) -> None:
        """Drop cached grants for one user, or for everyone."""
        self.cache.invalidate(user_id)
