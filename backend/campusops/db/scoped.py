"""Scoped and unscoped data handles.

``ScopedDatabase`` is the default way to touch tenant data: every read, update
and delete is filtered on the ambient organization and every create is stamped
with it. With no organization established it raises ``MissingOrgContext``
before a session is opened.

``UnscopedDatabase`` applies no filtering. It is reserved for identity
bootstrap (login, resolving a verified token's user), setup-token redemption,
and platform-admin code already gated by platform permissions.

Both wrap the shared session factory and keep no per-request state, so one
instance of each can serve every concurrent request.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any, ClassVar, Self, TypeVar

from sqlalchemy import ColumnElement, delete, func, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.campusops.db.models import Base, SoftDeleteMixin, utcnow
from backend.campusops.errors import CrossTenantWrite, MissingOrgContext
from backend.campusops.tenancy.context import get_organization_id
from backend.campusops.utils.metrics import tenancy_metrics

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def tenant_column_name(model: type[Base]) -> str | None:
    """Name of the column that carries the owning organization, if any."""
    return getattr(model, "__tenant_column__", None)


def is_soft_deletable(model: type[Base]) -> bool:
    return issubclass(model, SoftDeleteMixin)


class DataHandle:
    """Shared query surface for both handles.

    Subclasses decide filtering through ``_filters`` and ``_stamp``.
    """

    handle_name: ClassVar[str] = "base"

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        session: AsyncSession | None = None,
    ) -> None:
        """Initialize handle.

        Args:
            sessions: Shared session factory
            session: Session to bind to (only set by ``transaction()``)
        """
        self._sessions = sessions
        self._bound = session

    def _filters(self, model: type[Base]) -> list[ColumnElement[bool]]:
        return []

    def _stamp(self, model: type[Base], values: Mapping[str, Any]) -> dict[str, Any]:
        return dict(values)

    def _check_update(self, model: type[Base], values: Mapping[str, Any]) -> None:
        return None

    def _soft_deletes(self, model: type[Base]) -> bool:
        return False

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self._bound is not None:
            yield self._bound
            return
        async with self._sessions() as session, session.begin():
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Self]:
        """Yield a handle of the same kind bound to one session and transaction.

        Everything issued through the yielded handle commits together, or not at
        all if the block raises.
        """
        if self._bound is not None:
            yield self
            return
        async with self._sessions() as session, session.begin():
            yield type(self)(self._sessions, session=session)

    def _record(self, operation: str) -> None:
        tenancy_metrics.record_operation(self.handle_name, operation)

    async def find_many(
        self,
        model: type[ModelT],
        *where: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        limit: int | None = None,
    ) -> list[ModelT]:
        """Return all rows of ``model`` matching ``where``."""
        filters = self._filters(model)
        stmt = select(model).where(*filters, *where)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)

        self._record("find_many")
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_first(
        self,
        model: type[ModelT],
        *where: ColumnElement[bool],
        order_by: Sequence[Any] = (),
    ) -> ModelT | None:
        """Return the first row of ``model`` matching ``where``, or None."""
        rows = await self.find_many(model, *where, order_by=order_by, limit=1)
        return rows[0] if rows else None

    async def get(self, model: type[ModelT], pk: uuid.UUID) -> ModelT | None:
        """Return the row with primary key ``pk``, or None if not visible."""
        pk_column = inspect(model).primary_key[0]
        return await self.find_first(model, pk_column == pk)

    async def count(self, model: type[Base], *where: ColumnElement[bool]) -> int:
        filters = self._filters(model)
        stmt = select(func.count()).select_from(model).where(*filters, *where)

        self._record("count")
        async with self._session() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def create(self, model: type[ModelT], **values: Any) -> ModelT:
        """Insert one row and return it."""
        obj = model(**self._stamp(model, values))

        self._record("create")
        async with self._session() as session:
            session.add(obj)
            await session.flush()
        return obj

    async def create_many(
        self, model: type[ModelT], rows: Iterable[Mapping[str, Any]]
    ) -> list[ModelT]:
        """Insert several rows in one transaction and return them."""
        objs = [model(**self._stamp(model, row)) for row in rows]

        self._record("create_many")
        async with self._session() as session:
            session.add_all(objs)
            await session.flush()
        return objs

    async def update(
        self,
        model: type[Base],
        *where: ColumnElement[bool],
        values: Mapping[str, Any],
    ) -> int:
        """Update matching rows.

        Returns:
            Number of rows affected
        """
        filters = self._filters(model)
        self._check_update(model, values)
        stmt = (
            update(model)
            .where(*filters, *where)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        self._record("update")
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.rowcount

    async def delete(self, model: type[Base], *where: ColumnElement[bool]) -> int:
        """Delete matching rows (soft delete where the handle applies it).

        Returns:
            Number of rows affected
        """
        filters = self._filters(model)
        if self._soft_deletes(model):
            stmt = (
                update(model)
                .where(*filters, *where)
                .values(deleted_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        else:
            stmt = delete(model).where(*filters, *where).execution_options(
                synchronize_session=False
            )

        self._record("delete")
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.rowcount


class ScopedDatabase(DataHandle):
    """Data handle that confines every operation to the ambient organization."""

    handle_name = "scoped"

    def _organization_id(self) -> uuid.UUID:
        try:
            return get_organization_id()
        except MissingOrgContext:
            logger.warning(
                "Scoped data access without organization context",
                extra={"structured": {"handle": self.handle_name}},
            )
            tenancy_metrics.record_denial("missing_org_context")
            raise

    def _filters(self, model: type[Base]) -> list[ColumnElement[bool]]:
        org_id = self._organization_id()

        filters: list[ColumnElement[bool]] = []
        column_name = tenant_column_name(model)
        if column_name is not None:
            filters.append(getattr(model, column_name) == org_id)
        if is_soft_deletable(model):
            filters.append(model.deleted_at.is_(None))  # type: ignore[attr-defined]
        return filters

    def _stamp(self, model: type[Base], values: Mapping[str, Any]) -> dict[str, Any]:
        org_id = self._organization_id()

        stamped = dict(values)
        column_name = tenant_column_name(model)
        if column_name is not None:
            stamped[column_name] = org_id
        return stamped

    def _check_update(self, model: type[Base], values: Mapping[str, Any]) -> None:
        column_name = tenant_column_name(model)
        if column_name is None or column_name not in values:
            return
        if values[column_name] != self._organization_id():
            tenancy_metrics.record_denial("cross_tenant_write")
            raise CrossTenantWrite()

    def _soft_deletes(self, model: type[Base]) -> bool:
        return is_soft_deletable(model)


class UnscopedDatabase(DataHandle):
    """Data handle with no automatic filtering, for cross-organization code paths."""

    handle_name = "unscoped"
