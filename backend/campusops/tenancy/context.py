"""Request-scoped organization context for tenancy enforcement.

The active organization lives in a ``ContextVar`` so every asyncio task sees
its own value. Tasks spawned inside a scope copy the value at creation time;
nothing set inside a task is visible to its parent or to sibling requests.
"""

import uuid
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import ParamSpec, TypeVar

from backend.campusops.errors import MissingOrgContext

P = ParamSpec("P")
T = TypeVar("T")

_current_org_id: ContextVar[uuid.UUID | None] = ContextVar("current_org_id", default=None)


@contextmanager
def organization_context(org_id: uuid.UUID | None) -> Iterator[uuid.UUID]:
    """Establish ``org_id`` as the ambient organization for the enclosed block.

    The previous value (or none) is restored on every exit path, including
    exceptions and task cancellation.

    Raises:
        MissingOrgContext: If ``org_id`` is empty.
    """
    if not org_id:
        raise MissingOrgContext("Organization ID is required")

    token = _current_org_id.set(org_id)
    try:
        yield org_id
    finally:
        _current_org_id.reset(token)


async def run_with_organization(
    org_id: uuid.UUID | None,
    fn: Callable[P, Awaitable[T]],
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    """Await ``fn(*args, **kwargs)`` with ``org_id`` as the ambient organization.

    Args:
        org_id: Organization to scope the call to
        fn: Coroutine function to run

    Returns:
        Whatever ``fn`` returns
    """
    with organization_context(org_id):
        return await fn(*args, **kwargs)


def get_organization_id() -> uuid.UUID:
    """Return the ambient organization id.

    Raises:
        MissingOrgContext: If no organization is established for this task.
    """
    org_id = _current_org_id.get()
    if org_id is None:
        raise MissingOrgContext()
    return org_id


def current_organization_id() -> uuid.UUID | None:
    """Return the ambient organization id, or None outside any scope."""
    return _current_org_id.get()
