"""Tests for the scoped and unscoped data handles."""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from backend.campusops.db.models import Building, Room, Ticket
from backend.campusops.db.scoped import ScopedDatabase, UnscopedDatabase
from backend.campusops.errors import CrossTenantWrite, MissingOrgContext
from backend.campusops.tenancy.context import organization_context
from tests.helpers import Tenant


async def _building(scoped: ScopedDatabase, tenant: Tenant, name: str) -> Building:
    with organization_context(tenant.org.id):
        return await scoped.create(Building, name=name)


@pytest.mark.asyncio
async def test_reads_are_confined_to_current_org(
    scoped: ScopedDatabase, tenant_a: Tenant, tenant_b: Tenant
) -> None:
    """Test a scoped read never returns another organization's rows."""
    north = await _building(scoped, tenant_a, "North Gym")
    south = await _building(scoped, tenant_b, "South Gym")

    with organization_context(tenant_a.org.id):
        names = [b.name for b in await scoped.find_many(Building)]
        assert await scoped.get(Building, south.id) is None
        assert await scoped.get(Building, north.id) is not None
        assert await scoped.count(Building) == 1

    assert names == ["North Gym"]


@pytest.mark.asyncio
async def test_every_operation_fails_closed_without_context() -> None:
    """Test no session is opened when no organization is established."""
    sessions = MagicMock()
    scoped = ScopedDatabase(sessions)

    with pytest.raises(MissingOrgContext):
        await scoped.find_many(Building)
    with pytest.raises(MissingOrgContext):
        await scoped.get(Building, uuid.uuid4())
    with pytest.raises(MissingOrgContext):
        await scoped.count(Building)
    with pytest.raises(MissingOrgContext):
        await scoped.create(Building, name="Nowhere")
    with pytest.raises(MissingOrgContext):
        await scoped.update(Building, values={"name": "x"})
    with pytest.raises(MissingOrgContext):
        await scoped.delete(Building)

    sessions.assert_not_called()


@pytest.mark.asyncio
async def test_create_overwrites_supplied_org(
    scoped: ScopedDatabase, tenant_a: Tenant, tenant_b: Tenant
) -> None:
    """Test creates are stamped with the ambient org even if another is passed."""
    with organization_context(tenant_a.org.id):
        building = await scoped.create(Building, name="Library", organization_id=tenant_b.org.id)

    assert building.organization_id == tenant_a.org.id


@pytest.mark.asyncio
async def test_update_cannot_move_rows_between_orgs(
    scoped: ScopedDatabase, tenant_a: Tenant, tenant_b: Tenant
) -> None:
    building = await _building(scoped, tenant_a, "Library")

    with organization_context(tenant_a.org.id):
        with pytest.raises(CrossTenantWrite):
            await scoped.update(
                Building, Building.id == building.id, values={"organization_id": tenant_b.org.id}
            )


@pytest.mark.asyncio
async def test_update_and_delete_skip_other_org_rows(
    scoped: ScopedDatabase, tenant_a: Tenant, tenant_b: Tenant
) -> None:
    south = await _building(scoped, tenant_b, "South Gym")

    with organization_context(tenant_a.org.id):
        assert await scoped.update(Building, Building.id == south.id, values={"name": "Taken"}) == 0
        assert await scoped.delete(Building, Building.id == south.id) == 0

    with organization_context(tenant_b.org.id):
        still_there = await scoped.get(Building, south.id)

    assert still_there is not None
    assert still_there.name == "South Gym"


@pytest.mark.asyncio
async def test_delete_is_soft_for_soft_deletable_models(
    scoped: ScopedDatabase, unscoped: UnscopedDatabase, tenant_a: Tenant
) -> None:
    building = await _building(scoped, tenant_a, "Annex")

    with organization_context(tenant_a.org.id):
        assert await scoped.delete(Building, Building.id == building.id) == 1
        assert await scoped.get(Building, building.id) is None

    raw = await unscoped.get(Building, building.id)
    assert raw is not None
    assert raw.deleted_at is not None


@pytest.mark.asyncio
async def test_unscoped_handle_sees_every_org(
    scoped: ScopedDatabase, unscoped: UnscopedDatabase, tenant_a: Tenant, tenant_b: Tenant
) -> None:
    await _building(scoped, tenant_a, "North Gym")
    await _building(scoped, tenant_b, "South Gym")

    buildings = await unscoped.find_many(Building)

    assert {b.organization_id for b in buildings} == {tenant_a.org.id, tenant_b.org.id}


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(
    scoped: ScopedDatabase, tenant_a: Tenant
) -> None:
    """Test nothing issued inside a failed transaction is persisted."""
    with organization_context(tenant_a.org.id):
        with pytest.raises(IntegrityError):
            async with scoped.transaction() as tx:
                await tx.create(Building, name="Half Built")
                # Missing required created_by_id
                await tx.create(Ticket, title="broken")

        assert await scoped.count(Building) == 0


@pytest.mark.asyncio
async def test_transaction_commits_together(scoped: ScopedDatabase, tenant_a: Tenant) -> None:
    with organization_context(tenant_a.org.id):
        async with scoped.transaction() as tx:
            building = await tx.create(Building, name="Science")
            await tx.create(Room, building_id=building.id, name="Lab 1")

        rooms = await scoped.find_many(Room, Room.building_id == building.id)

    assert [r.name for r in rooms] == ["Lab 1"]
    assert rooms[0].organization_id == tenant_a.org.id
