"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates:
- organization, permission, role, role_permission
- user, user_permission, team, user_team
- building, room, ticket, event
- audit_log, password_setup_token, platform_admin
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def _org_fk() -> sa.Column:
    return sa.Column("organization_id", sa.Uuid(), sa.ForeignKey("organization.id"), nullable=False)


def _deleted_at() -> sa.Column:
    return sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "organization",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("suspended", sa.Boolean(), server_default=sa.false(), nullable=False),
        _created_at(),
    )

    op.create_table(
        "permission",
        _id(),
        sa.Column("resource", sa.Text(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("scope", sa.Text(), server_default="global", nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.UniqueConstraint("resource", "action", "scope", name="uq_permission_key"),
    )

    op.create_table(
        "role",
        _id(),
        _org_fk(),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_system", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.UniqueConstraint("organization_id", "slug", name="uq_role_org_slug"),
    )
    op.create_index("ix_role_organization_id", "role", ["organization_id"])

    op.create_table(
        "role_permission",
        sa.Column("role_id", sa.Uuid(), sa.ForeignKey("role.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "permission_id",
            sa.Uuid(),
            sa.ForeignKey("permission.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "user",
        _id(),
        _org_fk(),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default="ACTIVE", nullable=False),
        sa.Column("role_id", sa.Uuid(), sa.ForeignKey("role.id", ondelete="SET NULL"), nullable=True),
        _created_at(),
        _deleted_at(),
    )
    op.create_index("ix_user_organization_id", "user", ["organization_id"])

    op.create_table(
        "user_permission",
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "permission_id",
            sa.Uuid(),
            sa.ForeignKey("permission.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("granted", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "team",
        _id(),
        _org_fk(),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.UniqueConstraint("organization_id", "slug", name="uq_team_org_slug"),
    )
    op.create_index("ix_team_organization_id", "team", ["organization_id"])

    op.create_table(
        "user_team",
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("team_id", sa.Uuid(), sa.ForeignKey("team.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "building",
        _id(),
        _org_fk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("code", sa.Text(), nullable=True),
        _created_at(),
        _deleted_at(),
    )
    op.create_index("ix_building_organization_id", "building", ["organization_id"])

    op.create_table(
        "room",
        _id(),
        _org_fk(),
        sa.Column("building_id", sa.Uuid(), sa.ForeignKey("building.id"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("floor", sa.Text(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        _deleted_at(),
    )
    op.create_index("ix_room_organization_id", "room", ["organization_id"])
    op.create_index("idx_room_org_building", "room", ["organization_id", "building_id"])

    op.create_table(
        "ticket",
        _id(),
        _org_fk(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), server_default="OPEN", nullable=False),
        sa.Column("priority", sa.Text(), server_default="NORMAL", nullable=False),
        sa.Column("room_id", sa.Uuid(), sa.ForeignKey("room.id"), nullable=True),
        sa.Column("team_id", sa.Uuid(), sa.ForeignKey("team.id"), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("assigned_to_id", sa.Uuid(), sa.ForeignKey("user.id"), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        _deleted_at(),
    )
    op.create_index("ix_ticket_organization_id", "ticket", ["organization_id"])
    op.create_index("idx_ticket_org_created", "ticket", ["organization_id", "created_at"])

    op.create_table(
        "event",
        _id(),
        _org_fk(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("room_id", sa.Uuid(), sa.ForeignKey("room.id"), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("user.id"), nullable=False),
        _created_at(),
        _deleted_at(),
    )
    op.create_index("ix_event_organization_id", "event", ["organization_id"])

    op.create_table(
        "audit_log",
        _id(),
        _org_fk(),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("user_email", sa.Text(), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("resource_type", sa.Text(), nullable=True),
        sa.Column("resource_id", sa.Text(), nullable=True),
        sa.Column("resource_label", sa.Text(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_audit_log_organization_id", "audit_log", ["organization_id"])
    op.create_index("idx_audit_org_created", "audit_log", ["organization_id", "created_at"])

    op.create_table(
        "password_setup_token",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token_hash", sa.Text(), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        "platform_admin",
        _id(),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), server_default="OPERATOR", nullable=False),
        _created_at(),
    )


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        "platform_admin",
        "password_setup_token",
        "audit_log",
        "event",
        "ticket",
        "room",
        "building",
        "user_team",
        "team",
        "user_permission",
        "user",
        "role_permission",
        "role",
        "permission",
        "organization",
    ):
        op.drop_table(table)
