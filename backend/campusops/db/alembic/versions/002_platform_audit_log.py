"""Platform audit log

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Creates:
- platform_audit_log
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create platform_audit_log."""
    op.create_table(
        "platform_audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "platform_admin_id",
            sa.Uuid(),
            sa.ForeignKey("platform_admin.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("resource_type", sa.Text(), nullable=True),
        sa.Column("resource_id", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index(
        "ix_platform_audit_log_platform_admin_id", "platform_audit_log", ["platform_admin_id"]
    )
    op.create_index("idx_platform_audit_created", "platform_audit_log", ["created_at"])


def downgrade() -> None:
    """Drop platform_audit_log."""
    op.drop_table("platform_audit_log")
