"""create worktrack users teams customers

Revision ID: 202610180001
Revises:
Create Date: 2026-10-18 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "wt_user_profile",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone_number", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_wt_user_profile_organization_id", "wt_user_profile", ["organization_id"], unique=False)

    op.create_table(
        "wt_team",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("specialty", sa.Text(), nullable=True),
        sa.Column("team_leader_user_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["team_leader_user_id"], ["wt_user_profile.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_wt_team_organization_id", "wt_team", ["organization_id"], unique=False)

    op.create_table(
        "wt_team_member",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("team_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role_in_team", sa.String(length=32), nullable=True),
        sa.ForeignKeyConstraint(["team_id"], ["wt_team.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["wt_user_profile.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "user_id", name="uq_wt_team_member_pair"),
    )
    op.create_index("ix_wt_team_member_user_id", "wt_team_member", ["user_id"], unique=False)

    op.create_table(
        "wt_customer",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone_number", sa.Text(), nullable=True),
        sa.Column("city", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_wt_customer_organization_id", "wt_customer", ["organization_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_wt_customer_organization_id", table_name="wt_customer")
    op.drop_table("wt_customer")
    op.drop_index("ix_wt_team_member_user_id", table_name="wt_team_member")
    op.drop_table("wt_team_member")
    op.drop_index("ix_wt_team_organization_id", table_name="wt_team")
    op.drop_table("wt_team")
    op.drop_index("ix_wt_user_profile_organization_id", table_name="wt_user_profile")
    op.drop_table("wt_user_profile")
