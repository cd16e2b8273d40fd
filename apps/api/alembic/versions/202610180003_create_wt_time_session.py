"""create worktrack time sessions

Revision ID: 202610180003
Revises: 202610180002
Create Date: 2026-10-18 00:03:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180003"
down_revision: str | None = "202610180002"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "wt_time_session",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("worker_id", sa.Uuid(), nullable=False),
        sa.Column("work_item_kind", sa.String(length=16), nullable=False),
        sa.Column("work_item_id", sa.Uuid(), nullable=False),
        sa.Column("work_type", sa.String(length=64), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("environment", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["worker_id"], ["wt_user_profile.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_time_session_active_worker",
        "wt_time_session",
        ["worker_id"],
        unique=True,
        postgresql_where=sa.text("ended_at IS NULL"),
        sqlite_where=sa.text("ended_at IS NULL"),
    )
    op.create_index(
        "ix_wt_time_session_worker_started",
        "wt_time_session",
        ["worker_id", "started_at"],
        unique=False,
    )
    op.create_index(
        "ix_wt_time_session_work_item",
        "wt_time_session",
        ["work_item_kind", "work_item_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_wt_time_session_work_item", table_name="wt_time_session")
    op.drop_index("ix_wt_time_session_worker_started", table_name="wt_time_session")
    op.drop_index("uq_time_session_active_worker", table_name="wt_time_session")
    op.drop_table("wt_time_session")
