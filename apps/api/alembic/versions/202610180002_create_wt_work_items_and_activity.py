"""create worktrack leads orders activity notes notifications

Revision ID: 202610180002
Revises: 202610180001
Create Date: 2026-10-18 00:02:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180002"
down_revision: str | None = "202610180001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _work_item_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("estimated_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("source", sa.String(length=64), nullable=True),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=True),
        sa.Column("assigned_to_user_id", sa.Uuid(), nullable=True),
        sa.Column("assigned_to_team_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
    ]


def _work_item_constraints(table: str) -> list[sa.Constraint]:
    return [
        sa.ForeignKeyConstraint(["customer_id"], ["wt_customer.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_to_user_id"], ["wt_user_profile.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_to_team_id"], ["wt_team.id"], ondelete="SET NULL"),
        sa.CheckConstraint("estimated_value >= 0", name=f"ck_{table}_estimated_value_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    ]


def upgrade() -> None:
    for table in ("wt_lead", "wt_order"):
        op.create_table(table, *_work_item_columns(), *_work_item_constraints(table))
        op.create_index(
            f"ix_{table}_scope_filter",
            table,
            ["organization_id", "status", "assigned_to_user_id", "created_at"],
            unique=False,
        )

    op.create_table(
        "wt_activity",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("work_item_kind", sa.String(length=16), nullable=False),
        sa.Column("work_item_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("activity_kind", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_wt_activity_work_item",
        "wt_activity",
        ["work_item_kind", "work_item_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "wt_note",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("work_item_kind", sa.String(length=16), nullable=False),
        sa.Column("work_item_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_wt_note_work_item", "wt_note", ["work_item_kind", "work_item_id"], unique=False)

    op.create_table(
        "wt_notification",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("recipient_user_id", sa.Uuid(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_wt_notification_recipient_read_created",
        "wt_notification",
        ["recipient_user_id", "is_read", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_wt_notification_recipient_read_created", table_name="wt_notification")
    op.drop_table("wt_notification")
    op.drop_index("ix_wt_note_work_item", table_name="wt_note")
    op.drop_table("wt_note")
    op.drop_index("ix_wt_activity_work_item", table_name="wt_activity")
    op.drop_table("wt_activity")
    for table in ("wt_order", "wt_lead"):
        op.drop_index(f"ix_{table}_scope_filter", table_name=table)
        op.drop_table(table)
