from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.workitems.statuses import WorkItemKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityKind(StrEnum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    TEAM_ASSIGNED = "team_assigned"
    NOTE_ADDED = "note_added"
    CONVERTED = "converted"
    CUSTOM = "custom"


class UserProfile(Base):
    __tablename__ = "wt_user_profile"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Team(Base):
    __tablename__ = "wt_team"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    specialty: Mapped[str | None] = mapped_column(Text, nullable=True)
    team_leader_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("wt_user_profile.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    members: Mapped[list[TeamMember]] = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TeamMember(Base):
    __tablename__ = "wt_team_member"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("wt_team.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("wt_user_profile.id", ondelete="CASCADE"),
        nullable=False,
    )
    role_in_team: Mapped[str | None] = mapped_column(String(32), nullable=True)

    team: Mapped[Team] = relationship("Team", back_populates="members")

    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_wt_team_member_pair"),)


class Customer(Base):
    __tablename__ = "wt_customer"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class WorkItemColumns:
    """Columns shared by every work item kind."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    estimated_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    source: Mapped[str | None] = mapped_column(String(64), nullable=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("wt_customer.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_to_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("wt_user_profile.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_to_team_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("wt_team.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")


class Lead(WorkItemColumns, Base):
    __tablename__ = "wt_lead"

    __table_args__ = (CheckConstraint("estimated_value >= 0", name="ck_wt_lead_estimated_value_non_negative"),)


class Order(WorkItemColumns, Base):
    __tablename__ = "wt_order"

    __table_args__ = (CheckConstraint("estimated_value >= 0", name="ck_wt_order_estimated_value_non_negative"),)


WORK_ITEM_MODELS: dict[WorkItemKind, type[Lead] | type[Order]] = {
    WorkItemKind.LEAD: Lead,
    WorkItemKind.ORDER: Order,
}

WorkItem = Lead | Order


class Activity(Base):
    __tablename__ = "wt_activity"

    # Integer key doubles as the insertion sequence for tie-breaking equal timestamps.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_item_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    work_item_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    activity_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Note(Base):
    __tablename__ = "wt_note"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    work_item_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    work_item_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class Notification(Base):
    __tablename__ = "wt_notification"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recipient_user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


Index("ix_wt_user_profile_organization_id", UserProfile.organization_id)
Index("ix_wt_team_organization_id", Team.organization_id)
Index("ix_wt_team_member_user_id", TeamMember.user_id)
Index("ix_wt_customer_organization_id", Customer.organization_id)
Index(
    "ix_wt_lead_scope_filter",
    Lead.organization_id,
    Lead.status,
    Lead.assigned_to_user_id,
    Lead.created_at,
)
Index(
    "ix_wt_order_scope_filter",
    Order.organization_id,
    Order.status,
    Order.assigned_to_user_id,
    Order.created_at,
)
Index("ix_wt_activity_work_item", Activity.work_item_kind, Activity.work_item_id, Activity.created_at)
Index("ix_wt_note_work_item", Note.work_item_kind, Note.work_item_id)
Index(
    "ix_wt_notification_recipient_read_created",
    Notification.recipient_user_id,
    Notification.is_read,
    Notification.created_at,
)
