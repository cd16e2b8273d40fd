from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.workitems.models import utcnow


class TimeSession(Base):
    __tablename__ = "wt_time_session"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    worker_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("wt_user_profile.id", ondelete="RESTRICT"),
        nullable=False,
    )
    work_item_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    work_item_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    work_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    environment: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        # At most one open session per worker, enforced by the database.
        Index(
            "uq_time_session_active_worker",
            "worker_id",
            unique=True,
            sqlite_where=text("ended_at IS NULL"),
            postgresql_where=text("ended_at IS NULL"),
        ),
    )


Index("ix_wt_time_session_worker_started", TimeSession.worker_id, TimeSession.started_at)
Index("ix_wt_time_session_work_item", TimeSession.work_item_kind, TimeSession.work_item_id)
