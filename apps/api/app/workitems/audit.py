"""Append-only activity log for work items."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.workitems.models import Activity, ActivityKind
from app.workitems.repository import store_guard
from app.workitems.statuses import WorkItemKind


class AuditLog:
    """Writes and replays ``Activity`` rows.

    Rows are only ever inserted. Callers own the transaction, so an activity
    becomes visible together with the state change it describes.
    """

    def append(
        self,
        session: Session,
        *,
        kind: WorkItemKind,
        work_item_id: uuid.UUID,
        activity_kind: ActivityKind,
        description: str,
        user_id: uuid.UUID | None = None,
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> Activity:
        activity = Activity(
            work_item_kind=kind.value,
            work_item_id=work_item_id,
            user_id=user_id,
            activity_kind=activity_kind.value,
            description=description,
            old_value=old_value,
            new_value=new_value,
        )
        with store_guard(session, "activity.append"):
            session.add(activity)
            session.flush()
        return activity

    def list_for_work_item(
        self,
        session: Session,
        kind: WorkItemKind,
        work_item_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Activity]:
        stmt = (
            select(Activity)
            .where(Activity.work_item_kind == kind.value, Activity.work_item_id == work_item_id)
            .order_by(Activity.created_at.desc(), Activity.id.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with store_guard(session, "activity.list"):
            return list(session.scalars(stmt).all())


audit_log = AuditLog()
