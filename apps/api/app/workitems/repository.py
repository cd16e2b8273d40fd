from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from sqlalchemy import Select, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.workitems.errors import NotFoundError, StoreFailureError
from app.workitems.models import (
    WORK_ITEM_MODELS,
    Customer,
    Team,
    TeamMember,
    UserProfile,
    WorkItem,
    utcnow,
)
from app.workitems.statuses import WorkItemKind, WorkItemStatus


logger = logging.getLogger("app.workitems.store")


@contextmanager
def store_guard(session: Session, operation: str) -> Iterator[None]:
    """Translate database errors raised inside the block into ``StoreFailureError``.

    The session is rolled back first so nothing from the failed unit of work is
    left pending.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("store.failure", extra={"error": f"{operation}: {exc}"})
        raise StoreFailureError(operation) from exc


@dataclass
class WorkItemFilter:
    status: WorkItemStatus | None = None
    assigned_to: uuid.UUID | Literal["unassigned"] | None = None
    customer_id: uuid.UUID | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    search: str | None = None


class RecordStore:
    def get(self, session: Session, kind: WorkItemKind, item_id: uuid.UUID) -> WorkItem | None:
        model = WORK_ITEM_MODELS[kind]
        with store_guard(session, f"{kind}.get"):
            return session.get(model, item_id)

    def list(
        self,
        session: Session,
        kind: WorkItemKind,
        organization_id: uuid.UUID,
        filters: WorkItemFilter | None = None,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[WorkItem]:
        model = WORK_ITEM_MODELS[kind]
        stmt: Select[Any] = select(model).where(model.organization_id == organization_id)
        filters = filters or WorkItemFilter()

        if filters.status is not None:
            stmt = stmt.where(model.status == filters.status.value)
        if filters.assigned_to == "unassigned":
            stmt = stmt.where(model.assigned_to_user_id.is_(None))
        elif filters.assigned_to is not None:
            stmt = stmt.where(model.assigned_to_user_id == filters.assigned_to)
        if filters.customer_id is not None:
            stmt = stmt.where(model.customer_id == filters.customer_id)
        if filters.created_from is not None:
            stmt = stmt.where(model.created_at >= filters.created_from)
        if filters.created_to is not None:
            stmt = stmt.where(model.created_at <= filters.created_to)
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(or_(model.title.ilike(pattern), model.description.ilike(pattern)))

        stmt = stmt.order_by(model.created_at.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with store_guard(session, f"{kind}.list"):
            return list(session.scalars(stmt).all())

    def insert(self, session: Session, record: Any) -> Any:
        with store_guard(session, f"{type(record).__tablename__}.insert"):
            session.add(record)
            session.flush()
        return record

    def update(
        self,
        session: Session,
        kind: WorkItemKind,
        item_id: uuid.UUID,
        values: dict[str, Any],
    ) -> WorkItem:
        model = WORK_ITEM_MODELS[kind]
        with store_guard(session, f"{kind}.update"):
            result = session.execute(
                update(model)
                .where(model.id == item_id)
                .values(**values, updated_at=utcnow(), row_version=model.row_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(kind.value, item_id)
            item = session.get(model, item_id, populate_existing=True)
        if item is None:
            raise NotFoundError(kind.value, item_id)
        return item

    def commit(self, session: Session, operation: str) -> None:
        with store_guard(session, operation):
            session.commit()

    def get_user(self, session: Session, user_id: uuid.UUID) -> UserProfile | None:
        with store_guard(session, "user.get"):
            return session.get(UserProfile, user_id)

    def get_team(self, session: Session, team_id: uuid.UUID) -> Team | None:
        with store_guard(session, "team.get"):
            return session.get(Team, team_id)

    def get_customer(self, session: Session, customer_id: uuid.UUID) -> Customer | None:
        with store_guard(session, "customer.get"):
            return session.get(Customer, customer_id)

    def team_member_ids(self, session: Session, team_id: uuid.UUID) -> list[uuid.UUID]:
        with store_guard(session, "team.members"):
            return list(
                session.scalars(
                    select(TeamMember.user_id).where(TeamMember.team_id == team_id).order_by(TeamMember.user_id)
                ).all()
            )


record_store = RecordStore()
