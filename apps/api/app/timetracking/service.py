from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from opentelemetry import trace
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.metrics import observe_time_session
from app.timetracking.context import ContextSupplier, SessionContext, collect_context
from app.timetracking.models import TimeSession
from app.timetracking.schemas import TimeSessionRead
from app.workitems.actors import ActorUser
from app.workitems.errors import (
    AlreadyStoppedError,
    NotFoundError,
    PermissionDeniedError,
    SessionAlreadyActiveError,
    StoreFailureError,
)
from app.workitems.lifecycle import load_work_item
from app.workitems.models import utcnow
from app.workitems.repository import RecordStore, record_store, store_guard
from app.workitems.statuses import WorkItemKind


logger = logging.getLogger("app.timetracking")
tracer = trace.get_tracer("app.timetracking")

MANAGE_PERMISSION = "time_sessions.manage"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def session_duration_seconds(record: TimeSession, *, now: datetime | None = None) -> int:
    end = record.ended_at or now or utcnow()
    return max(0, int((_as_utc(end) - _as_utc(record.started_at)).total_seconds()))


def to_read(record: TimeSession, *, now: datetime | None = None) -> TimeSessionRead:
    return TimeSessionRead(
        id=record.id,
        worker_id=record.worker_id,
        work_item_kind=record.work_item_kind,
        work_item_id=record.work_item_id,
        work_type=record.work_type,
        started_at=record.started_at,
        ended_at=record.ended_at,
        latitude=record.latitude,
        longitude=record.longitude,
        environment=record.environment,
        is_active=record.ended_at is None,
        duration_seconds=session_duration_seconds(record, now=now),
    )


class SessionManager:
    """Starts and stops tracked work intervals.

    A worker has at most one open session. The partial unique index
    ``uq_time_session_active_worker`` is the authority on that rule; the
    lookup in ``start`` only produces a friendlier error for the common case.
    """

    def __init__(self, store: RecordStore | None = None, context_supplier: ContextSupplier | None = None) -> None:
        self.store = store or record_store
        self.context_supplier = context_supplier

    def check_worker_access(self, session: Session, worker_id: uuid.UUID, actor: ActorUser | None) -> None:
        """Workers see their own sessions; anyone else needs ``time_sessions.manage`` in the worker's organization."""
        if actor is None or actor.user_id == worker_id:
            return
        worker = self.store.get_user(session, worker_id)
        if worker is None:
            raise NotFoundError("worker", worker_id)
        if actor.organization_id is not None and worker.organization_id != actor.organization_id:
            raise NotFoundError("worker", worker_id)
        if MANAGE_PERMISSION not in actor.roles:
            raise PermissionDeniedError(MANAGE_PERMISSION)

    def get_active(
        self, session: Session, worker_id: uuid.UUID, actor: ActorUser | None = None
    ) -> TimeSession | None:
        self.check_worker_access(session, worker_id, actor)
        stmt = select(TimeSession).where(TimeSession.worker_id == worker_id, TimeSession.ended_at.is_(None))
        with store_guard(session, "time_session.get_active"):
            return session.scalars(stmt).first()

    def start(
        self,
        session: Session,
        kind: WorkItemKind,
        work_item_id: uuid.UUID,
        worker_id: uuid.UUID,
        *,
        work_type: str | None = None,
        context: SessionContext | None = None,
        actor: ActorUser | None = None,
    ) -> TimeSession:
        with tracer.start_as_current_span("time_session.start") as span:
            span.set_attribute("worker_id", str(worker_id))
            span.set_attribute("work_item_id", str(work_item_id))

            if self.store.get_user(session, worker_id) is None:
                raise NotFoundError("worker", worker_id)
            self.check_worker_access(session, worker_id, actor)
            load_work_item(self.store, session, kind, work_item_id, actor)

            active = self.get_active(session, worker_id)
            if active is not None:
                observe_time_session("conflict")
                raise SessionAlreadyActiveError(worker_id, active.id)

            if context is None or context.is_empty:
                context = collect_context(self.context_supplier)

            record = TimeSession(
                worker_id=worker_id,
                work_item_kind=kind.value,
                work_item_id=work_item_id,
                work_type=work_type,
                started_at=utcnow(),
                latitude=context.latitude,
                longitude=context.longitude,
                environment=context.environment,
            )
            try:
                session.add(record)
                session.flush()
                session.commit()
            except IntegrityError as exc:
                # Another start for the same worker won the race.
                session.rollback()
                winner = self.get_active(session, worker_id)
                if winner is None:
                    logger.error("store.failure", extra={"error": f"time_session.start: {exc}"})
                    raise StoreFailureError("time_session.start") from exc
                observe_time_session("conflict")
                raise SessionAlreadyActiveError(worker_id, winner.id) from exc
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error("store.failure", extra={"error": f"time_session.start: {exc}"})
                raise StoreFailureError("time_session.start") from exc

            observe_time_session("started")
            logger.info(
                "time_session.started",
                extra={
                    "session_id": str(record.id),
                    "worker_id": str(worker_id),
                    "work_item_kind": kind.value,
                    "work_item_id": str(work_item_id),
                },
            )
            return record

    def stop(self, session: Session, session_id: uuid.UUID, actor: ActorUser | None = None) -> TimeSession:
        with tracer.start_as_current_span("time_session.stop") as span:
            span.set_attribute("session_id", str(session_id))
            with store_guard(session, "time_session.stop"):
                existing = session.get(TimeSession, session_id)
            if existing is None:
                raise NotFoundError("time_session", session_id)
            try:
                self.check_worker_access(session, existing.worker_id, actor)
            except NotFoundError:
                raise NotFoundError("time_session", session_id) from None

            with store_guard(session, "time_session.stop"):
                result = session.execute(
                    update(TimeSession)
                    .where(TimeSession.id == session_id, TimeSession.ended_at.is_(None))
                    .values(ended_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                stopped = result.rowcount == 1
                if stopped:
                    session.commit()
                record = session.get(TimeSession, session_id, populate_existing=True)

            if record is None:
                raise NotFoundError("time_session", session_id)
            if not stopped:
                raise AlreadyStoppedError(session_id)

            observe_time_session("stopped")
            logger.info(
                "time_session.stopped",
                extra={"session_id": str(session_id), "worker_id": str(record.worker_id)},
            )
            return record

    def list_for_worker(
        self,
        session: Session,
        worker_id: uuid.UUID,
        *,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        actor: ActorUser | None = None,
    ) -> list[TimeSession]:
        self.check_worker_access(session, worker_id, actor)
        stmt = select(TimeSession).where(TimeSession.worker_id == worker_id)
        if date_from is not None:
            stmt = stmt.where(TimeSession.started_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(TimeSession.started_at < date_to)
        stmt = stmt.order_by(TimeSession.started_at.asc())
        with store_guard(session, "time_session.list"):
            return list(session.scalars(stmt).all())


session_manager = SessionManager()
