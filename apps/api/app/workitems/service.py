from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.workitems.actors import ActorUser
from app.workitems.assignments import AssignmentManager, assignment_manager
from app.workitems.audit import AuditLog, audit_log
from app.workitems.errors import InvalidAssigneeError, NotFoundError
from app.workitems.lifecycle import LifecycleResult, actor_id, load_work_item
from app.workitems.models import WORK_ITEM_MODELS, Activity, ActivityKind, Order, WorkItem, utcnow
from app.workitems.repository import RecordStore, WorkItemFilter, record_store, store_guard
from app.workitems.schemas import (
    CustomActivityCreate,
    StatusGraphRead,
    StatusOption,
    WorkItemCreate,
    WorkItemRead,
    WorkItemStats,
)
from app.workitems.statuses import (
    KIND_LABELS,
    LeadStatus,
    OrderStatus,
    WorkItemKind,
    initial_status,
    ordered_statuses,
    parse_status,
    status_graph,
    status_label,
)
from app.workitems.transitions import TransitionEngine, transition_engine


logger = logging.getLogger("app.workitems.service")
tracer = trace.get_tracer("app.workitems.service")

_CENTS = Decimal("0.01")


def to_read(kind: WorkItemKind, item: WorkItem) -> WorkItemRead:
    return WorkItemRead(
        id=item.id,
        kind=kind.value,
        title=item.title,
        description=item.description,
        estimated_value=item.estimated_value,
        status=item.status,
        status_label=status_label(parse_status(kind, item.status)),
        source=item.source,
        organization_id=item.organization_id,
        customer_id=item.customer_id,
        assigned_to_user_id=item.assigned_to_user_id,
        assigned_to_team_id=item.assigned_to_team_id,
        created_at=item.created_at,
        updated_at=item.updated_at,
        row_version=item.row_version,
    )


def status_graph_read(kind: WorkItemKind) -> StatusGraphRead:
    graph = status_graph(kind)
    initial = initial_status(kind)
    return StatusGraphRead(
        kind=kind.value,
        statuses=[
            StatusOption(
                value=status.value,
                label=status_label(status),
                is_initial=status == initial,
                transitions_to=[target.value for target in graph[status]],
            )
            for status in ordered_statuses(kind)
        ],
    )


class WorkItemService:
    def __init__(
        self,
        store: RecordStore | None = None,
        audit: AuditLog | None = None,
        transitions: TransitionEngine | None = None,
        assignments: AssignmentManager | None = None,
    ) -> None:
        self.store = store or record_store
        self.audit = audit or audit_log
        self.transitions = transitions or transition_engine
        self.assignments = assignments or assignment_manager

    def create(
        self,
        session: Session,
        kind: WorkItemKind,
        organization_id: uuid.UUID,
        payload: WorkItemCreate,
        actor: ActorUser | None,
    ) -> LifecycleResult:
        with tracer.start_as_current_span("work_item.create") as span:
            span.set_attribute("work_item_kind", kind.value)
            if payload.customer_id is not None:
                customer = self.store.get_customer(session, payload.customer_id)
                if customer is None or customer.organization_id != organization_id:
                    raise NotFoundError("customer", payload.customer_id)
            if payload.assigned_to_user_id is not None:
                assignee = self.store.get_user(session, payload.assigned_to_user_id)
                if assignee is None or assignee.organization_id != organization_id:
                    raise InvalidAssigneeError("user", payload.assigned_to_user_id)

            model = WORK_ITEM_MODELS[kind]
            item = model(
                title=payload.title,
                description=payload.description,
                estimated_value=payload.estimated_value,
                source=payload.source,
                customer_id=payload.customer_id,
                organization_id=organization_id,
                status=initial_status(kind).value,
            )
            self.store.insert(session, item)
            activity = self.audit.append(
                session,
                kind=kind,
                work_item_id=item.id,
                activity_kind=ActivityKind.CREATED,
                description=f"{KIND_LABELS[kind]} skapad",
                user_id=actor_id(actor),
                new_value=item.status,
            )
            self.store.commit(session, f"{kind}.create")
            span.set_attribute("work_item_id", str(item.id))
            logger.info(
                "work_item.created",
                extra={
                    "work_item_kind": kind.value,
                    "work_item_id": str(item.id),
                    "actor_user_id": str(actor_id(actor)) if actor else None,
                },
            )

            if payload.assigned_to_user_id is None:
                return LifecycleResult(item=item, changed=True, activity=activity)

            assigned = self.assignments.assign_user(session, kind, item.id, payload.assigned_to_user_id, actor)
            return LifecycleResult(
                item=assigned.item,
                changed=True,
                activity=activity,
                notifications=assigned.notifications,
            )

    def get(self, session: Session, kind: WorkItemKind, item_id: uuid.UUID, actor: ActorUser | None) -> WorkItem:
        return load_work_item(self.store, session, kind, item_id, actor)

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
        return self.store.list(session, kind, organization_id, filters, offset=offset, limit=limit)

    def stats(
        self,
        session: Session,
        kind: WorkItemKind,
        organization_id: uuid.UUID,
        *,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> WorkItemStats:
        items = self.store.list(
            session,
            kind,
            organization_id,
            WorkItemFilter(created_from=date_from, created_to=date_to),
        )
        total_value = sum((item.estimated_value or Decimal("0") for item in items), Decimal("0"))
        average_value = (total_value / len(items)).quantize(_CENTS, rounding=ROUND_HALF_UP) if items else Decimal("0")
        breakdown = Counter(item.status for item in items)
        recent = items[: get_settings().recent_items_in_stats]
        return WorkItemStats(
            kind=kind.value,
            total_items=len(items),
            total_value=total_value,
            average_value=average_value,
            status_breakdown={status.value: breakdown.get(status.value, 0) for status in ordered_statuses(kind)},
            recent_items=[to_read(kind, item) for item in recent],
        )

    def list_overdue_orders(
        self,
        session: Session,
        organization_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> list[Order]:
        cutoff = (now or utcnow()) - timedelta(days=get_settings().overdue_order_days)
        stmt = (
            select(Order)
            .where(
                Order.organization_id == organization_id,
                Order.status == OrderStatus.BOOKED_CONFIRMED.value,
                Order.created_at < cutoff,
            )
            .order_by(Order.created_at.asc())
        )
        with store_guard(session, "order.overdue"):
            return list(session.scalars(stmt).all())

    def convert_lead(self, session: Session, lead_id: uuid.UUID, actor: ActorUser | None) -> LifecycleResult:
        kind = WorkItemKind.LEAD
        lead = load_work_item(self.store, session, kind, lead_id, actor)
        activity = self.audit.append(
            session,
            kind=kind,
            work_item_id=lead_id,
            activity_kind=ActivityKind.CONVERTED,
            description="Lead konverterad till offert",
            user_id=actor_id(actor),
        )
        self.store.commit(session, "lead.convert")
        logger.info(
            "work_item.converted",
            extra={
                "work_item_kind": kind.value,
                "work_item_id": str(lead_id),
                "actor_user_id": str(actor_id(actor)) if actor else None,
            },
        )

        if lead.status == LeadStatus.QUALIFIED.value:
            return LifecycleResult(item=lead, changed=True, activity=activity)
        moved = self.transitions.transition(session, kind, lead_id, LeadStatus.QUALIFIED, actor)
        return LifecycleResult(item=moved.item, changed=True, activity=activity, notifications=moved.notifications)

    def list_activities(
        self,
        session: Session,
        kind: WorkItemKind,
        item_id: uuid.UUID,
        actor: ActorUser | None,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Activity]:
        load_work_item(self.store, session, kind, item_id, actor)
        return self.audit.list_for_work_item(session, kind, item_id, offset=offset, limit=limit)

    def report_custom_activity(
        self,
        session: Session,
        kind: WorkItemKind,
        item_id: uuid.UUID,
        payload: CustomActivityCreate,
        actor: ActorUser | None,
    ) -> Activity:
        load_work_item(self.store, session, kind, item_id, actor)
        activity = self.audit.append(
            session,
            kind=kind,
            work_item_id=item_id,
            activity_kind=ActivityKind.CUSTOM,
            description=payload.description,
            user_id=actor_id(actor),
            old_value=payload.old_value,
            new_value=payload.new_value,
        )
        self.store.commit(session, f"{kind}.custom_activity")
        return activity


work_item_service = WorkItemService()
