from __future__ import annotations

import logging
import uuid

from opentelemetry import trace
from sqlalchemy.orm import Session

from app.metrics import observe_transition
from app.workitems.actors import ActorUser
from app.workitems.audit import AuditLog, audit_log
from app.workitems.lifecycle import LifecycleResult, actor_id, load_work_item
from app.workitems.models import ActivityKind
from app.workitems.notifications import BestEffortNotifier, status_update_message
from app.workitems.repository import RecordStore, record_store
from app.workitems.statuses import (
    WorkItemKind,
    WorkItemStatus,
    deep_link,
    parse_status,
    status_graph,
    status_label,
)


logger = logging.getLogger("app.workitems.transitions")
tracer = trace.get_tracer("app.workitems.transitions")


class TransitionEngine:
    def __init__(
        self,
        store: RecordStore | None = None,
        audit: AuditLog | None = None,
        notifier: BestEffortNotifier | None = None,
    ) -> None:
        self.store = store or record_store
        self.audit = audit or audit_log
        self.notifier = notifier or BestEffortNotifier()

    def graph(self, kind: WorkItemKind) -> dict[WorkItemStatus, list[WorkItemStatus]]:
        return status_graph(kind)

    def transition(
        self,
        session: Session,
        kind: WorkItemKind,
        item_id: uuid.UUID,
        requested_status: str | WorkItemStatus,
        actor: ActorUser | None,
    ) -> LifecycleResult:
        with tracer.start_as_current_span("work_item.transition") as span:
            span.set_attribute("work_item_kind", kind.value)
            span.set_attribute("work_item_id", str(item_id))

            item = load_work_item(self.store, session, kind, item_id, actor)
            target = parse_status(kind, requested_status)
            current = parse_status(kind, item.status)
            if current == target:
                return LifecycleResult(item=item, changed=False)

            # Phase one: state change and its audit entry commit together or not at all.
            item = self.store.update(session, kind, item_id, {"status": target.value})
            activity = self.audit.append(
                session,
                kind=kind,
                work_item_id=item_id,
                activity_kind=ActivityKind.STATUS_CHANGED,
                description=f"Status ändrad från {status_label(current)} till {status_label(target)}",
                user_id=actor_id(actor),
                old_value=current.value,
                new_value=target.value,
            )
            self.store.commit(session, f"{kind}.transition")
            observe_transition(kind.value, target.value)
            logger.info(
                "work_item.status_changed",
                extra={
                    "work_item_kind": kind.value,
                    "work_item_id": str(item_id),
                    "actor_user_id": str(actor_id(actor)) if actor else None,
                    "old_value": current.value,
                    "new_value": target.value,
                },
            )

            # Phase two: best effort.
            report = self.notifier.notify(
                session,
                [item.assigned_to_user_id],
                status_update_message(
                    kind,
                    item.title,
                    status_label(current),
                    status_label(target),
                    deep_link(kind, item_id),
                ),
                actor_user_id=actor_id(actor),
            )
            span.set_attribute("notifications_failed", len(report.failed))
            return LifecycleResult(item=item, changed=True, activity=activity, notifications=report)


transition_engine = TransitionEngine()
