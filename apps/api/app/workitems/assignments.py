from __future__ import annotations

import logging
import uuid

from opentelemetry import trace
from sqlalchemy.orm import Session

from app.metrics import observe_assignment
from app.workitems.actors import ActorUser
from app.workitems.audit import AuditLog, audit_log
from app.workitems.errors import InvalidAssigneeError
from app.workitems.lifecycle import LifecycleResult, actor_id, load_work_item
from app.workitems.models import ActivityKind, WorkItem
from app.workitems.notifications import BestEffortNotifier, assignment_message, team_assignment_message
from app.workitems.repository import RecordStore, record_store
from app.workitems.statuses import KIND_LABELS, WorkItemKind, deep_link


logger = logging.getLogger("app.workitems.assignments")
tracer = trace.get_tracer("app.workitems.assignments")


def _str_or_none(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


class AssignmentManager:
    """Changes who owns a work item, one user and one team at a time.

    Clearing an assignment (``None``) is always accepted for an existing item.
    A non-null target must exist in the item's organization.
    """

    def __init__(
        self,
        store: RecordStore | None = None,
        audit: AuditLog | None = None,
        notifier: BestEffortNotifier | None = None,
    ) -> None:
        self.store = store or record_store
        self.audit = audit or audit_log
        self.notifier = notifier or BestEffortNotifier()

    def assign_user(
        self,
        session: Session,
        kind: WorkItemKind,
        item_id: uuid.UUID,
        user_id: uuid.UUID | None,
        actor: ActorUser | None,
    ) -> LifecycleResult:
        with tracer.start_as_current_span("work_item.assign_user") as span:
            span.set_attribute("work_item_kind", kind.value)
            span.set_attribute("work_item_id", str(item_id))

            item = load_work_item(self.store, session, kind, item_id, actor)
            previous = item.assigned_to_user_id
            if previous == user_id:
                return LifecycleResult(item=item, changed=False)

            if user_id is None:
                description = "Tilldelning borttagen"
            else:
                user = self.store.get_user(session, user_id)
                if user is None or user.organization_id != item.organization_id:
                    raise InvalidAssigneeError("user", user_id)
                description = f"{KIND_LABELS[kind]} tilldelad till {user.full_name}"

            item = self.store.update(session, kind, item_id, {"assigned_to_user_id": user_id})
            activity = self.audit.append(
                session,
                kind=kind,
                work_item_id=item_id,
                activity_kind=ActivityKind.ASSIGNED,
                description=description,
                user_id=actor_id(actor),
                old_value=_str_or_none(previous),
                new_value=_str_or_none(user_id),
            )
            self.store.commit(session, f"{kind}.assign_user")
            self._record(kind, item, "user", previous, user_id, actor)

            report = self.notifier.notify(
                session,
                [user_id],
                assignment_message(kind, item.title, deep_link(kind, item_id)),
                actor_user_id=actor_id(actor),
            )
            return LifecycleResult(item=item, changed=True, activity=activity, notifications=report)

    def assign_team(
        self,
        session: Session,
        kind: WorkItemKind,
        item_id: uuid.UUID,
        team_id: uuid.UUID | None,
        actor: ActorUser | None,
    ) -> LifecycleResult:
        with tracer.start_as_current_span("work_item.assign_team") as span:
            span.set_attribute("work_item_kind", kind.value)
            span.set_attribute("work_item_id", str(item_id))

            item = load_work_item(self.store, session, kind, item_id, actor)
            previous = item.assigned_to_team_id
            if previous == team_id:
                return LifecycleResult(item=item, changed=False)

            team_name: str | None = None
            if team_id is None:
                description = "Team-tilldelning borttagen"
            else:
                team = self.store.get_team(session, team_id)
                if team is None or team.organization_id != item.organization_id:
                    raise InvalidAssigneeError("team", team_id)
                team_name = team.name
                description = f"{KIND_LABELS[kind]} tilldelad till team: {team_name}"

            item = self.store.update(session, kind, item_id, {"assigned_to_team_id": team_id})
            activity = self.audit.append(
                session,
                kind=kind,
                work_item_id=item_id,
                activity_kind=ActivityKind.TEAM_ASSIGNED,
                description=description,
                user_id=actor_id(actor),
                old_value=_str_or_none(previous),
                new_value=_str_or_none(team_id),
            )
            self.store.commit(session, f"{kind}.assign_team")
            self._record(kind, item, "team", previous, team_id, actor)

            if team_id is None or team_name is None:
                return LifecycleResult(item=item, changed=True, activity=activity)

            members = self.store.team_member_ids(session, team_id)
            report = self.notifier.notify(
                session,
                members,
                team_assignment_message(kind, item.title, team_name, deep_link(kind, item_id)),
                actor_user_id=actor_id(actor),
            )
            return LifecycleResult(item=item, changed=True, activity=activity, notifications=report)

    def _record(
        self,
        kind: WorkItemKind,
        item: WorkItem,
        target: str,
        previous: uuid.UUID | None,
        current: uuid.UUID | None,
        actor: ActorUser | None,
    ) -> None:
        observe_assignment(kind.value, target)
        logger.info(
            f"work_item.{target}_assigned",
            extra={
                "work_item_kind": kind.value,
                "work_item_id": str(item.id),
                "actor_user_id": _str_or_none(actor_id(actor)),
                "old_value": _str_or_none(previous),
                "new_value": _str_or_none(current),
            },
        )


assignment_manager = AssignmentManager()
