from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.workitems.actors import ActorUser
from app.workitems.errors import NotFoundError
from app.workitems.models import Activity, WorkItem
from app.workitems.notifications import DispatchReport
from app.workitems.repository import RecordStore
from app.workitems.statuses import WorkItemKind


@dataclass
class LifecycleResult:
    """Outcome of a lifecycle operation.

    ``changed`` is False for no-op requests, in which case no activity was
    written and no notification attempted. ``notifications`` carries the
    best-effort side-effect outcome separately from the state change.
    """

    item: WorkItem
    changed: bool
    activity: Activity | None = None
    notifications: DispatchReport = field(default_factory=DispatchReport)


def actor_id(actor: ActorUser | None) -> uuid.UUID | None:
    return actor.user_id if actor is not None else None


def load_work_item(
    store: RecordStore,
    session: Session,
    kind: WorkItemKind,
    item_id: uuid.UUID,
    actor: ActorUser | None,
) -> WorkItem:
    item = store.get(session, kind, item_id)
    if item is None:
        raise NotFoundError(kind.value, item_id)
    # Items of other organizations are reported as missing.
    if actor is not None and actor.organization_id is not None and item.organization_id != actor.organization_id:
        raise NotFoundError(kind.value, item_id)
    return item
