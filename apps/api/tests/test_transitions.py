from __future__ import annotations

import logging
import uuid
from collections.abc import Generator

import pytest
from sqlalchemy import Update, create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base
from app.workitems.actors import ActorUser
from app.workitems.errors import InvalidStatusError, NotFoundError, StoreFailureError
from app.workitems.models import Activity, Lead, Notification, Order, UserProfile
from app.workitems.notifications import BestEffortNotifier, NotificationDispatcher
from app.workitems.statuses import LeadStatus, OrderStatus, WorkItemKind
from app.workitems.transitions import TransitionEngine


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def people(db_session: Session, org_id: uuid.UUID) -> dict[str, UserProfile]:
    manager = UserProfile(organization_id=org_id, full_name="Maja Chef")
    worker = UserProfile(organization_id=org_id, full_name="Erik Montör")
    db_session.add_all([manager, worker])
    db_session.commit()
    return {"manager": manager, "worker": worker}


@pytest.fixture()
def order(db_session: Session, org_id: uuid.UUID, people: dict[str, UserProfile]) -> Order:
    record = Order(
        title="Byte av fönster",
        status=OrderStatus.OPEN.value,
        organization_id=org_id,
        assigned_to_user_id=people["worker"].id,
    )
    db_session.add(record)
    db_session.commit()
    return record


def _actor(user: UserProfile) -> ActorUser:
    return ActorUser(user_id=user.id, organization_id=user.organization_id)


def _activities(db_session: Session, item_id: uuid.UUID) -> list[Activity]:
    return list(db_session.scalars(select(Activity).where(Activity.work_item_id == item_id)).all())


class FailingSink:
    def enqueue(self, session, user_id, subject, body, link):  # type: ignore[no-untyped-def]
        raise ConnectionError("notification sink unreachable")


def test_transition_updates_status_audits_and_notifies_assignee(
    db_session: Session, order: Order, people: dict[str, UserProfile]
) -> None:
    engine = TransitionEngine()

    result = engine.transition(db_session, WorkItemKind.ORDER, order.id, "bokad_bekräftad", _actor(people["manager"]))

    assert result.changed is True
    assert result.item.status == OrderStatus.BOOKED_CONFIRMED.value
    assert result.item.row_version == 2

    activities = _activities(db_session, order.id)
    assert len(activities) == 1
    assert activities[0].activity_kind == "status_changed"
    assert activities[0].description == "Status ändrad från Öppen order till Bokad och bekräftad"
    assert activities[0].old_value == "öppen_order"
    assert activities[0].new_value == "bokad_bekräftad"
    assert activities[0].user_id == people["manager"].id

    notifications = list(db_session.scalars(select(Notification)).all())
    assert len(notifications) == 1
    assert notifications[0].recipient_user_id == people["worker"].id
    assert notifications[0].subject == "Status uppdaterad"
    assert notifications[0].link == f"/ordrar?highlight={order.id}"
    assert result.notifications.delivered == [people["worker"].id]


def test_transition_to_current_status_is_a_no_op(
    db_session: Session, order: Order, people: dict[str, UserProfile]
) -> None:
    result = TransitionEngine().transition(
        db_session, WorkItemKind.ORDER, order.id, OrderStatus.OPEN, _actor(people["manager"])
    )

    assert result.changed is False
    assert result.activity is None
    assert _activities(db_session, order.id) == []
    assert db_session.scalars(select(Notification)).all() == []
    assert db_session.get(Order, order.id).row_version == 1


def test_transition_rejects_unknown_status_without_side_effects(
    db_session: Session, order: Order, people: dict[str, UserProfile]
) -> None:
    with pytest.raises(InvalidStatusError):
        TransitionEngine().transition(db_session, WorkItemKind.ORDER, order.id, "won", _actor(people["manager"]))

    assert db_session.get(Order, order.id).status == OrderStatus.OPEN.value
    assert _activities(db_session, order.id) == []


def test_transition_missing_or_foreign_item_is_not_found(
    db_session: Session, order: Order, people: dict[str, UserProfile]
) -> None:
    engine = TransitionEngine()
    with pytest.raises(NotFoundError):
        engine.transition(db_session, WorkItemKind.ORDER, uuid.uuid4(), "fakturerad", _actor(people["manager"]))

    outsider = ActorUser(user_id=uuid.uuid4(), organization_id=uuid.uuid4())
    with pytest.raises(NotFoundError):
        engine.transition(db_session, WorkItemKind.ORDER, order.id, "fakturerad", outsider)

    # An order id is not a lead id.
    with pytest.raises(NotFoundError):
        engine.transition(db_session, WorkItemKind.LEAD, order.id, "won", _actor(people["manager"]))


def test_notification_failure_keeps_state_change_and_is_logged(
    db_session: Session,
    order: Order,
    people: dict[str, UserProfile],
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING, logger="app.workitems.notifications")
    engine = TransitionEngine(notifier=BestEffortNotifier(NotificationDispatcher(FailingSink())))

    result = engine.transition(db_session, WorkItemKind.ORDER, order.id, "ej_slutfört", _actor(people["manager"]))

    assert result.changed is True
    assert result.notifications.failed == [people["worker"].id]
    assert db_session.get(Order, order.id).status == OrderStatus.NOT_COMPLETED.value
    assert result.item.status == OrderStatus.NOT_COMPLETED.value
    assert result.activity is not None
    assert result.activity.new_value == OrderStatus.NOT_COMPLETED.value
    assert len(_activities(db_session, order.id)) == 1

    records = [record for record in caplog.records if record.getMessage() == "notification.delivery_failed"]
    assert records
    assert getattr(records[0], "recipient_user_id", None) == str(people["worker"].id)
    assert "unreachable" in getattr(records[0], "error", "")


def test_actor_never_notifies_themselves(db_session: Session, order: Order, people: dict[str, UserProfile]) -> None:
    result = TransitionEngine().transition(
        db_session, WorkItemKind.ORDER, order.id, "redo_fakturera", _actor(people["worker"])
    )

    assert result.changed is True
    assert result.notifications.suppressed == [people["worker"].id]
    assert db_session.scalars(select(Notification)).all() == []


def test_unassigned_item_transitions_without_notification(
    db_session: Session, org_id: uuid.UUID, people: dict[str, UserProfile]
) -> None:
    lead = Lead(title="Takbyte", status=LeadStatus.NEW.value, organization_id=org_id)
    db_session.add(lead)
    db_session.commit()

    result = TransitionEngine().transition(db_session, WorkItemKind.LEAD, lead.id, "contacted", _actor(people["manager"]))

    assert result.changed is True
    assert result.activity is not None
    assert result.activity.description == "Status ändrad från Ny till Kontaktad"
    assert db_session.scalars(select(Notification)).all() == []


def test_notifications_can_be_switched_off(
    db_session: Session,
    order: Order,
    people: dict[str, UserProfile],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("NOTIFICATIONS_ENABLED", "false")
    get_settings.cache_clear()

    TransitionEngine().transition(db_session, WorkItemKind.ORDER, order.id, "fakturerad", _actor(people["manager"]))

    assert db_session.scalars(select(Notification)).all() == []
    assert len(_activities(db_session, order.id)) == 1


def test_store_failure_aborts_without_audit_entry(
    db_session: Session,
    order: Order,
    people: dict[str, UserProfile],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original_execute = db_session.execute

    def failing_execute(statement, *args, **kwargs):  # type: ignore[no-untyped-def]
        if isinstance(statement, Update):
            raise OperationalError("UPDATE wt_order", {}, Exception("database unavailable"))
        return original_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", failing_execute)
    with pytest.raises(StoreFailureError) as exc_info:
        TransitionEngine().transition(db_session, WorkItemKind.ORDER, order.id, "fakturerad", _actor(people["manager"]))
    monkeypatch.undo()

    assert exc_info.value.details == {"operation": "order.update"}
    assert db_session.get(Order, order.id).status == OrderStatus.OPEN.value
    assert _activities(db_session, order.id) == []
    assert db_session.scalars(select(Notification)).all() == []
