from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base
from app.workitems.actors import ActorUser
from app.workitems.assignments import AssignmentManager
from app.workitems.errors import InvalidAssigneeError, NotFoundError
from app.workitems.models import Activity, Lead, Notification, Team, TeamMember, UserProfile
from app.workitems.statuses import LeadStatus, WorkItemKind


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
def setup(db_session: Session, org_id: uuid.UUID) -> dict[str, uuid.UUID]:
    manager = UserProfile(organization_id=org_id, full_name="Maja Chef")
    anna = UserProfile(organization_id=org_id, full_name="Anna Säljare")
    bo = UserProfile(organization_id=org_id, full_name="Bo Montör")
    stranger = UserProfile(organization_id=uuid.uuid4(), full_name="Främling")
    db_session.add_all([manager, anna, bo, stranger])
    db_session.flush()

    team = Team(organization_id=org_id, name="Team Syd")
    db_session.add(team)
    db_session.flush()
    db_session.add_all(
        [
            TeamMember(team_id=team.id, user_id=manager.id),
            TeamMember(team_id=team.id, user_id=bo.id),
        ]
    )
    lead = Lead(title="Solceller Villa", status=LeadStatus.NEW.value, organization_id=org_id)
    db_session.add(lead)
    db_session.commit()
    return {
        "manager": manager.id,
        "anna": anna.id,
        "bo": bo.id,
        "stranger": stranger.id,
        "team": team.id,
        "lead": lead.id,
    }


def _actor(setup: dict[str, uuid.UUID], org_id: uuid.UUID) -> ActorUser:
    return ActorUser(user_id=setup["manager"], organization_id=org_id)


def _activities(db_session: Session, item_id: uuid.UUID) -> list[Activity]:
    return list(
        db_session.scalars(select(Activity).where(Activity.work_item_id == item_id).order_by(Activity.id)).all()
    )


def test_assign_user_records_activity_and_notifies_new_assignee(
    db_session: Session, setup: dict[str, uuid.UUID], org_id: uuid.UUID
) -> None:
    result = AssignmentManager().assign_user(
        db_session, WorkItemKind.LEAD, setup["lead"], setup["anna"], _actor(setup, org_id)
    )

    assert result.changed is True
    assert result.item.assigned_to_user_id == setup["anna"]
    activities = _activities(db_session, setup["lead"])
    assert [activity.activity_kind for activity in activities] == ["assigned"]
    assert activities[0].description == "Lead tilldelad till Anna Säljare"
    assert activities[0].old_value is None
    assert activities[0].new_value == str(setup["anna"])

    notifications = list(db_session.scalars(select(Notification)).all())
    assert [n.recipient_user_id for n in notifications] == [setup["anna"]]
    assert notifications[0].subject == "Lead tilldelad"
    assert notifications[0].link == f"/leads?highlight={setup['lead']}"


def test_unassign_always_succeeds_and_does_not_notify(
    db_session: Session, setup: dict[str, uuid.UUID], org_id: uuid.UUID
) -> None:
    manager = AssignmentManager()
    manager.assign_user(db_session, WorkItemKind.LEAD, setup["lead"], setup["anna"], _actor(setup, org_id))
    db_session.query(Notification).delete()
    db_session.commit()

    result = manager.assign_user(db_session, WorkItemKind.LEAD, setup["lead"], None, _actor(setup, org_id))

    assert result.changed is True
    assert result.item.assigned_to_user_id is None
    activities = _activities(db_session, setup["lead"])
    assert activities[-1].description == "Tilldelning borttagen"
    assert activities[-1].old_value == str(setup["anna"])
    assert activities[-1].new_value is None
    assert db_session.scalars(select(Notification)).all() == []


def test_reassigning_same_user_is_a_no_op(db_session: Session, setup: dict[str, uuid.UUID], org_id: uuid.UUID) -> None:
    manager = AssignmentManager()
    manager.assign_user(db_session, WorkItemKind.LEAD, setup["lead"], setup["anna"], _actor(setup, org_id))

    result = manager.assign_user(db_session, WorkItemKind.LEAD, setup["lead"], setup["anna"], _actor(setup, org_id))

    assert result.changed is False
    assert len(_activities(db_session, setup["lead"])) == 1


@pytest.mark.parametrize("target", ["missing", "stranger"])
def test_assign_user_rejects_unknown_or_foreign_user(
    db_session: Session, setup: dict[str, uuid.UUID], org_id: uuid.UUID, target: str
) -> None:
    user_id = uuid.uuid4() if target == "missing" else setup["stranger"]

    with pytest.raises(InvalidAssigneeError) as exc_info:
        AssignmentManager().assign_user(db_session, WorkItemKind.LEAD, setup["lead"], user_id, _actor(setup, org_id))

    assert exc_info.value.details == {"target": "user", "target_id": str(user_id)}
    assert db_session.get(Lead, setup["lead"]).assigned_to_user_id is None
    assert _activities(db_session, setup["lead"]) == []
    assert db_session.scalars(select(Notification)).all() == []


def test_assign_missing_item_is_not_found(db_session: Session, setup: dict[str, uuid.UUID], org_id: uuid.UUID) -> None:
    with pytest.raises(NotFoundError):
        AssignmentManager().assign_user(db_session, WorkItemKind.LEAD, uuid.uuid4(), None, _actor(setup, org_id))


def test_assign_team_notifies_members_except_actor(
    db_session: Session, setup: dict[str, uuid.UUID], org_id: uuid.UUID
) -> None:
    result = AssignmentManager().assign_team(
        db_session, WorkItemKind.LEAD, setup["lead"], setup["team"], _actor(setup, org_id)
    )

    assert result.changed is True
    assert result.item.assigned_to_team_id == setup["team"]
    assert result.notifications.delivered == [setup["bo"]]
    assert result.notifications.suppressed == [setup["manager"]]

    activities = _activities(db_session, setup["lead"])
    assert activities[0].activity_kind == "team_assigned"
    assert activities[0].description == "Lead tilldelad till team: Team Syd"

    notifications = list(db_session.scalars(select(Notification)).all())
    assert [n.recipient_user_id for n in notifications] == [setup["bo"]]
    assert notifications[0].subject == "Ny tilldelning för ditt team"


def test_clear_team_assignment(db_session: Session, setup: dict[str, uuid.UUID], org_id: uuid.UUID) -> None:
    manager = AssignmentManager()
    manager.assign_team(db_session, WorkItemKind.LEAD, setup["lead"], setup["team"], _actor(setup, org_id))

    result = manager.assign_team(db_session, WorkItemKind.LEAD, setup["lead"], None, _actor(setup, org_id))

    assert result.changed is True
    assert result.item.assigned_to_team_id is None
    assert _activities(db_session, setup["lead"])[-1].description == "Team-tilldelning borttagen"


def test_assign_unknown_team_is_invalid_assignee(
    db_session: Session, setup: dict[str, uuid.UUID], org_id: uuid.UUID
) -> None:
    with pytest.raises(InvalidAssigneeError):
        AssignmentManager().assign_team(db_session, WorkItemKind.LEAD, setup["lead"], uuid.uuid4(), _actor(setup, org_id))
