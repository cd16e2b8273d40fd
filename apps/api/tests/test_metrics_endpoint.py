from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import AuthUser, get_current_user as auth_get_current_user
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.workitems.actors import ActorUser
from app.workitems.api import get_current_user
from app.workitems.models import UserProfile


ALL_PERMISSIONS = {
    "work_items.read",
    "work_items.write",
    "work_items.assign",
    "work_items.notes.write",
    "notifications.read",
    "time_sessions.read",
    "time_sessions.write",
}


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
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def worker_id(db_session: Session, org_id: uuid.UUID) -> uuid.UUID:
    worker = UserProfile(organization_id=org_id, full_name="Metrics Worker")
    db_session.add(worker)
    db_session.commit()
    return worker.id


@pytest.fixture()
def roles() -> list[str]:
    return ["system.metrics.read"]


@pytest.fixture()
def client(
    db_session: Session, org_id: uuid.UUID, worker_id: uuid.UUID, roles: list[str]
) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_user() -> ActorUser:
        return ActorUser(
            user_id=worker_id,
            organization_id=org_id,
            roles=frozenset(ALL_PERMISSIONS),
            correlation_id="metrics-corr-1",
        )

    def override_auth_user() -> AuthUser:
        return AuthUser(sub="metrics-admin", roles=roles)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_user
    app.dependency_overrides[auth_get_current_user] = override_auth_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_and_lifecycle_metrics(client: TestClient) -> None:
    health = client.get("/health")
    assert health.status_code == 200

    order = client.post("/api/work-items/order", json={"title": "Metrics order"})
    assert order.status_code == 201
    order_id = order.json()["item"]["id"]

    changed = client.post(f"/api/work-items/order/{order_id}/status", json={"status": "redo_fakturera"})
    assert changed.status_code == 200
    started = client.post("/api/time-sessions", json={"work_item_id": order_id})
    assert started.status_code == 201
    conflict = client.post("/api/time-sessions", json={"work_item_id": order_id})
    assert conflict.status_code == 409

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text
    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert 'work_item_transitions_total{kind="order",to_status="redo_fakturera"}' in body
    assert 'time_session_events_total{event="started"}' in body
    assert 'time_session_events_total{event="conflict"}' in body
    assert 'path="/health"' in body


@pytest.mark.parametrize("roles", [["user"]])
def test_metrics_endpoint_requires_role(client: TestClient) -> None:
    response = client.get("/metrics")
    assert response.status_code == 403


def test_metrics_endpoint_hidden_when_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    response = client.get("/metrics")
    assert response.status_code == 404
