from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.core.config import get_settings
from app.core.database import get_db
from app.main import app
from app.workitems.actors import coerce_user_uuid


@pytest.fixture(autouse=True)
def clear_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_db] = lambda: None
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _token(claims: dict) -> str:
    settings = get_settings()
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def test_me_reads_subject_and_roles_from_token(client: TestClient) -> None:
    token = _token({"sub": "montor-1", "roles": ["worker", "manager"]})

    response = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json() == {"sub": "montor-1", "roles": ["worker", "manager"]}


def test_invalid_token_falls_back_to_guest(client: TestClient) -> None:
    response = client.get("/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 200
    assert response.json() == {"sub": "anonymous", "roles": ["guest"]}


def test_missing_token_is_anonymous(client: TestClient) -> None:
    response = client.get("/me")
    assert response.json()["sub"] == "anonymous"


def test_subject_is_mapped_to_stable_user_uuid() -> None:
    user_id = uuid.uuid4()
    assert coerce_user_uuid(str(user_id)) == user_id
    assert coerce_user_uuid("montor-1") == coerce_user_uuid("montor-1")
    assert coerce_user_uuid("montor-1") != coerce_user_uuid("montor-2")


def test_guest_without_token_cannot_change_work_items(client: TestClient) -> None:
    headers = {"X-Organization-Id": str(uuid.uuid4())}

    created = client.post("/api/work-items/lead", json={"title": "Gästlead"}, headers=headers)
    assert created.status_code == 403
    assert created.json()["code"] == "permission_denied"

    changed = client.post(f"/api/work-items/lead/{uuid.uuid4()}/status", json={"status": "won"}, headers=headers)
    assert changed.status_code == 403


def test_token_without_inbox_role_is_denied(client: TestClient) -> None:
    token = _token({"sub": "montor-1", "roles": ["time_sessions.read"]})

    response = client.get("/api/notifications", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403
    assert response.json()["details"] == {"permission": "notifications.read"}
