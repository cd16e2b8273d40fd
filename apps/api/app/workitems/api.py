from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from app.context import get_correlation_id
from app.core.auth import AuthUser, get_current_user as get_auth_user
from app.core.database import get_db
from app.workitems.actors import ActorUser, coerce_user_uuid
from app.workitems.assignments import assignment_manager
from app.workitems.errors import (
    InvalidAssigneeError,
    OrganizationRequiredError,
    PermissionDeniedError,
    WorkItemError,
)
from app.workitems.lifecycle import LifecycleResult
from app.workitems.notes import note_service
from app.workitems.notifications import list_notifications, mark_notification_read
from app.workitems.repository import WorkItemFilter
from app.workitems.schemas import (
    ActivityRead,
    CustomActivityCreate,
    LifecycleRead,
    NoteCreate,
    NoteRead,
    NoteUpdate,
    NotificationRead,
    StatusChangeRequest,
    StatusGraphRead,
    TeamAssignmentRequest,
    UserAssignmentRequest,
    WorkItemCreate,
    WorkItemRead,
    WorkItemStats,
)
from app.workitems.service import status_graph_read, to_read, work_item_service
from app.workitems.statuses import WorkItemKind, parse_status
from app.workitems.transitions import transition_engine

router = APIRouter(prefix="/api/work-items", tags=["work_items"])
notes_router = APIRouter(prefix="/api/notes", tags=["work_items.notes"])
notifications_router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def domain_error_response(request: Request, exc: WorkItemError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=str(exc),
        details=exc.details,
    )


def get_current_user(request: Request, auth_user: AuthUser = Depends(get_auth_user)) -> ActorUser:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    organization_raw = request.headers.get("x-organization-id") or auth_user.organization_id
    organization_id = None
    if organization_raw:
        try:
            organization_id = uuid.UUID(organization_raw)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="organization id must be a UUID",
            ) from None

    return ActorUser(
        user_id=coerce_user_uuid(auth_user.sub),
        organization_id=organization_id,
        roles=frozenset(auth_user.roles),
        correlation_id=correlation_id,
    )


def require_permission(user: ActorUser, permission: str) -> None:
    if permission not in user.roles:
        raise PermissionDeniedError(permission)


def require_organization(user: ActorUser) -> uuid.UUID:
    if user.organization_id is None:
        raise OrganizationRequiredError()
    return user.organization_id


def _parse_assignee_filter(raw: str | None) -> uuid.UUID | str | None:
    if raw is None or raw == "unassigned":
        return raw
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise InvalidAssigneeError("user", raw) from None


def to_lifecycle_read(kind: WorkItemKind, result: LifecycleResult) -> LifecycleRead:
    return LifecycleRead(
        item=to_read(kind, result.item),
        changed=result.changed,
        activity=ActivityRead.model_validate(result.activity) if result.activity is not None else None,
        notifications_delivered=len(result.notifications.delivered),
        notifications_failed=len(result.notifications.failed),
    )


@router.get("/order/overdue", response_model=list[WorkItemRead])
def list_overdue_orders(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[WorkItemRead] | JSONResponse:
    try:
        require_permission(user, "work_items.read")
        organization_id = require_organization(user)
        orders = work_item_service.list_overdue_orders(db, organization_id)
        return [to_read(WorkItemKind.ORDER, order) for order in orders]
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.post("/lead/{lead_id}/convert", response_model=LifecycleRead)
def convert_lead(
    request: Request,
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LifecycleRead | JSONResponse:
    try:
        require_permission(user, "work_items.write")
        result = work_item_service.convert_lead(db, lead_id, user)
        return to_lifecycle_read(WorkItemKind.LEAD, result)
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.get("/{kind}/statuses", response_model=StatusGraphRead)
def get_status_graph(kind: WorkItemKind) -> StatusGraphRead:
    return status_graph_read(kind)


@router.get("/{kind}/stats", response_model=WorkItemStats)
def get_stats(
    request: Request,
    kind: WorkItemKind,
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> WorkItemStats | JSONResponse:
    try:
        require_permission(user, "work_items.read")
        organization_id = require_organization(user)
        return work_item_service.stats(db, kind, organization_id, date_from=date_from, date_to=date_to)
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.get("/{kind}", response_model=list[WorkItemRead])
def list_work_items(
    request: Request,
    kind: WorkItemKind,
    status_filter: str | None = Query(default=None, alias="status"),
    assigned_to: str | None = Query(default=None),
    customer_id: uuid.UUID | None = Query(default=None),
    created_from: datetime | None = Query(default=None),
    created_to: datetime | None = Query(default=None),
    q: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[WorkItemRead] | JSONResponse:
    try:
        require_permission(user, "work_items.read")
        organization_id = require_organization(user)
        filters = WorkItemFilter(
            status=parse_status(kind, status_filter) if status_filter else None,
            assigned_to=_parse_assignee_filter(assigned_to),  # type: ignore[arg-type]
            customer_id=customer_id,
            created_from=created_from,
            created_to=created_to,
            search=q,
        )
        items = work_item_service.list(db, kind, organization_id, filters, offset=offset, limit=limit)
        return [to_read(kind, item) for item in items]
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.post("/{kind}", response_model=LifecycleRead, status_code=status.HTTP_201_CREATED)
def create_work_item(
    request: Request,
    kind: WorkItemKind,
    dto: WorkItemCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LifecycleRead | JSONResponse:
    try:
        require_permission(user, "work_items.write")
        organization_id = require_organization(user)
        result = work_item_service.create(db, kind, organization_id, dto, user)
        return to_lifecycle_read(kind, result)
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.get("/{kind}/{item_id}", response_model=WorkItemRead)
def get_work_item(
    request: Request,
    kind: WorkItemKind,
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> WorkItemRead | JSONResponse:
    try:
        require_permission(user, "work_items.read")
        return to_read(kind, work_item_service.get(db, kind, item_id, user))
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.post("/{kind}/{item_id}/status", response_model=LifecycleRead)
def change_status(
    request: Request,
    kind: WorkItemKind,
    item_id: uuid.UUID,
    dto: StatusChangeRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LifecycleRead | JSONResponse:
    try:
        require_permission(user, "work_items.write")
        result = transition_engine.transition(db, kind, item_id, dto.status, user)
        return to_lifecycle_read(kind, result)
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.post("/{kind}/{item_id}/assignee", response_model=LifecycleRead)
def assign_user(
    request: Request,
    kind: WorkItemKind,
    item_id: uuid.UUID,
    dto: UserAssignmentRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LifecycleRead | JSONResponse:
    try:
        require_permission(user, "work_items.assign")
        result = assignment_manager.assign_user(db, kind, item_id, dto.user_id, user)
        return to_lifecycle_read(kind, result)
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.post("/{kind}/{item_id}/team", response_model=LifecycleRead)
def assign_team(
    request: Request,
    kind: WorkItemKind,
    item_id: uuid.UUID,
    dto: TeamAssignmentRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LifecycleRead | JSONResponse:
    try:
        require_permission(user, "work_items.assign")
        result = assignment_manager.assign_team(db, kind, item_id, dto.team_id, user)
        return to_lifecycle_read(kind, result)
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.get("/{kind}/{item_id}/activities", response_model=list[ActivityRead])
def list_activities(
    request: Request,
    kind: WorkItemKind,
    item_id: uuid.UUID,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ActivityRead] | JSONResponse:
    try:
        require_permission(user, "work_items.read")
        activities = work_item_service.list_activities(db, kind, item_id, user, offset=offset, limit=limit)
        return [ActivityRead.model_validate(activity) for activity in activities]
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.post("/{kind}/{item_id}/activities", response_model=ActivityRead, status_code=status.HTTP_201_CREATED)
def report_activity(
    request: Request,
    kind: WorkItemKind,
    item_id: uuid.UUID,
    dto: CustomActivityCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ActivityRead | JSONResponse:
    try:
        require_permission(user, "work_items.write")
        activity = work_item_service.report_custom_activity(db, kind, item_id, dto, user)
        return ActivityRead.model_validate(activity)
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.get("/{kind}/{item_id}/notes", response_model=list[NoteRead])
def list_notes(
    request: Request,
    kind: WorkItemKind,
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[NoteRead] | JSONResponse:
    try:
        require_permission(user, "work_items.read")
        return [NoteRead.model_validate(note) for note in note_service.list_notes(db, kind, item_id, user)]
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.post("/{kind}/{item_id}/notes", response_model=NoteRead, status_code=status.HTTP_201_CREATED)
def create_note(
    request: Request,
    kind: WorkItemKind,
    item_id: uuid.UUID,
    dto: NoteCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> NoteRead | JSONResponse:
    try:
        require_permission(user, "work_items.notes.write")
        return NoteRead.model_validate(note_service.add_note(db, kind, item_id, dto.content, user))
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@notes_router.patch("/{note_id}", response_model=NoteRead)
def update_note(
    request: Request,
    note_id: uuid.UUID,
    dto: NoteUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> NoteRead | JSONResponse:
    try:
        require_permission(user, "work_items.notes.write")
        return NoteRead.model_validate(note_service.edit_note(db, note_id, dto.content, user))
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@notes_router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_note(
    request: Request,
    note_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> Response:
    try:
        require_permission(user, "work_items.notes.write")
        note_service.delete_note(db, note_id, user)
    except WorkItemError as exc:
        return domain_error_response(request, exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@notifications_router.get("", response_model=list[NotificationRead])
def get_notifications(
    request: Request,
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[NotificationRead] | JSONResponse:
    try:
        require_permission(user, "notifications.read")
        notifications = list_notifications(db, user.user_id, unread_only=unread_only, limit=limit)
        return [NotificationRead.model_validate(item) for item in notifications]
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@notifications_router.post("/{notification_id}/read", response_model=NotificationRead)
def read_notification(
    request: Request,
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> NotificationRead | JSONResponse:
    try:
        require_permission(user, "notifications.read")
        return NotificationRead.model_validate(mark_notification_read(db, user.user_id, notification_id))
    except WorkItemError as exc:
        return domain_error_response(request, exc)
