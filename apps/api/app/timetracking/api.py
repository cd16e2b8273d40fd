from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.timetracking.context import SessionContext
from app.timetracking.schemas import TimeSessionRead, TimeSessionStart
from app.timetracking.service import session_manager, to_read
from app.workitems.actors import ActorUser
from app.workitems.api import domain_error_response, get_current_user, require_permission
from app.workitems.errors import WorkItemError

router = APIRouter(prefix="/api/time-sessions", tags=["time_sessions"])


@router.post("", response_model=TimeSessionRead, status_code=status.HTTP_201_CREATED)
def start_session(
    request: Request,
    dto: TimeSessionStart,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> TimeSessionRead | JSONResponse:
    try:
        require_permission(user, "time_sessions.write")
        record = session_manager.start(
            db,
            dto.work_item_kind,
            dto.work_item_id,
            user.user_id,
            work_type=dto.work_type,
            context=SessionContext(latitude=dto.latitude, longitude=dto.longitude, environment=dto.environment),
            actor=user,
        )
        return to_read(record)
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.post("/{session_id}/stop", response_model=TimeSessionRead)
def stop_session(
    request: Request,
    session_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> TimeSessionRead | JSONResponse:
    try:
        require_permission(user, "time_sessions.write")
        return to_read(session_manager.stop(db, session_id, actor=user))
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.get("/active", response_model=TimeSessionRead | None)
def get_active_session(
    request: Request,
    worker_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> TimeSessionRead | None | JSONResponse:
    try:
        require_permission(user, "time_sessions.read")
        record = session_manager.get_active(db, worker_id or user.user_id, actor=user)
        return to_read(record) if record is not None else None
    except WorkItemError as exc:
        return domain_error_response(request, exc)


@router.get("", response_model=list[TimeSessionRead])
def list_sessions(
    request: Request,
    worker_id: uuid.UUID | None = Query(default=None),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[TimeSessionRead] | JSONResponse:
    try:
        require_permission(user, "time_sessions.read")
        records = session_manager.list_for_worker(
            db,
            worker_id or user.user_id,
            date_from=date_from,
            date_to=date_to,
            actor=user,
        )
        return [to_read(record) for record in records]
    except WorkItemError as exc:
        return domain_error_response(request, exc)
