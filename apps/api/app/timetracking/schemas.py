from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.workitems.statuses import WorkItemKind


class TimeSessionStart(BaseModel):
    work_item_kind: WorkItemKind = WorkItemKind.ORDER
    work_item_id: UUID
    work_type: str | None = Field(default=None, max_length=64)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    environment: str | None = None


class TimeSessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    worker_id: UUID
    work_item_kind: str
    work_item_id: UUID
    work_type: str | None
    started_at: datetime
    ended_at: datetime | None
    latitude: float | None
    longitude: float | None
    environment: str | None
    is_active: bool
    duration_seconds: int
