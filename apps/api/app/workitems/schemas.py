from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WorkItemCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    estimated_value: Decimal | None = Field(default=None, ge=0)
    source: str | None = None
    customer_id: UUID | None = None
    assigned_to_user_id: UUID | None = None


class WorkItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: str
    title: str
    description: str | None
    estimated_value: Decimal | None
    status: str
    status_label: str
    source: str | None
    organization_id: UUID
    customer_id: UUID | None
    assigned_to_user_id: UUID | None
    assigned_to_team_id: UUID | None
    created_at: datetime
    updated_at: datetime
    row_version: int


class StatusChangeRequest(BaseModel):
    status: str = Field(min_length=1)


class UserAssignmentRequest(BaseModel):
    user_id: UUID | None = None


class TeamAssignmentRequest(BaseModel):
    team_id: UUID | None = None


class StatusOption(BaseModel):
    value: str
    label: str
    is_initial: bool
    transitions_to: list[str]


class StatusGraphRead(BaseModel):
    kind: str
    statuses: list[StatusOption]


class ActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    work_item_kind: str
    work_item_id: UUID
    user_id: UUID | None
    activity_kind: str
    description: str
    old_value: str | None
    new_value: str | None
    created_at: datetime


class CustomActivityCreate(BaseModel):
    description: str = Field(min_length=1)
    old_value: str | None = None
    new_value: str | None = None


class NoteCreate(BaseModel):
    content: str = Field(min_length=1)

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content is required")
        return value


class NoteUpdate(NoteCreate):
    pass


class NoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    work_item_kind: str
    work_item_id: UUID
    user_id: UUID
    content: str
    created_at: datetime
    updated_at: datetime


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recipient_user_id: UUID
    subject: str
    body: str
    link: str | None
    is_read: bool
    created_at: datetime
    read_at: datetime | None


class WorkItemStats(BaseModel):
    kind: str
    total_items: int
    total_value: Decimal
    average_value: Decimal
    status_breakdown: dict[str, int]
    recent_items: list[WorkItemRead]


class LifecycleRead(BaseModel):
    item: WorkItemRead
    changed: bool
    activity: ActivityRead | None = None
    notifications_delivered: int = 0
    notifications_failed: int = 0
