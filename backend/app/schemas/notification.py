"""Pydantic schemas for deadline notifications."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field

from app.models.notification import NotificationSeverity


class NotificationResponse(BaseModel):
    id: uuid.UUID
    shipment_id: uuid.UUID
    rule_id: str
    severity: NotificationSeverity
    title: str
    message: str
    due_date: date | None = None
    details: dict | None = None
    is_read: bool = False
    read_at: datetime | None = None
    is_dismissed: bool = False
    dismissed_by: str | None = None
    dismissed_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class NotificationCheckResponse(BaseModel):
    status: str = "completed"
    created: int = 0
    evaluated: int = 0
    failed: int = 0
    skipped_shipment_ids: list[uuid.UUID] = Field(default_factory=list)
    timestamp: datetime


class NotificationStatsResponse(BaseModel):
    total_active: int = 0
    unread: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)


class DismissRequest(BaseModel):
    actor: str = "system"
