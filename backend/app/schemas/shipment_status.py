"""Pydantic schemas for shipment status views and overrides."""

import uuid
from datetime import datetime

from pydantic import BaseModel

from app.models.shipment import ShipmentStatus
from app.schemas.audit import AuditEventResponse


class ShipmentStatusResponse(BaseModel):
    shipment_id: uuid.UUID
    sn: str
    status: ShipmentStatus
    reason: str | None = None
    label: str
    order: int
    is_overridden: bool = False
    override_by: str | None = None
    override_at: datetime | None = None
    derived_status: ShipmentStatus
    derived_reason: str | None = None
    status_calculated_at: datetime | None = None

    model_config = {"from_attributes": True}


class StatusOverrideRequest(BaseModel):
    # Validated by ShipmentStatusService; bad values map to 400.
    status: str
    reason: str = ""
    actor: str | None = None


class ClearOverrideRequest(BaseModel):
    actor: str = "system"


class StatusOptionResponse(BaseModel):
    value: str
    label: str
    order: int
    color: str
    description: str


class StatusHistoryResponse(BaseModel):
    shipment_id: uuid.UUID
    events: list[AuditEventResponse]
    total: int


class WarehouseReceiptRequest(BaseModel):
    has_issues: bool = False
    actor: str = "system"
    notes: str | None = None
