"""ORM models for the shipment aggregate and its land-transport legs.

The shipment carries two independent status sources: the derived columns
(``status``, ``status_reason``, ``status_calculated_at``) written only by the
status writer, and the override columns (``status_override*``) written only
by the override store.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class ShipmentStatus(str, enum.Enum):
    PLANNING = "planning"
    DELAYED = "delayed"
    SAILED = "sailed"
    AWAITING_CLEARANCE = "awaiting_clearance"
    PENDING_TRANSPORT = "pending_transport"
    LOADED_TO_FINAL = "loaded_to_final"
    ARRIVED = "arrived"
    DELIVERED = "delivered"
    RECEIVED = "received"
    QUALITY_ISSUE = "quality_issue"


class ShipmentDirection(str, enum.Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


def _status_enum() -> SAEnum:
    return SAEnum(
        ShipmentStatus,
        name="shipment_status",
        values_callable=lambda e: [m.value for m in e],
    )


class Shipment(Base, TimestampMixin):
    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sn: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    direction: Mapped[ShipmentDirection] = mapped_column(
        SAEnum(ShipmentDirection, name="shipment_direction", values_callable=lambda e: [m.value for m in e]),
        default=ShipmentDirection.INCOMING,
        nullable=False,
    )
    product_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    counterparty_name: Mapped[str | None] = mapped_column(String(300), nullable=True)

    # Scheduling
    agreed_shipping_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    ship_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    eta: Mapped[date | None] = mapped_column(Date, nullable=True)
    customs_clearance_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    free_time_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Documents
    booking_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    docs_draft_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    original_docs_sent: Mapped[bool] = mapped_column(Boolean, default=False)

    # Financials
    total_value_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    paid_value_usd: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Quality / warehouse
    quality_feedback_requested: Mapped[bool] = mapped_column(Boolean, default=False)
    warehouse_receipt_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    warehouse_receipt_has_issues: Mapped[bool] = mapped_column(Boolean, default=False)
    warehouse_receipt_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    warehouse_receipt_confirmed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    warehouse_receipt_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Derived status (status writer)
    status: Mapped[ShipmentStatus] = mapped_column(_status_enum(), default=ShipmentStatus.PLANNING, nullable=False)
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Manual override (override store)
    status_override: Mapped[ShipmentStatus | None] = mapped_column(_status_enum(), nullable=True)
    status_override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_override_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status_override_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class TransportLeg(Base, TimestampMixin):
    """One internal land-transport leg (truck) carrying part of a shipment."""

    __tablename__ = "transport_legs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False, index=True
    )
    truck_plate_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    driver_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
