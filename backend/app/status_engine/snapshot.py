"""Shipment snapshot reader — the read-only projection the engines decide on.

A snapshot is assembled once per evaluation and never mutated. Corrupt field
values (unparseable dates, non-numeric amounts) are logged and read as
absent, so a single malformed shipment degrades to "signal missing" instead of
failing the evaluation.
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ComputationError
from app.models.shipment import Shipment, ShipmentDirection, ShipmentStatus, TransportLeg

logger = logging.getLogger("shiptrack.status_engine.snapshot")


@dataclass(frozen=True)
class ShipmentSnapshot:
    id: uuid.UUID | None = None
    sn: str = ""
    direction: ShipmentDirection = ShipmentDirection.INCOMING

    agreed_shipping_date: date | None = None
    ship_date: date | None = None
    eta: date | None = None
    customs_clearance_date: date | None = None
    delivery_date: date | None = None
    free_time_days: int | None = None

    booking_reference: str | None = None
    docs_draft_approved: bool = False
    original_docs_sent: bool = False

    total_value_usd: float | None = None
    paid_value_usd: float | None = None

    quality_feedback_requested: bool = False
    warehouse_receipt_confirmed: bool = False
    warehouse_receipt_has_issues: bool = False

    transport_assigned: bool = False
    transport_underway: bool = False

    current_status: ShipmentStatus | None = None

    product_text: str | None = None
    counterparty_name: str | None = None

    @property
    def has_booking_reference(self) -> bool:
        return bool(self.booking_reference and self.booking_reference.strip())

    @property
    def balance_value_usd(self) -> float | None:
        if self.total_value_usd is None:
            return None
        return self.total_value_usd - (self.paid_value_usd or 0.0)

    def as_dict(self) -> dict:
        """JSON-safe dump recorded alongside audit events."""
        return {
            "sn": self.sn,
            "direction": self.direction.value,
            "agreed_shipping_date": _iso(self.agreed_shipping_date),
            "ship_date": _iso(self.ship_date),
            "eta": _iso(self.eta),
            "customs_clearance_date": _iso(self.customs_clearance_date),
            "delivery_date": _iso(self.delivery_date),
            "booking_reference": self.booking_reference,
            "warehouse_receipt_confirmed": self.warehouse_receipt_confirmed,
            "warehouse_receipt_has_issues": self.warehouse_receipt_has_issues,
            "transport_assigned": self.transport_assigned,
            "transport_underway": self.transport_underway,
        }


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


# ── Coercion helpers ──


def coerce_date(value: Any, field: str) -> date | None:
    """Normalize a stored value to a calendar date.

    Raises ComputationError for values that cannot be read as a date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as e:
            raise ComputationError(f"{field}: unparseable date {value!r}") from e
    raise ComputationError(f"{field}: unsupported date value {value!r}")


def coerce_amount(value: Any, field: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ComputationError(f"{field}: non-numeric amount {value!r}") from e


def coerce_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ComputationError(f"{field}: non-integer value {value!r}") from e


def _safe(coerce, value: Any, field: str, sn: str):
    try:
        return coerce(value, field)
    except ComputationError as e:
        logger.warning("Shipment %s: %s; treating as absent", sn or "?", e)
        return None


def _coerce_direction(value: Any) -> ShipmentDirection:
    if isinstance(value, ShipmentDirection):
        return value
    try:
        return ShipmentDirection(value)
    except ValueError:
        return ShipmentDirection.INCOMING


def _coerce_status(value: Any) -> ShipmentStatus | None:
    if value is None or isinstance(value, ShipmentStatus):
        return value
    try:
        return ShipmentStatus(value)
    except ValueError:
        logger.warning("Unknown shipment status %r; ignoring", value)
        return None


def summarize_transport(legs: Iterable[TransportLeg]) -> tuple[bool, bool, date | None]:
    """Aggregate transport legs into (assigned, underway, all_delivered_on).

    A leg counts as assigned once a vehicle plate is recorded. The shipment is
    underway while any assigned leg is undelivered; it is delivered once every
    active leg carries a delivery date.
    """
    active = [leg for leg in legs if not leg.is_deleted]
    assigned = [leg for leg in active if leg.truck_plate_number and leg.truck_plate_number.strip()]
    underway = any(leg.delivered_at is None for leg in assigned)

    delivered_on = None
    if active and all(leg.delivered_at is not None for leg in active):
        delivered_on = max(leg.delivered_at for leg in active)

    return bool(assigned), underway, delivered_on


def build_snapshot(shipment: Shipment, legs: Iterable[TransportLeg] = ()) -> ShipmentSnapshot:
    sn = shipment.sn
    assigned, underway, legs_delivered_on = summarize_transport(legs)
    delivery_date = _safe(coerce_date, shipment.delivery_date, "delivery_date", sn) or legs_delivered_on

    return ShipmentSnapshot(
        id=shipment.id,
        sn=sn,
        direction=_coerce_direction(shipment.direction),
        agreed_shipping_date=_safe(coerce_date, shipment.agreed_shipping_date, "agreed_shipping_date", sn),
        ship_date=_safe(coerce_date, shipment.ship_date, "ship_date", sn),
        eta=_safe(coerce_date, shipment.eta, "eta", sn),
        customs_clearance_date=_safe(coerce_date, shipment.customs_clearance_date, "customs_clearance_date", sn),
        delivery_date=delivery_date,
        free_time_days=_safe(coerce_int, shipment.free_time_days, "free_time_days", sn),
        booking_reference=shipment.booking_reference,
        docs_draft_approved=bool(shipment.docs_draft_approved),
        original_docs_sent=bool(shipment.original_docs_sent),
        total_value_usd=_safe(coerce_amount, shipment.total_value_usd, "total_value_usd", sn),
        paid_value_usd=_safe(coerce_amount, shipment.paid_value_usd, "paid_value_usd", sn),
        quality_feedback_requested=bool(shipment.quality_feedback_requested),
        warehouse_receipt_confirmed=bool(shipment.warehouse_receipt_confirmed),
        warehouse_receipt_has_issues=bool(shipment.warehouse_receipt_has_issues),
        transport_assigned=assigned,
        transport_underway=underway,
        current_status=_coerce_status(shipment.status_override or shipment.status),
        product_text=shipment.product_text,
        counterparty_name=shipment.counterparty_name,
    )


class SnapshotReader:
    """Pure reads of the fields status and notification decisions need."""

    @staticmethod
    async def get_shipment(
        db: AsyncSession, shipment_id: uuid.UUID, for_update: bool = False
    ) -> Shipment | None:
        query = select(Shipment).where(Shipment.id == shipment_id, Shipment.is_deleted == False)  # noqa: E712
        if for_update:
            # Row lock until commit; refresh attributes an earlier read cached.
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_legs(db: AsyncSession, shipment_ids: list[uuid.UUID]) -> dict[uuid.UUID, list[TransportLeg]]:
        if not shipment_ids:
            return {}
        result = await db.execute(
            select(TransportLeg).where(
                TransportLeg.shipment_id.in_(shipment_ids),
                TransportLeg.is_deleted == False,  # noqa: E712
            )
        )
        legs: dict[uuid.UUID, list[TransportLeg]] = {}
        for leg in result.scalars().all():
            legs.setdefault(leg.shipment_id, []).append(leg)
        return legs

    @classmethod
    async def load(cls, db: AsyncSession, shipment: Shipment) -> ShipmentSnapshot:
        legs = await cls.get_legs(db, [shipment.id])
        return build_snapshot(shipment, legs.get(shipment.id, []))

    @classmethod
    async def load_active(cls, db: AsyncSession) -> list[tuple[Shipment, ShipmentSnapshot]]:
        """All non-deleted shipments with their snapshots, ordered by SN."""
        result = await db.execute(
            select(Shipment).where(Shipment.is_deleted == False).order_by(Shipment.sn)  # noqa: E712
        )
        shipments = list(result.scalars().all())
        legs = await cls.get_legs(db, [s.id for s in shipments])
        return [(s, build_snapshot(s, legs.get(s.id, []))) for s in shipments]
