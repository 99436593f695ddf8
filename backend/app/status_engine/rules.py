"""Status derivation rules — pure functions, no DB dependency, easy to unit test.

The rule table is evaluated top to bottom and the first match wins. Problem
and terminal states come first, then the workflow states in reverse
chronological order, so a shipment that satisfies several conditions at once
lands on the most advanced one. Dates equal to ``today`` count as passed.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from app.models.shipment import ShipmentStatus
from app.status_engine.snapshot import ShipmentSnapshot

TRIGGER_WAREHOUSE_CONFIRM = "warehouse_confirm"
TRIGGER_DATE_CHECK = "date_check"
TRIGGER_DATA_CHANGE = "data_change"
TRIGGER_INITIAL = "initial"
TRIGGER_MANUAL_OVERRIDE = "manual_override"

# Shipment fields whose change requires a status recompute.
STATUS_TRIGGER_FIELDS = frozenset({
    "booking_reference",
    "eta",
    "agreed_shipping_date",
    "customs_clearance_date",
    "delivery_date",
    "warehouse_receipt_confirmed",
    "warehouse_receipt_has_issues",
    "transport_legs",
})


@dataclass(frozen=True)
class StatusDisplay:
    label: str
    order: int
    color: str
    description: str


STATUS_DISPLAY: dict[ShipmentStatus, StatusDisplay] = {
    ShipmentStatus.PLANNING: StatusDisplay(
        "Planning", 1, "gray", "Shipment is being planned. Waiting for booking details."
    ),
    ShipmentStatus.DELAYED: StatusDisplay(
        "Delayed", 2, "red", "Agreed shipping date has passed but no Bill of Lading received."
    ),
    ShipmentStatus.SAILED: StatusDisplay(
        "Sailed / In Transit", 3, "blue", "Shipment is in transit. Bill of Lading received."
    ),
    ShipmentStatus.AWAITING_CLEARANCE: StatusDisplay(
        "Awaiting Clearance", 4, "amber", "Shipment has arrived at port. Waiting for customs clearance."
    ),
    ShipmentStatus.PENDING_TRANSPORT: StatusDisplay(
        "Pending Transport", 5, "indigo", "Customs cleared. Waiting for vehicle assignment."
    ),
    ShipmentStatus.LOADED_TO_FINAL: StatusDisplay(
        "On Way to Final Destination", 6, "purple", "Transport assigned. On the way to final destination."
    ),
    ShipmentStatus.ARRIVED: StatusDisplay(
        "Arrived", 7, "teal", "Shipment arrived at final destination."
    ),
    ShipmentStatus.DELIVERED: StatusDisplay(
        "Delivered", 8, "cyan", "Delivered to final destination. Awaiting warehouse confirmation."
    ),
    ShipmentStatus.RECEIVED: StatusDisplay(
        "Received", 9, "green", "Shipment received at warehouse without issues."
    ),
    ShipmentStatus.QUALITY_ISSUE: StatusDisplay(
        "Quality Issue", 10, "orange", "Shipment received with quality issues. Follow-up required."
    ),
}


@dataclass(frozen=True)
class StatusResult:
    status: ShipmentStatus
    reason: str
    trigger_type: str


@dataclass(frozen=True)
class StatusRule:
    status: ShipmentStatus
    matches: Callable[[ShipmentSnapshot, date], bool]
    reason: Callable[[ShipmentSnapshot, date], str]
    trigger_type: str


def _passed(value: date | None, today: date) -> bool:
    return value is not None and value <= today


def _cleared(s: ShipmentSnapshot, today: date) -> bool:
    return _passed(s.customs_clearance_date, today)


def _planning_reason(s: ShipmentSnapshot, today: date) -> str:
    if not s.has_booking_reference and s.eta is None:
        return "Waiting for Bill of Lading and ETA."
    if not s.has_booking_reference:
        return "Waiting for Bill of Lading."
    if s.eta is None:
        return "Waiting for ETA."
    return "Shipment is in planning phase."


def _delayed_reason(s: ShipmentSnapshot, today: date) -> str:
    days_late = (today - s.agreed_shipping_date).days
    return (
        f"Agreed shipping date ({s.agreed_shipping_date.isoformat()}) passed {days_late} days ago. "
        "No Bill of Lading received."
    )


STATUS_RULES: list[StatusRule] = [
    StatusRule(
        ShipmentStatus.QUALITY_ISSUE,
        lambda s, today: s.warehouse_receipt_confirmed and s.warehouse_receipt_has_issues,
        lambda s, today: "Warehouse confirmed receipt with quality issues.",
        TRIGGER_WAREHOUSE_CONFIRM,
    ),
    StatusRule(
        ShipmentStatus.RECEIVED,
        lambda s, today: s.warehouse_receipt_confirmed and not s.warehouse_receipt_has_issues,
        lambda s, today: "Warehouse confirmed receipt without issues.",
        TRIGGER_WAREHOUSE_CONFIRM,
    ),
    StatusRule(
        ShipmentStatus.DELIVERED,
        lambda s, today: _passed(s.delivery_date, today),
        lambda s, today: f"Delivered to final destination on {s.delivery_date.isoformat()}.",
        TRIGGER_DATE_CHECK,
    ),
    StatusRule(
        ShipmentStatus.LOADED_TO_FINAL,
        lambda s, today: s.transport_underway,
        lambda s, today: "Transport assigned. On the way to final destination.",
        TRIGGER_DATA_CHANGE,
    ),
    StatusRule(
        ShipmentStatus.PENDING_TRANSPORT,
        lambda s, today: _cleared(s, today) and not s.transport_assigned,
        lambda s, today: (
            f"Customs cleared on {s.customs_clearance_date.isoformat()}. Waiting for vehicle assignment."
        ),
        TRIGGER_DATA_CHANGE,
    ),
    StatusRule(
        ShipmentStatus.AWAITING_CLEARANCE,
        lambda s, today: _passed(s.eta, today) and not _cleared(s, today),
        lambda s, today: f"ETA passed ({s.eta.isoformat()}) without clearance date. Awaiting customs clearance.",
        TRIGGER_DATE_CHECK,
    ),
    StatusRule(
        ShipmentStatus.SAILED,
        lambda s, today: s.has_booking_reference and s.eta is not None,
        lambda s, today: f"Bill of Lading received. ETA: {s.eta.isoformat()}.",
        TRIGGER_DATA_CHANGE,
    ),
    StatusRule(
        ShipmentStatus.DELAYED,
        lambda s, today: _passed(s.agreed_shipping_date, today) and not s.has_booking_reference,
        _delayed_reason,
        TRIGGER_DATE_CHECK,
    ),
]


def derive_status(snapshot: ShipmentSnapshot, today: date | None = None) -> StatusResult:
    """Compute (status, reason) for a snapshot. Total: always returns a result."""
    today = today or date.today()
    for rule in STATUS_RULES:
        if rule.matches(snapshot, today):
            return StatusResult(rule.status, rule.reason(snapshot, today), rule.trigger_type)
    return StatusResult(ShipmentStatus.PLANNING, _planning_reason(snapshot, today), TRIGGER_INITIAL)


def should_recalculate(changed_fields: list[str] | set[str]) -> bool:
    return any(field in STATUS_TRIGGER_FIELDS for field in changed_fields)


def get_status_display(status: ShipmentStatus | str) -> StatusDisplay:
    try:
        return STATUS_DISPLAY[ShipmentStatus(status)]
    except ValueError:
        return STATUS_DISPLAY[ShipmentStatus.PLANNING]
