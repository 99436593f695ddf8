"""Deadline notification rules — pure functions, no DB dependency.

Each rule is an independent watch over a shipment snapshot. Rules are
direction-gated (seller rules for outgoing shipments, buyer rules for incoming
ones), evaluated in declaration order, and every rule that matches produces a
candidate; this is not a first-match table.

Day thresholds come from Settings so operations can tune them per deployment.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta

from app.config import Settings, settings as default_settings
from app.models.notification import NotificationSeverity
from app.models.shipment import ShipmentDirection, ShipmentStatus
from app.status_engine.snapshot import ShipmentSnapshot

logger = logging.getLogger("shiptrack.notifications.rules")

Predicate = Callable[[ShipmentSnapshot, date, Settings], bool]
Render = Callable[[ShipmentSnapshot, date, Settings], str]

# Effective statuses at or beyond arrival at the port of discharge.
ARRIVED_STATUSES = frozenset({
    ShipmentStatus.AWAITING_CLEARANCE,
    ShipmentStatus.PENDING_TRANSPORT,
    ShipmentStatus.LOADED_TO_FINAL,
    ShipmentStatus.ARRIVED,
    ShipmentStatus.DELIVERED,
    ShipmentStatus.RECEIVED,
    ShipmentStatus.QUALITY_ISSUE,
})

DELIVERED_STATUSES = frozenset({
    ShipmentStatus.DELIVERED,
    ShipmentStatus.RECEIVED,
    ShipmentStatus.QUALITY_ISSUE,
})


@dataclass(frozen=True)
class NotificationCandidate:
    rule_id: str
    severity: NotificationSeverity
    title: str
    message: str
    due_date: date | None = None
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationRule:
    id: str
    direction: ShipmentDirection
    title: str | Render
    matches: Predicate
    severity: NotificationSeverity | Callable[[ShipmentSnapshot, date, Settings], NotificationSeverity]
    message: Render
    threshold_setting: str | None = None
    due_date: Callable[[ShipmentSnapshot, Settings], date | None] | None = None

    def evaluate(self, s: ShipmentSnapshot, today: date, cfg: Settings) -> NotificationCandidate | None:
        if s.direction != self.direction or not self.matches(s, today, cfg):
            return None

        severity = self.severity(s, today, cfg) if callable(self.severity) else self.severity
        title = self.title(s, today, cfg) if callable(self.title) else self.title
        details: dict = {"direction": s.direction.value}
        if s.current_status is not None:
            details["status"] = s.current_status.value
        if self.threshold_setting:
            details["threshold_days"] = getattr(cfg, self.threshold_setting)

        return NotificationCandidate(
            rule_id=self.id,
            severity=severity,
            title=title,
            message=self.message(s, today, cfg),
            due_date=self.due_date(s, cfg) if self.due_date else None,
            details=details,
        )


# ── Date arithmetic ──


def days_until(value: date | None, today: date) -> int | None:
    """Calendar days from today to value; negative once value has passed."""
    if value is None:
        return None
    return (value - today).days


def days_since(value: date | None, today: date) -> int | None:
    if value is None:
        return None
    return (today - value).days


def _fmt(value: date | None) -> str:
    return value.strftime("%d/%m/%Y") if value else "-"


def _has_balance(s: ShipmentSnapshot) -> bool:
    balance = s.balance_value_usd
    return balance is not None and balance > 0


def _deadline_severity(critical_setting: str):
    def severity(s: ShipmentSnapshot, today: date, cfg: Settings) -> NotificationSeverity:
        if days_until(s.agreed_shipping_date, today) <= getattr(cfg, critical_setting):
            return NotificationSeverity.CRITICAL
        return NotificationSeverity.WARNING

    return severity


def _deadline_title(critical_setting: str):
    def title(s: ShipmentSnapshot, today: date, cfg: Settings) -> str:
        if days_until(s.agreed_shipping_date, today) <= getattr(cfg, critical_setting):
            return "URGENT: Shipping deadline critical"
        return "Shipping deadline approaching"

    return title


def _deadline_matches(window_setting: str) -> Predicate:
    def matches(s: ShipmentSnapshot, today: date, cfg: Settings) -> bool:
        remaining = days_until(s.agreed_shipping_date, today)
        return (
            remaining is not None
            and remaining <= getattr(cfg, window_setting)
            and not s.has_booking_reference
        )

    return matches


def _deadline_message(s: ShipmentSnapshot, today: date, cfg: Settings) -> str:
    remaining = days_until(s.agreed_shipping_date, today)
    if remaining < 0:
        when = f"{-remaining} days overdue"
    elif remaining == 0:
        when = "today"
    else:
        when = f"{remaining} days"
    return f"Shipment {s.sn} must ship by {_fmt(s.agreed_shipping_date)} ({when}). No booking reference yet."


# ── Demurrage ──


def demurrage_days_left(s: ShipmentSnapshot, today: date) -> int | None:
    """Days of free time left at the port; None when not applicable.

    Free time starts at ETA. It stops counting on the clearance date, or keeps
    running against today while the shipment is uncleared.
    """
    if s.eta is None or s.eta > today:
        return None
    free_until = _free_time_end(s)
    if free_until is None:
        return None
    reference = s.customs_clearance_date if s.customs_clearance_date and s.customs_clearance_date <= today else today
    return (free_until - reference).days


def _free_time_end(s: ShipmentSnapshot, cfg: Settings | None = None) -> date | None:
    if s.eta is None or s.free_time_days is None:
        return None
    try:
        return s.eta + timedelta(days=s.free_time_days)
    except OverflowError:
        logger.warning("Shipment %s: free time of %s days is out of range; treating as absent", s.sn, s.free_time_days)
        return None


# ── Seller (outgoing) rules ──


SELLER_RULES: list[NotificationRule] = [
    NotificationRule(
        id="seller_shipping_deadline",
        direction=ShipmentDirection.OUTGOING,
        title=_deadline_title("seller_shipping_critical_days"),
        matches=_deadline_matches("seller_shipping_deadline_days"),
        severity=_deadline_severity("seller_shipping_critical_days"),
        message=_deadline_message,
        threshold_setting="seller_shipping_deadline_days",
        due_date=lambda s, cfg: s.agreed_shipping_date,
    ),
    NotificationRule(
        id="seller_booking_share",
        direction=ShipmentDirection.OUTGOING,
        title="Share booking details with customer",
        matches=lambda s, today, cfg: s.current_status == ShipmentStatus.SAILED and s.eta is not None,
        severity=NotificationSeverity.INFO,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn} is booked (ETA {_fmt(s.eta)}). Share booking details with the customer."
        ),
    ),
    NotificationRule(
        id="seller_goods_loaded",
        direction=ShipmentDirection.OUTGOING,
        title="Issue shipping documents",
        matches=lambda s, today, cfg: (
            s.current_status in (ShipmentStatus.SAILED, ShipmentStatus.AWAITING_CLEARANCE)
            and s.ship_date is not None
            and s.ship_date <= today
        ),
        severity=NotificationSeverity.WARNING,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn} is loaded. Customs agent must issue export documents; "
            "in-house shipping documents must be issued."
        ),
    ),
    NotificationRule(
        id="seller_request_balance",
        direction=ShipmentDirection.OUTGOING,
        title="Request balance payment from customer",
        matches=lambda s, today, cfg: (
            s.eta is not None
            and days_until(s.eta, today) <= cfg.balance_reminder_days
            and _has_balance(s)
        ),
        severity=NotificationSeverity.INFO,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn} ETA is {_fmt(s.eta)}. "
            f"Ask the customer to pay the balance of ${s.balance_value_usd:,.2f}."
        ),
        threshold_setting="balance_reminder_days",
        due_date=lambda s, cfg: s.eta,
    ),
    NotificationRule(
        id="seller_arrival_followup",
        direction=ShipmentDirection.OUTGOING,
        title="Follow up on arrival with customer",
        matches=lambda s, today, cfg: (
            s.eta is not None
            and days_since(s.eta, today) >= cfg.arrival_followup_days
            and s.current_status in ARRIVED_STATUSES
        ),
        severity=NotificationSeverity.INFO,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn} arrived {days_since(s.eta, today)} days ago. Confirm receipt with the customer."
        ),
        threshold_setting="arrival_followup_days",
    ),
    NotificationRule(
        id="seller_quality_feedback",
        direction=ShipmentDirection.OUTGOING,
        title="Request quality feedback",
        matches=lambda s, today, cfg: (
            s.eta is not None
            and days_since(s.eta, today) >= cfg.quality_feedback_days
            and not s.quality_feedback_requested
        ),
        severity=NotificationSeverity.INFO,
        message=lambda s, today, cfg: f"Shipment {s.sn}: ask the customer for feedback on product quality.",
        threshold_setting="quality_feedback_days",
    ),
    NotificationRule(
        id="seller_send_original_docs",
        direction=ShipmentDirection.OUTGOING,
        title="Send original documents to customer",
        matches=lambda s, today, cfg: (
            s.total_value_usd is not None
            and (s.paid_value_usd or 0) >= s.total_value_usd
            and s.docs_draft_approved
            and not s.original_docs_sent
        ),
        severity=NotificationSeverity.WARNING,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn}: payment received and drafts approved. Send original documents via courier."
        ),
    ),
]


# ── Buyer (incoming) rules ──


BUYER_RULES: list[NotificationRule] = [
    NotificationRule(
        id="shipping_deadline_approaching",
        direction=ShipmentDirection.INCOMING,
        title=_deadline_title("buyer_shipping_critical_days"),
        matches=_deadline_matches("buyer_shipping_deadline_days"),
        severity=_deadline_severity("buyer_shipping_critical_days"),
        message=_deadline_message,
        threshold_setting="buyer_shipping_deadline_days",
        due_date=lambda s, cfg: s.agreed_shipping_date,
    ),
    NotificationRule(
        id="balance_payment_due",
        direction=ShipmentDirection.INCOMING,
        title="Balance payment planning needed",
        matches=lambda s, today, cfg: (
            s.eta is not None
            and cfg.balance_critical_days < days_until(s.eta, today) <= cfg.balance_reminder_days
            and _has_balance(s)
        ),
        severity=NotificationSeverity.WARNING,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn} ETA is {_fmt(s.eta)}. Plan the balance payment of ${s.balance_value_usd:,.2f}."
        ),
        threshold_setting="balance_reminder_days",
        due_date=lambda s, cfg: s.eta,
    ),
    NotificationRule(
        id="balance_payment_critical",
        direction=ShipmentDirection.INCOMING,
        title="URGENT: Balance payment overdue",
        matches=lambda s, today, cfg: (
            s.eta is not None
            and 0 <= days_until(s.eta, today) <= cfg.balance_critical_days
            and _has_balance(s)
        ),
        severity=NotificationSeverity.CRITICAL,
        message=lambda s, today, cfg: (
            f"ETA in {days_until(s.eta, today)} days. Balance payment for shipment {s.sn} must be made now. "
            f"Amount: ${s.balance_value_usd:,.2f}"
        ),
        threshold_setting="balance_critical_days",
        due_date=lambda s, cfg: s.eta,
    ),
    NotificationRule(
        id="pod_clearance_check",
        direction=ShipmentDirection.INCOMING,
        title="Check clearance status",
        matches=lambda s, today, cfg: (
            s.current_status == ShipmentStatus.AWAITING_CLEARANCE
            and s.eta is not None
            and days_since(s.eta, today) >= cfg.clearance_check_days
        ),
        severity=NotificationSeverity.INFO,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn} has arrived. Check the clearance timeline with the customs agent."
        ),
        threshold_setting="clearance_check_days",
    ),
    NotificationRule(
        id="clearance_overdue",
        direction=ShipmentDirection.INCOMING,
        title="Clearance overdue",
        matches=lambda s, today, cfg: (
            s.current_status == ShipmentStatus.AWAITING_CLEARANCE
            and not (s.customs_clearance_date and s.customs_clearance_date <= today)
            and s.eta is not None
            and days_since(s.eta, today) >= cfg.clearance_overdue_days
        ),
        severity=NotificationSeverity.WARNING,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn} arrived {days_since(s.eta, today)} days ago and is still not cleared."
        ),
        threshold_setting="clearance_overdue_days",
    ),
    NotificationRule(
        id="delivery_status_check",
        direction=ShipmentDirection.INCOMING,
        title="Delivery status update needed",
        matches=lambda s, today, cfg: (
            s.eta is not None
            and days_since(s.eta, today) >= cfg.delivery_check_days
            and s.current_status not in DELIVERED_STATUSES
        ),
        severity=NotificationSeverity.WARNING,
        message=lambda s, today, cfg: (
            f"It has been {days_since(s.eta, today)} days since ETA for shipment {s.sn}. "
            "Please update the delivery status."
        ),
        threshold_setting="delivery_check_days",
    ),
    NotificationRule(
        id="quality_check_needed",
        direction=ShipmentDirection.INCOMING,
        title="Quality check required",
        matches=lambda s, today, cfg: s.current_status == ShipmentStatus.DELIVERED,
        severity=NotificationSeverity.INFO,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn} has been delivered. Request a warehouse quality inspection."
        ),
    ),
    NotificationRule(
        id="demurrage_warning",
        direction=ShipmentDirection.INCOMING,
        title="Free time ending soon",
        matches=lambda s, today, cfg: (
            (left := demurrage_days_left(s, today)) is not None and 0 <= left <= cfg.demurrage_warning_days
        ),
        severity=NotificationSeverity.WARNING,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn}: {demurrage_days_left(s, today)} days of free time left "
            f"(ends {_fmt(_free_time_end(s, cfg))}). Clear and collect to avoid demurrage."
        ),
        threshold_setting="demurrage_warning_days",
        due_date=_free_time_end,
    ),
    NotificationRule(
        id="demurrage_exceeded",
        direction=ShipmentDirection.INCOMING,
        title="Demurrage charges accruing",
        matches=lambda s, today, cfg: (
            (left := demurrage_days_left(s, today)) is not None and left < 0
        ),
        severity=NotificationSeverity.CRITICAL,
        message=lambda s, today, cfg: (
            f"Shipment {s.sn}: free time ended {_fmt(_free_time_end(s, cfg))}, "
            f"{-demurrage_days_left(s, today)} days of demurrage."
        ),
        due_date=_free_time_end,
    ),
]


NOTIFICATION_RULES: list[NotificationRule] = SELLER_RULES + BUYER_RULES


def evaluate_rules(
    snapshot: ShipmentSnapshot,
    today: date | None = None,
    cfg: Settings | None = None,
) -> list[NotificationCandidate]:
    """Every rule that currently holds for the snapshot, in declaration order."""
    today = today or date.today()
    cfg = cfg or default_settings
    candidates = []
    for rule in NOTIFICATION_RULES:
        candidate = rule.evaluate(snapshot, today, cfg)
        if candidate is not None:
            candidates.append(candidate)
    return candidates
