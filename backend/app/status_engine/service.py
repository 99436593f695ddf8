"""ShipmentStatusService — status writer and override store.

The derived columns and the override columns are written independently: the
writer recomputes and stores the derived (status, reason) on every call, even
while an override is active, so clearing an override only has to drop the
override columns and recompute. ``resolve_status_view`` is the single place
that decides which of the two is authoritative for readers.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.audit_log.service import AuditService
from app.config import Settings
from app.exceptions import NotFoundError, ValidationError
from app.models.audit import AuditEvent
from app.models.base import utcnow
from app.models.shipment import Shipment, ShipmentStatus
from app.status_engine.locks import ShipmentLocks, RedisShipmentLocks, build_shipment_locks
from app.status_engine.rules import (
    TRIGGER_MANUAL_OVERRIDE,
    TRIGGER_WAREHOUSE_CONFIRM,
    derive_status,
    get_status_display,
    should_recalculate,
)
from app.status_engine.snapshot import SnapshotReader

logger = logging.getLogger("shiptrack.status_engine")


@dataclass
class StatusView:
    shipment_id: uuid.UUID
    sn: str
    status: ShipmentStatus
    reason: str | None
    is_overridden: bool
    derived_status: ShipmentStatus
    derived_reason: str | None
    status_calculated_at: datetime | None = None
    override_by: str | None = None
    override_at: datetime | None = None

    @property
    def label(self) -> str:
        return get_status_display(self.status).label

    @property
    def order(self) -> int:
        return get_status_display(self.status).order


@dataclass
class RecalculationSummary:
    processed: int = 0
    updated: int = 0
    failed: int = 0
    failed_shipment_ids: list[uuid.UUID] = field(default_factory=list)


def resolve_status_view(shipment: Shipment) -> StatusView:
    """Read-side resolution: an active override masks the derived status."""
    overridden = shipment.status_override is not None
    return StatusView(
        shipment_id=shipment.id,
        sn=shipment.sn,
        status=shipment.status_override if overridden else shipment.status,
        reason=shipment.status_override_reason if overridden else shipment.status_reason,
        is_overridden=overridden,
        derived_status=shipment.status,
        derived_reason=shipment.status_reason,
        status_calculated_at=shipment.status_calculated_at,
        override_by=shipment.status_override_by,
        override_at=shipment.status_override_at,
    )


def _actor_type(actor: str) -> str:
    return "system" if actor in ("system", "scheduled_job") else "user"


class ShipmentStatusService:
    """Derives, writes, overrides and resolves shipment statuses."""

    def __init__(self, settings: Settings, locks: ShipmentLocks | RedisShipmentLocks | None = None):
        self.min_reason_length = settings.override_reason_min_length
        self.locks = locks or build_shipment_locks(settings)

    async def get_status(self, db: AsyncSession, shipment_id: uuid.UUID) -> StatusView:
        shipment = await self._get_shipment(db, shipment_id)
        return resolve_status_view(shipment)

    async def recalculate(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        actor: str = "system",
        today: date | None = None,
    ) -> StatusView:
        """Recompute the derived status from a fresh snapshot and store it."""
        shipment = await self._lock_shipment(db, shipment_id)
        await self._write_derived(db, shipment, actor, today)
        return resolve_status_view(shipment)

    async def set_override(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        status: ShipmentStatus | str,
        reason: str | None,
        actor: str | None,
        today: date | None = None,
    ) -> StatusView:
        """Pin a manual status until it is explicitly cleared."""
        target, reason, actor = self._validate_override(status, reason, actor)

        shipment = await self._lock_shipment(db, shipment_id)
        previous = resolve_status_view(shipment)

        shipment.status_override = target
        shipment.status_override_reason = reason
        shipment.status_override_by = actor
        shipment.status_override_at = utcnow()
        await db.flush()

        await AuditService.log_event(
            db,
            event_type="SHIPMENT_STATUS_OVERRIDE_SET",
            entity_type="shipment",
            entity_id=shipment.id,
            action="override",
            actor=actor,
            actor_type="user",
            previous_state={"status": previous.status.value, "reason": previous.reason},
            new_state={"status": target.value, "trigger_type": TRIGGER_MANUAL_OVERRIDE},
            rationale=reason,
        )
        logger.info(
            "Manual override: %s %s -> %s by %s", shipment.sn, previous.status.value, target.value, actor
        )

        # Derived status keeps tracking the data underneath the override.
        await self._write_derived(db, shipment, actor, today)
        return resolve_status_view(shipment)

    async def clear_override(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        actor: str = "system",
        today: date | None = None,
    ) -> StatusView:
        """Drop the override and make a freshly derived status authoritative."""
        shipment = await self._lock_shipment(db, shipment_id)
        if shipment.status_override is None:
            raise NotFoundError(f"Shipment {shipment.sn} has no override to clear")

        previous = {
            "status": shipment.status_override.value,
            "reason": shipment.status_override_reason,
            "override_by": shipment.status_override_by,
        }
        shipment.status_override = None
        shipment.status_override_reason = None
        shipment.status_override_by = None
        shipment.status_override_at = None
        await db.flush()

        await self._write_derived(db, shipment, actor, today)

        await AuditService.log_event(
            db,
            event_type="SHIPMENT_STATUS_OVERRIDE_CLEARED",
            entity_type="shipment",
            entity_id=shipment.id,
            action="clear_override",
            actor=actor,
            actor_type=_actor_type(actor),
            previous_state=previous,
            new_state={"status": shipment.status.value, "reason": shipment.status_reason},
        )
        logger.info(
            "Manual override cleared: %s %s -> %s (auto-calculated)",
            shipment.sn, previous["status"], shipment.status.value,
        )
        return resolve_status_view(shipment)

    async def confirm_warehouse_receipt(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        has_issues: bool,
        actor: str = "system",
        notes: str | None = None,
        today: date | None = None,
    ) -> StatusView:
        """Record the warehouse receipt and recompute when the flags moved.

        A receipt with issues lands the shipment on quality_issue, a clean one
        on received. Repeating a confirmation with the same outcome only
        refreshes who confirmed it and the notes.
        """
        actor = (actor or "").strip() or "system"
        shipment = await self._lock_shipment(db, shipment_id)

        changed = []
        if not shipment.warehouse_receipt_confirmed:
            changed.append("warehouse_receipt_confirmed")
        if bool(shipment.warehouse_receipt_has_issues) != has_issues:
            changed.append("warehouse_receipt_has_issues")

        previous = {
            "confirmed": bool(shipment.warehouse_receipt_confirmed),
            "has_issues": bool(shipment.warehouse_receipt_has_issues),
        }
        shipment.warehouse_receipt_confirmed = True
        shipment.warehouse_receipt_has_issues = has_issues
        shipment.warehouse_receipt_confirmed_at = utcnow()
        shipment.warehouse_receipt_confirmed_by = actor
        shipment.warehouse_receipt_notes = notes
        await db.flush()

        await AuditService.log_event(
            db,
            event_type="SHIPMENT_WAREHOUSE_RECEIPT_CONFIRMED",
            entity_type="shipment",
            entity_id=shipment.id,
            action="confirm_receipt",
            actor=actor,
            actor_type=_actor_type(actor),
            previous_state=previous,
            new_state={"confirmed": True, "has_issues": has_issues, "trigger_type": TRIGGER_WAREHOUSE_CONFIRM},
            rationale=notes,
        )
        logger.info(
            "Warehouse receipt confirmed for %s: %s", shipment.sn, "with issues" if has_issues else "ok"
        )

        if should_recalculate(changed):
            await self._write_derived(db, shipment, actor, today)
        return resolve_status_view(shipment)

    async def recalculate_all(self, db: AsyncSession, today: date | None = None) -> RecalculationSummary:
        """Recompute every active shipment; failures are counted, not raised."""
        summary = RecalculationSummary()
        for shipment, _ in await SnapshotReader.load_active(db):
            # A rolled-back savepoint expires the row, so read its keys up front.
            shipment_id, sn = shipment.id, shipment.sn
            summary.processed += 1
            try:
                async with db.begin_nested():
                    current = await self._lock_shipment(db, shipment_id)
                    if await self._write_derived(db, current, "scheduled_job", today):
                        summary.updated += 1
            except Exception:
                logger.exception("Status recalculation failed for shipment %s", sn)
                summary.failed += 1
                summary.failed_shipment_ids.append(shipment_id)

        logger.info(
            "Status recalculation complete: %d/%d updated, %d errors",
            summary.updated, summary.processed, summary.failed,
        )
        return summary

    async def history(
        self, db: AsyncSession, shipment_id: uuid.UUID, limit: int = 50
    ) -> tuple[list[AuditEvent], int]:
        await self._get_shipment(db, shipment_id)
        return await AuditService.get_status_history(db, shipment_id, limit=limit)

    # ── internals ──

    async def _get_shipment(
        self, db: AsyncSession, shipment_id: uuid.UUID, for_update: bool = False
    ) -> Shipment:
        shipment = await SnapshotReader.get_shipment(db, shipment_id, for_update=for_update)
        if shipment is None:
            raise NotFoundError(f"Shipment {shipment_id} not found")
        return shipment

    async def _lock_shipment(self, db: AsyncSession, shipment_id: uuid.UUID) -> Shipment:
        """Serialize writers on this shipment until db's transaction ends."""
        await self.locks.acquire_for(db, shipment_id)
        return await self._get_shipment(db, shipment_id, for_update=True)

    async def _write_derived(
        self, db: AsyncSession, shipment: Shipment, actor: str, today: date | None
    ) -> bool:
        """Store the derived status. Returns True when the status changed."""
        snapshot = await SnapshotReader.load(db, shipment)
        result = derive_status(snapshot, today)
        previous = shipment.status

        shipment.status = result.status
        shipment.status_reason = result.reason
        shipment.status_calculated_at = utcnow()
        await db.flush()

        if previous == result.status:
            return False

        await AuditService.log_event(
            db,
            event_type="SHIPMENT_STATUS_CHANGED",
            entity_type="shipment",
            entity_id=shipment.id,
            action="recalculate",
            actor=actor,
            actor_type=_actor_type(actor),
            previous_state={"status": previous.value if previous else None},
            new_state={"status": result.status.value, "trigger_type": result.trigger_type},
            event_data={"snapshot": snapshot.as_dict()},
            rationale=result.reason,
        )
        logger.info(
            "Status updated: %s %s -> %s", shipment.sn, previous.value if previous else None, result.status.value
        )
        return True

    def _validate_override(
        self, status: ShipmentStatus | str, reason: str | None, actor: str | None
    ) -> tuple[ShipmentStatus, str, str]:
        try:
            target = ShipmentStatus(status)
        except ValueError:
            allowed = ", ".join(s.value for s in ShipmentStatus)
            raise ValidationError(f"Invalid status {status!r}. Must be one of: {allowed}")

        reason = (reason or "").strip()
        if len(reason) < self.min_reason_length:
            raise ValidationError(
                f"Override reason must be at least {self.min_reason_length} characters"
            )

        actor = (actor or "").strip()
        if not actor:
            raise ValidationError("Override requires the acting user")

        return target, reason, actor
