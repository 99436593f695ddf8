"""NotificationService — deadline scan, deduplication and notification inbox.

run_check() walks every active shipment, evaluates the rule set and persists a
notification for each (shipment, rule) pair that is newly true. The dedup key is
(shipment_id, rule_id) among undismissed notifications; it is checked in memory
against a prefetched key set and enforced again by the partial unique index, so
a concurrent scan that loses the insert race is treated as "already active".

Notifications are never deleted when their condition stops holding. Dismissal
frees the key so the rule can fire again.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit_log.service import AuditService
from app.config import Settings
from app.exceptions import NotFoundError
from app.models.base import utcnow
from app.models.notification import Notification, NotificationSeverity
from app.notification_engine.rules import NotificationCandidate, evaluate_rules
from app.status_engine.locks import ShipmentLocks, RedisShipmentLocks, build_shipment_locks
from app.status_engine.snapshot import ShipmentSnapshot, SnapshotReader

logger = logging.getLogger("shiptrack.notifications")


@dataclass
class CheckResult:
    created: int = 0
    evaluated: int = 0
    failed: int = 0
    skipped_shipment_ids: list[uuid.UUID] = field(default_factory=list)
    notification_ids: list[uuid.UUID] = field(default_factory=list)


class NotificationService:
    """Runs the deadline scan and serves the notification inbox."""

    def __init__(self, settings: Settings, locks: ShipmentLocks | RedisShipmentLocks | None = None):
        self.settings = settings
        self.locks = locks or build_shipment_locks(settings)

    async def run_check(self, db: AsyncSession, today: date | None = None) -> CheckResult:
        """Full scan over all non-deleted shipments."""
        today = today or date.today()
        result = CheckResult()
        active = await self._active_keys(db)

        for shipment, snapshot in await SnapshotReader.load_active(db):
            shipment_id, sn = shipment.id, shipment.sn
            result.evaluated += 1
            try:
                created = await self._check_shipment(db, shipment_id, snapshot, today, active)
            except Exception:
                # One bad shipment never stops the scan; it is reported as skipped.
                logger.exception("Notification check failed for shipment %s", sn)
                result.failed += 1
                result.skipped_shipment_ids.append(shipment_id)
                continue

            for notification in created:
                active.add((shipment_id, notification.rule_id))
                result.created += 1
                result.notification_ids.append(notification.id)

        await AuditService.log_event(
            db,
            event_type="NOTIFICATION_CHECK_COMPLETED",
            entity_type="notification",
            action="check",
            actor="system",
            actor_type="system",
            event_data={
                "created": result.created,
                "evaluated": result.evaluated,
                "failed": result.failed,
                "skipped_shipment_ids": [str(i) for i in result.skipped_shipment_ids],
                "as_of": today.isoformat(),
            },
        )
        logger.info(
            "Notification check complete: %d created, %d shipments evaluated, %d failed",
            result.created, result.evaluated, result.failed,
        )
        return result

    async def list_notifications(
        self,
        db: AsyncSession,
        *,
        shipment_id: uuid.UUID | None = None,
        severity: NotificationSeverity | None = None,
        is_read: bool | None = None,
        include_dismissed: bool = False,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[Notification], int]:
        query = select(Notification)
        count_query = select(func.count(Notification.id))

        filters = []
        if shipment_id:
            filters.append(Notification.shipment_id == shipment_id)
        if severity:
            filters.append(Notification.severity == severity)
        if is_read is not None:
            filters.append(Notification.is_read == is_read)
        if not include_dismissed:
            filters.append(Notification.is_dismissed == False)  # noqa: E712
        if filters:
            query = query.where(*filters)
            count_query = count_query.where(*filters)

        total = (await db.execute(count_query)).scalar_one()

        offset = (page - 1) * per_page
        query = query.order_by(Notification.created_at.desc()).offset(offset).limit(per_page)
        items = list((await db.execute(query)).scalars().all())
        return items, total

    async def stats(self, db: AsyncSession) -> dict:
        """Counts over active (undismissed) notifications."""
        active = Notification.is_dismissed == False  # noqa: E712

        total = (await db.execute(select(func.count(Notification.id)).where(active))).scalar_one()
        unread = (await db.execute(
            select(func.count(Notification.id)).where(active, Notification.is_read == False)  # noqa: E712
        )).scalar_one()

        rows = (await db.execute(
            select(Notification.severity, func.count(Notification.id))
            .where(active)
            .group_by(Notification.severity)
        )).all()
        by_severity = {s.value: 0 for s in NotificationSeverity}
        for severity, count in rows:
            by_severity[NotificationSeverity(severity).value] = count

        return {"total_active": total, "unread": unread, "by_severity": by_severity}

    async def mark_read(self, db: AsyncSession, notification_id: uuid.UUID) -> Notification:
        notification = await self._get(db, notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await db.flush()
        return notification

    async def dismiss(self, db: AsyncSession, notification_id: uuid.UUID, actor: str = "system") -> Notification:
        notification = await self._get(db, notification_id)
        if notification.is_dismissed:
            return notification

        notification.is_dismissed = True
        notification.dismissed_by = actor
        notification.dismissed_at = utcnow()
        await db.flush()

        await AuditService.log_event(
            db,
            event_type="NOTIFICATION_DISMISSED",
            entity_type="notification",
            entity_id=notification.id,
            action="dismiss",
            actor=actor,
            actor_type="system" if actor == "system" else "user",
            previous_state={"is_dismissed": False},
            new_state={
                "is_dismissed": True,
                "shipment_id": str(notification.shipment_id),
                "rule_id": notification.rule_id,
            },
        )
        return notification

    # ── internals ──

    async def _active_keys(self, db: AsyncSession) -> set[tuple[uuid.UUID, str]]:
        rows = (await db.execute(
            select(Notification.shipment_id, Notification.rule_id)
            .where(Notification.is_dismissed == False)  # noqa: E712
        )).all()
        return {(shipment_id, rule_id) for shipment_id, rule_id in rows}

    async def _check_shipment(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        snapshot: ShipmentSnapshot,
        today: date,
        active: set[tuple[uuid.UUID, str]],
    ) -> list[Notification]:
        """Evaluate one shipment and persist its new notifications, all or none."""
        candidates = [
            c for c in evaluate_rules(snapshot, today, self.settings)
            if (shipment_id, c.rule_id) not in active
        ]
        if not candidates:
            return []

        await self.locks.acquire_for(db, shipment_id)
        created = []
        async with db.begin_nested():
            for candidate in candidates:
                notification = await self._emit(db, shipment_id, candidate)
                if notification is not None:
                    created.append(notification)
        return created

    async def _emit(
        self, db: AsyncSession, shipment_id: uuid.UUID, candidate: NotificationCandidate
    ) -> Notification | None:
        """Insert one notification inside a savepoint; None if already active."""
        try:
            async with db.begin_nested():
                return await self._insert(db, shipment_id, candidate)
        except IntegrityError:
            logger.info("Notification %s already active for shipment %s", candidate.rule_id, shipment_id)
            return None

    async def _insert(
        self, db: AsyncSession, shipment_id: uuid.UUID, candidate: NotificationCandidate
    ) -> Notification:
        notification = Notification(
            id=uuid.uuid4(),
            shipment_id=shipment_id,
            rule_id=candidate.rule_id,
            severity=candidate.severity,
            title=candidate.title,
            message=candidate.message,
            due_date=candidate.due_date,
            details=candidate.details,
        )
        db.add(notification)
        await db.flush()
        return notification

    async def _get(self, db: AsyncSession, notification_id: uuid.UUID) -> Notification:
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification
