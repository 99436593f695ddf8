"""AuditService — append-only log of status changes, overrides and notification actions.

Static methods so the status and notification services can call
AuditService.log_event() inside their own transaction without DI wiring.
Events are only ever inserted; nothing here updates or deletes a row.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditEvent

STATUS_EVENT_TYPES = (
    "SHIPMENT_STATUS_CHANGED",
    "SHIPMENT_STATUS_OVERRIDE_SET",
    "SHIPMENT_STATUS_OVERRIDE_CLEARED",
    "SHIPMENT_WAREHOUSE_RECEIPT_CONFIRMED",
)


class AuditService:
    """Static audit event logger and query interface."""

    @staticmethod
    async def log_event(
        db: AsyncSession,
        *,
        event_type: str,
        entity_type: str | None = None,
        entity_id: uuid.UUID | None = None,
        action: str | None = None,
        actor: str = "system",
        actor_type: str = "system",
        event_data: dict | None = None,
        previous_state: dict | None = None,
        new_state: dict | None = None,
        rationale: str | None = None,
    ) -> AuditEvent:
        """Append an audit event and flush it; the caller owns the transaction."""
        event = AuditEvent(
            id=uuid.uuid4(),
            event_type=event_type,
            event_data=event_data,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action or event_type,
            actor=actor,
            actor_type=actor_type,
            previous_state=previous_state,
            new_state=new_state,
            rationale=rationale,
        )
        db.add(event)
        await db.flush()
        return event

    @staticmethod
    async def get_events(
        db: AsyncSession,
        *,
        entity_type: str | None = None,
        entity_id: uuid.UUID | None = None,
        event_type: str | None = None,
        event_types: tuple[str, ...] | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[AuditEvent], int]:
        """Newest-first events matching every given filter, plus the total count."""
        filters = []
        if entity_type:
            filters.append(AuditEvent.entity_type == entity_type)
        if entity_id:
            filters.append(AuditEvent.entity_id == entity_id)
        if event_type:
            filters.append(AuditEvent.event_type == event_type)
        if event_types:
            filters.append(AuditEvent.event_type.in_(event_types))

        total = (await db.execute(select(func.count(AuditEvent.id)).where(*filters))).scalar_one()

        result = await db.execute(
            select(AuditEvent)
            .where(*filters)
            .order_by(AuditEvent.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def get_status_history(
        db: AsyncSession, shipment_id: uuid.UUID, limit: int = 50
    ) -> tuple[list[AuditEvent], int]:
        """Status changes and override set/clear events for one shipment."""
        return await AuditService.get_events(
            db,
            entity_type="shipment",
            entity_id=shipment_id,
            event_types=STATUS_EVENT_TYPES,
            per_page=limit,
        )

    @staticmethod
    async def get_stats(db: AsyncSession) -> dict:
        total = (await db.execute(select(func.count(AuditEvent.id)))).scalar_one()

        async def count_by(column) -> dict[str, int]:
            rows = (await db.execute(select(column, func.count(AuditEvent.id)).group_by(column))).all()
            return {key or "unknown": count for key, count in rows}

        recent = await db.execute(select(AuditEvent).order_by(AuditEvent.created_at.desc()).limit(10))

        return {
            "total_events": total,
            "events_by_type": await count_by(AuditEvent.event_type),
            "events_by_actor_type": await count_by(AuditEvent.actor_type),
            "recent_events": list(recent.scalars().all()),
        }
