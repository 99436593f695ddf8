from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.dependencies import get_db
from app.models.notification import Notification
from app.models.shipment import Shipment
from app.schemas.health import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)) -> HealthResponse:
    # Check database
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        db_status = "unhealthy"

    # Check Redis
    redis_status = "healthy"
    try:
        import redis.asyncio as aioredis

        r = aioredis.from_url(settings.redis_url)
        await r.ping()
        await r.aclose()
    except Exception:
        redis_status = "unhealthy"

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        scheduler_status = "not_configured"
    else:
        scheduler_status = "healthy" if scheduler.running else "stopped"

    overall = "healthy" if db_status == "healthy" and redis_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        scheduler=scheduler_status,
        timestamp=datetime.now(timezone.utc),
        environment=settings.environment,
        version="0.1.0",
    )


@router.get("/metrics")
async def get_metrics(db: AsyncSession = Depends(get_db)) -> dict:
    """Shipment counts by effective status and active notification counts."""
    effective = func.coalesce(Shipment.status_override, Shipment.status)
    rows = (await db.execute(
        select(effective, func.count(Shipment.id))
        .where(Shipment.is_deleted == False)  # noqa: E712
        .group_by(effective)
    )).all()
    by_status = {getattr(status, "value", status): count for status, count in rows}

    overridden = (await db.execute(
        select(func.count(Shipment.id)).where(
            Shipment.is_deleted == False,  # noqa: E712
            Shipment.status_override.is_not(None),
        )
    )).scalar() or 0

    active_notifications = (await db.execute(
        select(func.count(Notification.id)).where(Notification.is_dismissed == False)  # noqa: E712
    )).scalar() or 0
    unread_notifications = (await db.execute(
        select(func.count(Notification.id)).where(
            Notification.is_dismissed == False,  # noqa: E712
            Notification.is_read == False,  # noqa: E712
        )
    )).scalar() or 0

    return {
        "shipments": {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "overridden": overridden,
        },
        "notifications": {
            "active": active_notifications,
            "unread": unread_notifications,
        },
    }
