"""Notification endpoints — run the deadline check, list, stats, read, dismiss."""

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_notification_service
from app.exceptions import NotFoundError
from app.models.notification import NotificationSeverity
from app.notification_engine.service import NotificationService
from app.schemas.notification import (
    DismissRequest,
    NotificationCheckResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationStatsResponse,
)

router = APIRouter()


@router.post("/check", response_model=NotificationCheckResponse)
async def run_check(
    db: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationCheckResponse:
    """Scan all active shipments and create newly due notifications."""
    result = await service.run_check(db)
    return NotificationCheckResponse(
        status="completed" if not result.failed else "completed_with_errors",
        created=result.created,
        evaluated=result.evaluated,
        failed=result.failed,
        skipped_shipment_ids=result.skipped_shipment_ids,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    shipment_id: uuid.UUID | None = None,
    severity: NotificationSeverity | None = None,
    is_read: bool | None = None,
    include_dismissed: bool = False,
    page: int = 1,
    per_page: int = 50,
    db: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    items, total = await service.list_notifications(
        db,
        shipment_id=shipment_id,
        severity=severity,
        is_read=is_read,
        include_dismissed=include_dismissed,
        page=page,
        per_page=per_page,
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/stats", response_model=NotificationStatsResponse)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationStatsResponse:
    return NotificationStatsResponse(**await service.stats(db))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    try:
        notification = await service.mark_read(db, notification_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return NotificationResponse.model_validate(notification)


@router.post("/{notification_id}/dismiss", response_model=NotificationResponse)
async def dismiss(
    notification_id: uuid.UUID,
    request: DismissRequest | None = None,
    db: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    """Dismiss a notification; the rule may fire again on a later check."""
    actor = request.actor if request else "system"
    try:
        notification = await service.dismiss(db, notification_id, actor=actor)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return NotificationResponse.model_validate(notification)
