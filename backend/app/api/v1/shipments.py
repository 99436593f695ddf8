"""Shipment status endpoints — status view, manual override, warehouse receipt, recalculation, history."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_status_service
from app.exceptions import NotFoundError, ValidationError
from app.models.shipment import ShipmentStatus
from app.schemas.audit import AuditEventResponse
from app.schemas.shipment_status import (
    ClearOverrideRequest,
    ShipmentStatusResponse,
    StatusHistoryResponse,
    StatusOptionResponse,
    StatusOverrideRequest,
    WarehouseReceiptRequest,
)
from app.status_engine.rules import get_status_display
from app.status_engine.service import ShipmentStatusService

router = APIRouter()


@router.get("/status-options", response_model=list[StatusOptionResponse])
async def status_options() -> list[StatusOptionResponse]:
    """All statuses with display config, in lifecycle order."""
    options = []
    for status in ShipmentStatus:
        display = get_status_display(status)
        options.append(StatusOptionResponse(
            value=status.value,
            label=display.label,
            order=display.order,
            color=display.color,
            description=display.description,
        ))
    return sorted(options, key=lambda o: o.order)


@router.get("/{shipment_id}/status", response_model=ShipmentStatusResponse)
async def get_status(
    shipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ShipmentStatusService = Depends(get_status_service),
) -> ShipmentStatusResponse:
    """Effective status, flagged when a manual override is in force."""
    try:
        view = await service.get_status(db, shipment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ShipmentStatusResponse.model_validate(view)


@router.post("/{shipment_id}/override-status", response_model=ShipmentStatusResponse)
async def override_status(
    shipment_id: uuid.UUID,
    request: StatusOverrideRequest,
    db: AsyncSession = Depends(get_db),
    service: ShipmentStatusService = Depends(get_status_service),
) -> ShipmentStatusResponse:
    try:
        view = await service.set_override(
            db, shipment_id, status=request.status, reason=request.reason, actor=request.actor,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ShipmentStatusResponse.model_validate(view)


@router.post("/{shipment_id}/clear-override", response_model=ShipmentStatusResponse)
async def clear_override(
    shipment_id: uuid.UUID,
    request: ClearOverrideRequest | None = None,
    db: AsyncSession = Depends(get_db),
    service: ShipmentStatusService = Depends(get_status_service),
) -> ShipmentStatusResponse:
    """Remove the override; responds with the freshly derived status."""
    actor = request.actor if request else "system"
    try:
        view = await service.clear_override(db, shipment_id, actor=actor)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ShipmentStatusResponse.model_validate(view)


@router.post("/{shipment_id}/recalculate-status", response_model=ShipmentStatusResponse)
async def recalculate_status(
    shipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ShipmentStatusService = Depends(get_status_service),
) -> ShipmentStatusResponse:
    try:
        view = await service.recalculate(db, shipment_id, actor="user")
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ShipmentStatusResponse.model_validate(view)


@router.post("/{shipment_id}/warehouse-receipt", response_model=ShipmentStatusResponse)
async def confirm_warehouse_receipt(
    shipment_id: uuid.UUID,
    request: WarehouseReceiptRequest,
    db: AsyncSession = Depends(get_db),
    service: ShipmentStatusService = Depends(get_status_service),
) -> ShipmentStatusResponse:
    """Confirm goods were received at the warehouse; status moves to received or quality_issue."""
    try:
        view = await service.confirm_warehouse_receipt(
            db, shipment_id, has_issues=request.has_issues, actor=request.actor, notes=request.notes,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ShipmentStatusResponse.model_validate(view)


@router.get("/{shipment_id}/status-history", response_model=StatusHistoryResponse)
async def status_history(
    shipment_id: uuid.UUID,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
    service: ShipmentStatusService = Depends(get_status_service),
) -> StatusHistoryResponse:
    try:
        events, total = await service.history(db, shipment_id, limit=limit)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return StatusHistoryResponse(
        shipment_id=shipment_id,
        events=[AuditEventResponse.model_validate(e) for e in events],
        total=total,
    )
