from app.schemas.audit import AuditEventListResponse, AuditEventResponse, AuditStatsResponse
from app.schemas.health import HealthResponse
from app.schemas.notification import (
    NotificationCheckResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationStatsResponse,
)
from app.schemas.shipment_status import (
    ShipmentStatusResponse,
    StatusHistoryResponse,
    StatusOptionResponse,
    StatusOverrideRequest,
)

__all__ = [
    "AuditEventListResponse",
    "AuditEventResponse",
    "AuditStatsResponse",
    "HealthResponse",
    "NotificationCheckResponse",
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationStatsResponse",
    "ShipmentStatusResponse",
    "StatusHistoryResponse",
    "StatusOptionResponse",
    "StatusOverrideRequest",
]
