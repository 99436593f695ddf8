from app.models.base import Base, TimestampMixin
from app.models.shipment import Shipment, ShipmentDirection, ShipmentStatus, TransportLeg
from app.models.notification import Notification, NotificationSeverity
from app.models.audit import AuditEvent

__all__ = [
    "Base",
    "TimestampMixin",
    "Shipment",
    "ShipmentDirection",
    "ShipmentStatus",
    "TransportLeg",
    "Notification",
    "NotificationSeverity",
    "AuditEvent",
]
