from functools import lru_cache

from app.config import settings
from app.database import get_db
from app.notification_engine.service import NotificationService
from app.status_engine.locks import ShipmentLocks, RedisShipmentLocks, build_shipment_locks
from app.status_engine.service import ShipmentStatusService

# Re-export get_db for use in Depends()
get_db = get_db


@lru_cache
def get_shipment_locks() -> ShipmentLocks | RedisShipmentLocks:
    # One registry per process, shared by both services.
    return build_shipment_locks(settings)


def get_status_service() -> ShipmentStatusService:
    return ShipmentStatusService(settings, get_shipment_locks())


def get_notification_service() -> NotificationService:
    return NotificationService(settings, get_shipment_locks())
