from fastapi import APIRouter

from app.api.v1 import audit, health, notifications, shipments

api_router = APIRouter()

api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(shipments.router, prefix="/v1/shipments", tags=["shipments"])
api_router.include_router(notifications.router, prefix="/v1/notifications", tags=["notifications"])
api_router.include_router(audit.router, prefix="/v1/audit", tags=["audit"])
