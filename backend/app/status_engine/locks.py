"""Per-shipment write serialization.

A mutation of a shipment's status or override columns first calls
``locks.acquire_for(db, shipment_id)``. The lock stays with the session until
its transaction is committed or rolled back and ``release_session_locks`` runs,
so a concurrent override-clear and status write cannot interleave at commit
time. The status writer also reads the row ``FOR UPDATE``, which extends the
guarantee across workers on PostgreSQL. Different shipments never contend, and
a session that already holds a shipment's lock does not wait on it again.
"""

import asyncio
import logging
import uuid
from weakref import WeakValueDictionary

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings

logger = logging.getLogger("shiptrack.status_engine.locks")

HELD_LOCKS_KEY = "shiptrack.shipment_locks"


def _held(db: AsyncSession) -> dict:
    return db.info.setdefault(HELD_LOCKS_KEY, {})


class ShipmentLocks:
    """In-process lock registry, one asyncio.Lock per shipment id."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self._locks: WeakValueDictionary[uuid.UUID, asyncio.Lock] = WeakValueDictionary()

    def _lock_for(self, shipment_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(shipment_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[shipment_id] = lock
        return lock

    async def acquire_for(self, db: AsyncSession, shipment_id: uuid.UUID) -> None:
        """Take the shipment's lock on behalf of db's current transaction.

        Raises TimeoutError when another session keeps it past the timeout.
        """
        held = _held(db)
        key = (id(self), shipment_id)
        if key in held:
            return
        lock = self._lock_for(shipment_id)
        await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
        held[key] = _AsyncioRelease(lock)


class RedisShipmentLocks:
    """Cross-process variant backed by redis locks, for multi-worker deployments."""

    def __init__(self, redis_url: str, timeout: float = 30.0):
        self.timeout = timeout
        self.client = aioredis.from_url(redis_url)

    async def acquire_for(self, db: AsyncSession, shipment_id: uuid.UUID) -> None:
        held = _held(db)
        key = (id(self), shipment_id)
        if key in held:
            return
        lock = self.client.lock(
            f"shiptrack:shipment-lock:{shipment_id}",
            timeout=self.timeout,
            blocking_timeout=self.timeout,
        )
        if not await lock.acquire():
            raise TimeoutError(f"Shipment {shipment_id} is locked by another writer")
        held[key] = lock.release


class _AsyncioRelease:
    def __init__(self, lock: asyncio.Lock):
        self.lock = lock

    async def __call__(self) -> None:
        self.lock.release()


async def release_session_locks(db: AsyncSession) -> None:
    """Release every shipment lock db holds. Call after commit or rollback."""
    held = db.info.pop(HELD_LOCKS_KEY, {})
    for release in held.values():
        try:
            await release()
        except Exception:
            logger.exception("Failed to release shipment lock")


def build_shipment_locks(settings: Settings) -> ShipmentLocks | RedisShipmentLocks:
    if settings.shipment_lock_backend == "redis":
        logger.info("Using redis shipment locks (%s)", settings.redis_url)
        return RedisShipmentLocks(settings.redis_url, settings.shipment_lock_timeout_seconds)
    return ShipmentLocks(settings.shipment_lock_timeout_seconds)
