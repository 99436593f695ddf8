"""Background jobs: periodic notification check and nightly status recalculation.

Each job opens its own session from async_session_factory and commits on
success; request-scoped sessions are never shared with the scheduler.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.config import Settings
from app.database import async_session_factory
from app.dependencies import get_notification_service, get_status_service
from app.status_engine.locks import release_session_locks

logger = logging.getLogger("shiptrack.scheduler")


async def run_notification_check() -> None:
    service = get_notification_service()
    async with async_session_factory() as db:
        try:
            result = await service.run_check(db)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Scheduled notification check failed")
            return
        finally:
            await release_session_locks(db)
    logger.info("Scheduled notification check: %d created", result.created)


async def run_status_recalculation() -> None:
    service = get_status_service()
    async with async_session_factory() as db:
        try:
            summary = await service.recalculate_all(db)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Scheduled status recalculation failed")
            return
        finally:
            await release_session_locks(db)
    logger.info(
        "Scheduled status recalculation: %d/%d updated", summary.updated, summary.processed
    )


def build_scheduler(settings: Settings) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_notification_check,
        "interval",
        minutes=settings.notification_check_interval_minutes,
        id="notification_check",
        replace_existing=True,
    )
    scheduler.add_job(
        run_status_recalculation,
        "cron",
        hour=settings.status_recalc_hour,
        minute=0,
        id="status_recalculation",
        replace_existing=True,
    )
    return scheduler
