import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.config import settings
from services import escrow_service

logger = logging.getLogger(__name__)

scheduler: AsyncIOScheduler | None = None


def auto_release_escrows():
    """Фонова задача: виплатити ескроу, для яких минув строк перевірки"""
    try:
        escrow_service.process_auto_releases()
    except Exception:
        logger.exception("Escrow auto-release job failed")


def start_scheduler():
    global scheduler
    if scheduler is not None:
        return

    scheduler = AsyncIOScheduler(timezone=settings.SCHEDULER_TIMEZONE)
    scheduler.add_job(
        auto_release_escrows,
        "interval",
        minutes=settings.ESCROW_AUTO_RELEASE_INTERVAL_MINUTES,
        id="escrow_auto_release",
    )
    scheduler.start()
    logger.info("Scheduler started")


def shutdown_scheduler():
    global scheduler
    if scheduler is not None:
        scheduler.shutdown()
        scheduler = None
