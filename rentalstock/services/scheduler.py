# rentalstock/services/scheduler.py
from __future__ import annotations

import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..core.config import settings
from ..core.timeutil import utcnow
from ..db.session import SessionLocal
from .stock_monitor import run_stock_check

logger = logging.getLogger(__name__)

STOCK_CHECK_JOB_ID = "stock_check"
STOCK_CHECK_STARTUP_JOB_ID = "stock_check_startup"

_scheduler: BackgroundScheduler | None = None


def stock_check_job() -> None:
    """Run one stock check in its own session. Failures are logged, never raised."""

    db = SessionLocal()
    try:
        run_stock_check(db)
    except Exception:
        db.rollback()
        logger.exception("stock_check.failed")
    finally:
        db.close()


def start_scheduler() -> BackgroundScheduler | None:
    """Start the hourly stock check plus a one-off run shortly after boot."""

    global _scheduler
    if not settings.STOCK_MONITOR_ENABLED:
        logger.info("scheduler.disabled")
        return None
    if _scheduler is not None and _scheduler.running:
        return _scheduler

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        stock_check_job,
        trigger=IntervalTrigger(minutes=settings.STOCK_CHECK_INTERVAL_MINUTES),
        id=STOCK_CHECK_JOB_ID,
        name="Check stock levels and place automatic reorders",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        stock_check_job,
        trigger=DateTrigger(run_date=utcnow() + timedelta(seconds=settings.STOCK_CHECK_STARTUP_DELAY_SECONDS)),
        id=STOCK_CHECK_STARTUP_JOB_ID,
        name="Initial stock check after startup",
        replace_existing=True,
    )
    scheduler.start()
    _scheduler = scheduler
    logger.info(
        "scheduler.started",
        extra={
            "extra_data": {
                "jobs": [job.id for job in scheduler.get_jobs()],
                "interval_minutes": settings.STOCK_CHECK_INTERVAL_MINUTES,
            }
        },
    )
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is None:
        return
    if _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("scheduler.stopped")
