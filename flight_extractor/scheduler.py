"""
APScheduler setup for background batch runs.

Batches are one-off jobs under a fixed id, so at most one batch runs at a
time and a new trigger replaces a queued one.
"""

import logging
import os
from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.jobstores.memory import MemoryJobStore

logger = logging.getLogger(__name__)

BATCH_JOB_ID = "batch_run"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the global scheduler instance."""
    global scheduler
    if scheduler is None:
        tz = os.environ.get('TZ', 'UTC')
        logger.info(f"Scheduler using timezone: {tz}")
        scheduler = AsyncIOScheduler(
            jobstores={'default': MemoryJobStore()},
            timezone=tz
        )
    return scheduler


def start_scheduler():
    sched = get_scheduler()
    if not sched.running:
        sched.start()
        logger.info("Scheduler started")


def stop_scheduler():
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    scheduler = None


def scheduler_running() -> bool:
    return scheduler is not None and scheduler.running


def schedule_batch_run(func: Callable[..., Awaitable[Any]], *args: Any) -> None:
    """Run ``func(*args)`` in the background as soon as possible."""
    sched = get_scheduler()
    sched.add_job(
        func,
        trigger=DateTrigger(),
        args=list(args),
        id=BATCH_JOB_ID,
        name="Batch extraction",
        replace_existing=True,
        max_instances=1,
        misfire_grace_time=None,
    )
    logger.info("Batch run scheduled")
