"""
Background scheduler for housekeeping routines.

Uses APScheduler to sweep doubts whose generation never finished (process
restart, lost worker) out of the `processing` state.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.features.doubts.repository import DoubtRepository

logger = logging.getLogger(__name__)

STALE_SWEEP_JOB_ID = "stale_processing_sweep"


def stale_cutoff(minutes: int, now: datetime | None = None) -> str:
    """ISO timestamp before which a `processing` doubt counts as stale."""
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(minutes=minutes)).isoformat()


async def sweep_stale_processing(doubts: DoubtRepository, minutes: int) -> int:
    """Mark stale `processing` doubts as failed. Returns how many were swept."""
    try:
        count = await asyncio.to_thread(doubts.fail_stale_processing, stale_cutoff(minutes))
    except Exception as e:
        logger.error(f"❌ Stale processing sweep failed: {e}")
        return 0
    if count:
        logger.warning(f"⚠️ Marked {count} stale processing doubt(s) as failed")
    return count


def init_scheduler(doubts: DoubtRepository, stale_minutes: int = 15) -> AsyncIOScheduler:
    """Create and start the scheduler.

    Called during FastAPI lifespan startup.
    """
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    scheduler.add_job(
        sweep_stale_processing,
        "interval",
        minutes=max(1, stale_minutes // 3),
        args=[doubts, stale_minutes],
        id=STALE_SWEEP_JOB_ID,
        replace_existing=True,
    )
    scheduler.start()

    for job in scheduler.get_jobs():
        logger.info(f"📅 Scheduler started: {job.id}, next run at {job.next_run_time}")
    return scheduler


def shutdown_scheduler(scheduler: AsyncIOScheduler | None):
    """Gracefully shutdown the scheduler."""
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("📅 Scheduler shut down.")
