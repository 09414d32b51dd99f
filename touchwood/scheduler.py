"""
Background scheduler for periodic engine work
Handles:
- Drawing the daily challenge set when a new day starts
- Flushing queued state writes to the database
"""
import logging
import os

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from touchwood.constants import DEFAULT_DAY_START_HOUR, DEFAULT_FLUSH_INTERVAL_SECONDS
from touchwood.repositories.state_repository import WriteBehindStore
from touchwood.services.gamification_service import GamificationService

logger = logging.getLogger("touchwood.scheduler")

DAY_START_HOUR = int(os.getenv("TOUCHWOOD_DAY_START_HOUR", DEFAULT_DAY_START_HOUR))
FLUSH_INTERVAL_SECONDS = int(os.getenv("TOUCHWOOD_FLUSH_INTERVAL_SECONDS", DEFAULT_FLUSH_INTERVAL_SECONDS))

scheduler = AsyncIOScheduler()


async def run_daily_refresh(service: GamificationService):
    """Job: draw today's challenges"""
    try:
        if service.refresh_daily_challenges():
            logger.info("Daily challenges refreshed")
    except Exception as e:
        logger.error(f"Scheduler Error (Daily Refresh): {e}")


async def run_flush(store: WriteBehindStore):
    """Job: write pending state records"""
    try:
        written = store.flush()
        if written:
            logger.info(f"Flushed {written} state record(s)")
    except Exception as e:
        logger.error(f"Scheduler Error (Flush): {e}")


def start_scheduler(service: GamificationService, store: WriteBehindStore):
    """Start the scheduler"""
    if not scheduler.running:
        scheduler.add_job(
            run_daily_refresh,
            CronTrigger(hour=DAY_START_HOUR, minute=0),
            args=[service],
            id='daily_refresh',
            replace_existing=True
        )

        scheduler.add_job(
            run_flush,
            IntervalTrigger(seconds=FLUSH_INTERVAL_SECONDS),
            args=[store],
            id='flush_state',
            replace_existing=True
        )

        scheduler.start()
        logger.info("Scheduler started")
        logger.info(f"Scheduled jobs: {[job.id for job in scheduler.get_jobs()]}")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
