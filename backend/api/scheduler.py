"""Background scheduler for evaluation passes and daily close recording"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from stockpulse.config import settings

logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler(timezone=settings.market_timezone)

# Jobs are blocking (database, yfinance); keep them off the event loop
JOB_POOL = ThreadPoolExecutor(max_workers=2, thread_name_prefix="stockpulse-job-")

_pool_shutdown = False


async def run_evaluation_job():
    """Grade every matured prediction horizon"""
    loop = asyncio.get_event_loop()

    def _run():
        from jobs.evaluate_predictions import evaluate_predictions
        return evaluate_predictions()

    try:
        result = await loop.run_in_executor(JOB_POOL, _run)
        logger.info(f"Evaluation pass completed: {result}")
    except Exception as e:
        logger.error(f"Evaluation job failed: {e}", exc_info=True)


async def run_record_prices_job():
    """Record today's closes for every predicted symbol"""
    loop = asyncio.get_event_loop()

    def _run():
        from jobs.record_prices import record_prices
        return record_prices()

    try:
        result = await loop.run_in_executor(JOB_POOL, _run)
        logger.info(f"Close recording completed: {result}")
    except Exception as e:
        logger.error(f"Close recording job failed: {e}", exc_info=True)


def start_scheduler():
    """Register jobs and start the scheduler"""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled by configuration")
        return

    scheduler.add_job(
        run_record_prices_job,
        trigger=CronTrigger(
            day_of_week="mon-fri",
            hour=settings.record_prices_hour,
            minute=settings.record_prices_minute,
            timezone=settings.market_timezone,
        ),
        id="record_prices",
        name="Record Daily Closes",
        replace_existing=True,
    )
    logger.info(
        f"Added close recording job (weekdays at "
        f"{settings.record_prices_hour:02d}:{settings.record_prices_minute:02d} {settings.market_timezone})"
    )

    scheduler.add_job(
        run_evaluation_job,
        trigger=IntervalTrigger(minutes=settings.evaluation_interval_minutes),
        id="evaluate_predictions",
        name="Prediction Accuracy Evaluation",
        replace_existing=True,
    )
    logger.info(f"Added evaluation job (every {settings.evaluation_interval_minutes} minutes)")

    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler():
    """Stop the background scheduler and cleanup thread pool"""
    global _pool_shutdown

    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")

    if _pool_shutdown:
        return

    try:
        JOB_POOL.shutdown(wait=True, cancel_futures=True)
    except RuntimeError as e:
        logger.debug(f"JOB_POOL shutdown skipped: {e}")

    _pool_shutdown = True
