"""
Scheduled jobs.

- monitoring_cycle: runs MonitoringScheduler.run_cycle every
  CYCLE_INTERVAL_MINUTES
- analysis_backfill: re-queues content still marked ai_processed=False
  (trigger failures, crashed workers) every BACKFILL_INTERVAL_MINUTES
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..common.tasks import analyze_task
from ..config.settings import settings

if TYPE_CHECKING:
    from ..pipeline import Pipeline

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None

# Whole-cycle ceiling so one stuck cycle can't block every later run
CYCLE_JOB_TIMEOUT = 3600.0


async def backfill_unprocessed(pipeline: "Pipeline", limit: Optional[int] = None) -> int:
    """Queue analysis for content that never got an Insight. Returns tasks queued."""
    limit = limit or settings.backfill_batch_size
    pending = await pipeline.stores.contents.list_unprocessed(limit)
    for content in pending:
        await pipeline.queue.submit(analyze_task(content.id))
    if pending:
        logger.info(f"Backfill queued analysis for {len(pending)} unprocessed content rows")
    return len(pending)


async def monitoring_cycle_job(pipeline: "Pipeline"):
    """Scheduled job wrapper: bounded run time, summary logging, never raises."""
    start = time.monotonic()
    try:
        report = await asyncio.wait_for(pipeline.scheduler.run_cycle(), timeout=CYCLE_JOB_TIMEOUT)
    except asyncio.TimeoutError:
        logger.critical(f"CYCLE_TIMEOUT: monitoring cycle exceeded {CYCLE_JOB_TIMEOUT}s and was cancelled")
        return
    except Exception as e:
        logger.error(f"Monitoring cycle job crashed: {e}", exc_info=True)
        return
    logger.info(f"Scheduled cycle: {report.message} in {time.monotonic() - start:.1f}s")


async def analysis_backfill_job(pipeline: "Pipeline"):
    try:
        await backfill_unprocessed(pipeline)
    except Exception as e:
        logger.error(f"Analysis backfill job failed: {e}", exc_info=True)


def setup_scheduler(pipeline: "Pipeline") -> AsyncIOScheduler:
    """
    Initialize and start the APScheduler.

    Configures:
    - Monitoring cycle every settings.cycle_interval_minutes
    - Analysis backfill every settings.backfill_interval_minutes
    - Job store in memory (stateless; due-ness lives in the database)
    """
    global scheduler

    scheduler = AsyncIOScheduler(
        timezone=settings.scheduler_timezone,
        job_defaults={
            "coalesce": True,  # Collapse missed runs into one
            "max_instances": 1,  # Only one instance at a time
            "misfire_grace_time": 300,
        },
    )

    scheduler.add_job(
        monitoring_cycle_job,
        trigger=IntervalTrigger(minutes=settings.cycle_interval_minutes),
        args=[pipeline],
        id="monitoring_cycle",
        name=f"Monitoring cycle (every {settings.cycle_interval_minutes} min)",
        replace_existing=True,
    )
    scheduler.add_job(
        analysis_backfill_job,
        trigger=IntervalTrigger(minutes=settings.backfill_interval_minutes),
        args=[pipeline],
        id="analysis_backfill",
        name=f"Analysis backfill (every {settings.backfill_interval_minutes} min)",
        replace_existing=True,
    )

    scheduler.start()
    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.id} - next run: {job.next_run_time}")

    return scheduler


def shutdown_scheduler():
    """Shutdown the scheduler without waiting for running jobs."""
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown complete")
        scheduler = None
