"""Scheduler for the jobs declared by feature modules (cycle rollover, challenge expiry)."""

import logging
from collections.abc import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.core.module import ScheduledJob
from src.core.module_registry import get_all_scheduled_jobs
from src.core.schema import register_default_modules
from src.core.scheduler_tracker import retry_job_with_backoff


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


def _tracked(job: ScheduledJob) -> Callable[[], Awaitable[None]]:
    async def run() -> None:
        await retry_job_with_backoff(job.func, job.id)

    return run


def register_jobs(jobs: list[ScheduledJob] | None = None) -> list[str]:
    """Add every module job to the scheduler and return the registered ids."""
    if jobs is None:
        register_default_modules()
        jobs = get_all_scheduled_jobs()

    registered = []
    for job in jobs:
        scheduler.add_job(
            _tracked(job),
            trigger=CronTrigger.from_crontab(job.cron),
            id=job.id,
            name=job.name,
            replace_existing=True,
        )
        registered.append(job.id)
        logger.info("Scheduled job %s (%s) with cron '%s'", job.id, job.name, job.cron)
    return registered


def start_scheduler() -> None:
    """Start the scheduler and register all jobs.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")
    register_jobs()
    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    logger.info("Stopping scheduler")
    if scheduler.running:
        scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
