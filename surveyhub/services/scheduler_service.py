# surveyhub/services/scheduler_service.py
"""
Scheduler service for the periodic reconciliation sweeps.
Uses APScheduler's asyncio flavour so jobs run on the application event loop
next to the request handlers and share the one database engine.
"""
import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Callable

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging

from surveyhub.core.timeutils import now_utc

logger = logging.getLogger(__name__)


def build_scheduler() -> AsyncIOScheduler:
    """Create (but do not start) the scheduler shared by the sweeps."""
    executors = {
        'default': AsyncIOExecutor()
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending executions into one
        'max_instances': 1,  # A sweep never overlaps itself
        'misfire_grace_time': 30  # Seconds after which a missed run is considered expired
    }

    return AsyncIOScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone='UTC'
    )


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    """
    Start the scheduler on the running event loop.
    Jobs added before this call are held as pending and start now.
    """
    if scheduler.running:
        logger.warning("Scheduler is already running")
        return

    scheduler.start()
    logger.info("Background scheduler started successfully")


async def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    """
    Stop the scheduler without waiting on in-flight sweeps.
    AsyncIOScheduler hands the shutdown to the event loop, so yield once to
    let it land; ``scheduler.running`` is False on return.
    """
    if not scheduler.running:
        logger.debug("Scheduler is not running")
        return

    try:
        scheduler.shutdown(wait=False)
        await asyncio.sleep(0)
        logger.info("Background scheduler stopped successfully")
    except Exception as e:
        logger.error(f"Error stopping scheduler: {e}")



def schedule_interval_job(
    scheduler: AsyncIOScheduler,
    func: Callable[[], Awaitable[Any]],
    job_id: str,
    interval: timedelta,
    run_immediately: bool = False,
) -> None:
    kwargs = {}
    if run_immediately:
        kwargs['next_run_time'] = now_utc()

    scheduler.add_job(
        func=func,
        trigger='interval',
        seconds=interval.total_seconds(),
        id=job_id,
        replace_existing=True,
        **kwargs,
    )
    logger.info(f"Scheduled job {job_id} every {interval}")


def remove_job(scheduler: AsyncIOScheduler, job_id: str) -> bool:
    try:
        scheduler.remove_job(job_id)
        return True
    except JobLookupError:
        return False
