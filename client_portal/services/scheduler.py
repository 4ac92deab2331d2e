"""
Background Job Scheduler.

WHAT: Configures and manages APScheduler for background tasks.

WHY: The portal has one periodic job: reminding clients whose advance
payment is still pending. It must run without a user request and must
never run twice at once.

HOW: AsyncIOScheduler with an in-memory job store, started from the
FastAPI startup event when SCHEDULER_ENABLED is set.
"""

import logging
from typing import Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from client_portal.core.config import settings
from client_portal.services.payment_reminder_service import get_payment_reminder_service

logger = logging.getLogger(__name__)

PAYMENT_REMINDER_JOB_ID = "payment_reminders"

# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> Optional[AsyncIOScheduler]:
    return _scheduler


async def start_scheduler() -> None:
    """
    Start the scheduler and register the payment reminder job.

    Note: Call this from the FastAPI startup event.
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running")
        return

    _scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
        timezone="UTC",
    )
    _register_payment_reminder_job()
    _scheduler.start()
    logger.info(
        f"Scheduler started with payment reminders every {settings.PAYMENT_REMINDER_INTERVAL_HOURS}h"
    )


def _register_payment_reminder_job() -> None:
    if _scheduler is None:
        logger.error("Cannot register job: scheduler not initialized")
        return

    _scheduler.add_job(
        func=get_payment_reminder_service().send_payment_reminders,
        trigger=IntervalTrigger(hours=settings.PAYMENT_REMINDER_INTERVAL_HOURS),
        id=PAYMENT_REMINDER_JOB_ID,
        name="Payment Reminders",
        replace_existing=True,
    )


async def shutdown_scheduler() -> None:
    """
    Shut down the scheduler, waiting for running jobs.

    Note: Call this from the FastAPI shutdown event.
    """
    global _scheduler

    if _scheduler is None or not _scheduler.running:
        logger.info("Scheduler not running")
        _scheduler = None
        return

    logger.info("Shutting down scheduler...")
    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Scheduler shut down successfully")


def get_scheduler_status() -> dict:
    """
    Scheduler state and job info, for the health endpoint.
    """
    if _scheduler is None:
        return {"running": False, "jobs": [], "message": "Scheduler not initialized"}

    jobs = [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": str(job.next_run_time) if job.next_run_time else None,
            "trigger": str(job.trigger),
        }
        for job in _scheduler.get_jobs()
    ]
    return {
        "running": _scheduler.running,
        "jobs": jobs,
        "message": "Scheduler is running" if _scheduler.running else "Scheduler is paused",
    }
