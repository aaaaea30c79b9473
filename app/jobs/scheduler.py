"""
APScheduler Configuration

Background job scheduler for the billing engine:
- Recurring invoice generation (RECURRING_INVOICE_JOB_INTERVAL_MINUTES)
- Overdue invoice marking (OVERDUE_JOB_INTERVAL_MINUTES)

Jobs open their own database sessions; a failing run is logged and the
next interval runs as usual.
"""

import logging
from typing import Any, Awaitable, Callable, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from app.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


async def run_logged_job(job_name: str, job: Callable[[], Awaitable[Dict[str, Any]]]):
    """
    Wrapper to run a billing job from the scheduler.

    Errors are logged, never raised into APScheduler.
    """
    try:
        result = await job()
        logger.info(f"Job '{job_name}' completed: {result}")
    except Exception as e:
        logger.error(f"Job '{job_name}' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        from app.jobs.recurring_invoice_jobs import (
            generate_due_recurring_invoices,
            mark_overdue_invoices,
        )

        # Generate due recurring invoices
        scheduler.add_job(
            run_logged_job,
            'interval',
            minutes=settings.RECURRING_INVOICE_JOB_INTERVAL_MINUTES,
            args=['generate_due_recurring_invoices', generate_due_recurring_invoices],
            id='generate_due_recurring_invoices',
            name='Generate Due Recurring Invoices',
            replace_existing=True,
        )

        # Mark open invoices past due date as overdue
        scheduler.add_job(
            run_logged_job,
            'interval',
            minutes=settings.OVERDUE_JOB_INTERVAL_MINUTES,
            args=['mark_overdue_invoices', mark_overdue_invoices],
            id='mark_overdue_invoices',
            name='Mark Overdue Invoices',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        # Log all scheduled jobs
        jobs = scheduler.get_jobs()
        for job in jobs:
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
