"""
APScheduler Configuration

Background job scheduler for periodic auto-allocation of CONFIRMED orders.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from fulfillment.config import settings

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
    'max_instances': 1,  # Allocation runs must not overlap
    'misfire_grace_time': 60,
}

scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.WORK_TIMEZONE,
)


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        from fulfillment.jobs.allocation_jobs import auto_allocate_confirmed_orders

        scheduler.add_job(
            auto_allocate_confirmed_orders,
            'interval',
            minutes=settings.AUTO_ALLOCATE_INTERVAL_MINUTES,
            id='auto_allocate_confirmed_orders',
            name='Auto-allocate Confirmed Orders',
            replace_existing=True,
        )

        scheduler.start()
        logger.info(
            f"Background job scheduler started "
            f"(auto-allocation every {settings.AUTO_ALLOCATE_INTERVAL_MINUTES} min)"
        )


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
