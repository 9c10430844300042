"""
Background Jobs Module

Handles scheduled tasks for:
- Auto-allocation of confirmed orders
"""

from fulfillment.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from fulfillment.jobs.allocation_jobs import auto_allocate_confirmed_orders

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "auto_allocate_confirmed_orders",
]
