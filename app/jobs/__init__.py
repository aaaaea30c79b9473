"""
Background Jobs Module

Handles scheduled tasks for:
- Recurring invoice generation
- Overdue invoice marking
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from app.jobs.recurring_invoice_jobs import generate_due_recurring_invoices, mark_overdue_invoices

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "generate_due_recurring_invoices",
    "mark_overdue_invoices",
]
