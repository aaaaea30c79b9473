"""
Recurring invoice and overdue jobs.

- generate_due_recurring_invoices: ticks every due ACTIVE profile, one
  occurrence at a time, catching up missed periods up to
  RECURRING_CATCH_UP_LIMIT per run
- mark_overdue_invoices: moves open invoices past their due date to OVERDUE

Triggers:
- Interval jobs (via APScheduler)
"""
import logging
from datetime import date, datetime, timezone
from typing import Dict, Any, Optional

from app.config import settings
from app.database import get_db_session
from app.services.invoice_service import InvoiceService
from app.services.recurring_invoice_service import RecurringInvoiceService
from app.services.recurring_scheduler import should_generate, today

logger = logging.getLogger(__name__)


async def generate_due_recurring_invoices(as_of: Optional[date] = None) -> Dict[str, Any]:
    """
    Generate invoices for all due recurring profiles.

    Each profile runs in its own session, so a failure rolls back only that
    profile and the job carries on with the next one.

    Returns:
        Summary of profiles processed and invoices generated
    """
    as_of = as_of or today()
    logger.info(f"Starting recurring invoice generation for {as_of}...")

    results: Dict[str, Any] = {
        "started_at": datetime.now(timezone.utc).isoformat(),
        "as_of": as_of.isoformat(),
        "profiles_processed": 0,
        "invoices_generated": 0,
        "profiles_completed": 0,
        "invoice_numbers": [],
        "errors": [],
    }

    async with get_db_session() as db:
        profile_ids = await RecurringInvoiceService(db).get_due_profile_ids(as_of)

    for profile_id in profile_ids:
        try:
            async with get_db_session() as db:
                service = RecurringInvoiceService(db)
                result = None
                for _ in range(settings.RECURRING_CATCH_UP_LIMIT):
                    result = await service.tick(profile_id, as_of)
                    if result is None:
                        break
                    if result.new_invoice is not None:
                        results["invoices_generated"] += 1
                        results["invoice_numbers"].append(result.new_invoice.invoice_number)
                    if not should_generate(result.profile, as_of):
                        break

                if result is not None and not result.profile.is_active:
                    results["profiles_completed"] += 1
            results["profiles_processed"] += 1
        except Exception as e:
            logger.error(f"Recurring invoice generation failed for profile {profile_id}: {e}")
            results["errors"].append({"profile_id": str(profile_id), "error": str(e)})

    results["completed_at"] = datetime.now(timezone.utc).isoformat()
    logger.info(
        f"Recurring invoice generation completed: {results['invoices_generated']} invoices "
        f"from {results['profiles_processed']} profiles, {len(results['errors'])} errors"
    )
    return results


async def mark_overdue_invoices(as_of: Optional[date] = None) -> Dict[str, Any]:
    """Move open invoices past their due date to OVERDUE."""
    as_of = as_of or today()
    logger.info(f"Starting overdue check for {as_of}...")

    async with get_db_session() as db:
        results = await InvoiceService(db).mark_overdue_invoices(as_of)

    logger.info(
        f"Overdue check completed: {results['marked_overdue']} of {results['checked']} invoices marked OVERDUE"
    )
    return results
