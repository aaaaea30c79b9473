"""
Billing engine entry points.

One place for request handlers and jobs to call into; both one-off and
recurring invoices go through the same computation.

- compute_totals(line_items, discount, additional_tax, adjustment,
  seller_state_code, place_of_supply) -> InvoiceComputation
- amount_to_words(amount) -> str
- transition_invoice_status(invoice, requested_status) -> Invoice
- tick_scheduler(profile, as_of) -> TickResult
"""
from app.services.amount_in_words import amount_to_words
from app.services.gst_calculation_service import compute_totals
from app.services.invoice_lifecycle_service import (
    apply_payment,
    build_invoice,
    mark_overdue,
    transition_invoice_status,
)
from app.services.recurring_scheduler import (
    initialise_profile,
    reschedule_profile,
    should_generate,
    tick_scheduler,
    transition_profile_status,
)

__all__ = [
    "compute_totals",
    "amount_to_words",
    "transition_invoice_status",
    "tick_scheduler",
    "build_invoice",
    "apply_payment",
    "mark_overdue",
    "initialise_profile",
    "reschedule_profile",
    "should_generate",
    "transition_profile_status",
]
