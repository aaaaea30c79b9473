"""Invoice documents and their status lifecycle.

Status flow:
    DRAFT -> SENT / UNPAID -> PARTIALLY_PAID -> PAID
                           -> OVERDUE -> PARTIALLY_PAID / PAID
    any open status -> CANCELLED / VOID

PAID, CANCELLED and VOID are terminal. ALLOW_UNCHECKED_STATUS_TRANSITIONS
restores the old behaviour where any status could be set from any other.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, FrozenSet, Optional
from uuid import UUID

from app.config import settings
from app.core.exceptions import BillingEngineError, InvalidTransition, NegativeAmount
from app.models.billing import InvoiceStatus
from app.schemas.billing import Invoice, InvoiceTemplate
from app.services.gst_calculation_service import compute_totals, q2


logger = logging.getLogger(__name__)

ZERO = Decimal("0")

INVOICE_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({
        InvoiceStatus.SENT, InvoiceStatus.UNPAID,
        InvoiceStatus.CANCELLED, InvoiceStatus.VOID,
    }),
    InvoiceStatus.SENT: frozenset({
        InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID,
        InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED, InvoiceStatus.VOID,
    }),
    InvoiceStatus.UNPAID: frozenset({
        InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID, InvoiceStatus.OVERDUE,
        InvoiceStatus.CANCELLED, InvoiceStatus.VOID,
    }),
    InvoiceStatus.PARTIALLY_PAID: frozenset({
        InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.VOID,
    }),
    InvoiceStatus.OVERDUE: frozenset({
        InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID,
        InvoiceStatus.CANCELLED, InvoiceStatus.VOID,
    }),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
    InvoiceStatus.VOID: frozenset(),
}

INITIAL_STATUSES = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.SENT})
TERMINAL_STATUSES = frozenset(s for s, targets in INVOICE_TRANSITIONS.items() if not targets)
OVERDUE_ELIGIBLE_STATUSES = frozenset({
    InvoiceStatus.SENT, InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID,
})


def allowed_transitions(status: InvoiceStatus) -> FrozenSet[InvoiceStatus]:
    return INVOICE_TRANSITIONS[InvoiceStatus(status)]


def transition_status(
    current: InvoiceStatus,
    requested: InvoiceStatus,
    allow_unchecked: Optional[bool] = None,
) -> InvoiceStatus:
    """
    Validate a status change and return the new status.

    Requesting the current status is a no-op. Raises InvalidTransition for
    moves outside the transition table unless unchecked transitions are
    allowed.
    """
    current = InvoiceStatus(current)
    requested = InvoiceStatus(requested)
    if allow_unchecked is None:
        allow_unchecked = settings.ALLOW_UNCHECKED_STATUS_TRANSITIONS

    if current == requested:
        return current

    allowed = allowed_transitions(current)
    if requested in allowed:
        return requested

    if allow_unchecked:
        logger.warning(f"Unchecked invoice status change {current.value} -> {requested.value}")
        return requested

    raise InvalidTransition("invoice", current.value, requested.value, [s.value for s in allowed])


def transition_invoice_status(
    invoice: Invoice,
    requested: InvoiceStatus,
    allow_unchecked: Optional[bool] = None,
) -> Invoice:
    """Return a copy of the invoice in the requested status."""
    new_status = transition_status(invoice.status, requested, allow_unchecked=allow_unchecked)
    if new_status == invoice.status:
        return invoice
    return invoice.model_copy(update={"status": new_status})


def build_invoice(
    template: InvoiceTemplate,
    invoice_date: date,
    status: InvoiceStatus = InvoiceStatus.DRAFT,
    invoice_id: Optional[UUID] = None,
    due_date: Optional[date] = None,
    recurring_profile_id: Optional[UUID] = None,
    generation_date: Optional[date] = None,
    strict: Optional[bool] = None,
) -> Invoice:
    """
    Run the financial pipeline over a template and produce a new invoice.

    The invoice starts in DRAFT or SENT. It has no invoice number yet; the
    number is assigned when the invoice is persisted.
    """
    status = InvoiceStatus(status)
    if status not in INITIAL_STATUSES:
        raise InvalidTransition("invoice", "NEW", status.value, [s.value for s in INITIAL_STATUSES])

    totals = compute_totals(
        template.items,
        discount=template.discount,
        additional_tax=template.additional_tax,
        adjustment=template.adjustment,
        seller_state_code=template.seller_state_code,
        place_of_supply=template.place_of_supply,
        buyer_address=template.buyer_address,
        customer_address=template.customer_address,
        strict=strict,
    )

    fields = {name: getattr(template, name) for name in InvoiceTemplate.model_fields}
    fields["seller_state_code"] = totals.seller_state_code
    extra = {"id": invoice_id} if invoice_id else {}

    return Invoice(
        **fields,
        **extra,
        status=status,
        invoice_date=invoice_date,
        due_date=due_date or invoice_date + timedelta(days=template.payment_due_days),
        totals=totals,
        amount_paid=ZERO,
        amount_due=max(totals.total, ZERO),
        recurring_profile_id=recurring_profile_id,
        generation_date=generation_date,
    )


def apply_payment(
    invoice: Invoice,
    amount: Decimal,
    allow_unchecked: Optional[bool] = None,
) -> Invoice:
    """
    Record a payment against an invoice.

    Moves the invoice to PARTIALLY_PAID or PAID through the transition table,
    so a DRAFT invoice has to be sent before it can be paid.
    """
    amount = Decimal(str(amount))
    if amount < 0:
        raise NegativeAmount("payment", amount)
    if amount == 0:
        raise BillingEngineError("Payment amount must be greater than zero", error_code="INVALID_PAYMENT")
    if invoice.amount_due <= 0:
        raise BillingEngineError(
            f"Invoice {invoice.invoice_number or invoice.id} has no amount due",
            error_code="NOTHING_DUE",
        )

    amount_paid = q2(invoice.amount_paid + amount)
    amount_due = max(q2(invoice.totals.total) - amount_paid, ZERO)
    target = InvoiceStatus.PAID if amount_due == 0 else InvoiceStatus.PARTIALLY_PAID

    new_status = transition_status(invoice.status, target, allow_unchecked=allow_unchecked)
    return invoice.model_copy(update={
        "status": new_status,
        "amount_paid": amount_paid,
        "amount_due": amount_due,
    })


def is_overdue(invoice: Invoice, as_of: date) -> bool:
    return (
        invoice.status in OVERDUE_ELIGIBLE_STATUSES
        and invoice.due_date is not None
        and invoice.due_date < as_of
        and invoice.amount_due > 0
    )


def mark_overdue(invoice: Invoice, as_of: date) -> Invoice:
    """Move an invoice past its due date to OVERDUE; other invoices are returned unchanged."""
    if not is_overdue(invoice, as_of):
        return invoice
    return transition_invoice_status(invoice, InvoiceStatus.OVERDUE, allow_unchecked=False)
