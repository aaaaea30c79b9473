"""Invoice Service: persistence of billing engine invoices.

Invoices are computed by the billing engine as immutable documents and
stored as TaxInvoice rows. Invoice numbers are assigned here, per series
and Indian financial year (April to March):

    INV/2024-25/00001
"""
import uuid
import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Dict, List, Any

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.enum_utils import get_enum_value, to_enum
from app.models.billing import (
    AdditionalTaxKind, DiscountMode,
    TaxInvoice, InvoiceItem, InvoiceStatus, GenerationTrigger,
    InvoiceNumberSequence
)
from app.schemas.billing import (
    AdditionalTax, Discount, Invoice, InvoiceComputation, InvoiceCreate, LineItem,
)
from app.services.gst_calculation_service import printed_tax_split, q2
from app.services.invoice_lifecycle_service import (
    OVERDUE_ELIGIBLE_STATUSES,
    apply_payment,
    build_invoice,
    mark_overdue,
    transition_invoice_status,
)
from app.services.recurring_scheduler import today


logger = logging.getLogger(__name__)


def financial_year(on: date) -> str:
    """Indian financial year label for a date, e.g. 2024-25."""
    if on.month >= 4:
        return f"{on.year}-{str(on.year + 1)[2:]}"
    return f"{on.year - 1}-{str(on.year)[2:]}"


def invoice_to_document(row: TaxInvoice) -> Invoice:
    """Rebuild the engine document from a stored invoice."""
    additional_tax = None
    if row.additional_tax_kind:
        additional_tax = AdditionalTax(
            kind=to_enum(row.additional_tax_kind, AdditionalTaxKind),
            rate_percent=row.additional_tax_rate,
            amount=row.additional_tax_amount,
        )

    return Invoice(
        id=row.id,
        invoice_number=row.invoice_number,
        status=to_enum(row.status, InvoiceStatus),
        invoice_date=row.invoice_date,
        due_date=row.due_date,
        customer_id=row.customer_id,
        customer_name=row.customer_name,
        customer_address=row.customer_address,
        buyer_name=row.buyer_name,
        buyer_address=row.buyer_address,
        buyer_gstin=row.buyer_gstin,
        seller_name=row.seller_name,
        seller_gstin=row.seller_gstin,
        seller_address=row.seller_address,
        seller_state_code=row.seller_state_code,
        place_of_supply=row.place_of_supply,
        items=[
            LineItem(
                description=item.description,
                quantity=item.quantity,
                unit_rate=item.unit_rate,
                tax_rate_percent=item.tax_rate,
            )
            for item in row.items
        ],
        discount=Discount(value=row.discount_value, mode=to_enum(row.discount_mode, DiscountMode)),
        additional_tax=additional_tax,
        adjustment=row.adjustment,
        payment_due_days=row.payment_due_days,
        totals=InvoiceComputation.model_validate(row.computation),
        amount_paid=row.amount_paid,
        amount_due=row.amount_due,
        recurring_profile_id=row.recurring_profile_id,
        generation_date=row.generation_date,
        terms_and_conditions=row.terms_and_conditions,
        customer_notes=row.customer_notes,
    )


def _printed_line_tax(line) -> Dict[str, Decimal]:
    cgst, sgst, igst = printed_tax_split(line.cgst, line.sgst, line.igst)
    return {"cgst_amount": cgst, "sgst_amount": sgst, "igst_amount": igst}


def _invoice_row(invoice: Invoice, trigger: GenerationTrigger) -> TaxInvoice:
    totals = invoice.totals
    additional_tax = invoice.additional_tax
    cgst_amount, sgst_amount, igst_amount = printed_tax_split(totals.cgst, totals.sgst, totals.igst)

    return TaxInvoice(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        status=get_enum_value(invoice.status),
        invoice_date=invoice.invoice_date,
        due_date=invoice.due_date,
        generation_trigger=get_enum_value(trigger),
        recurring_profile_id=invoice.recurring_profile_id,
        generation_date=invoice.generation_date,
        customer_id=invoice.customer_id,
        customer_name=invoice.customer_name,
        customer_address=invoice.customer_address,
        buyer_name=invoice.buyer_name,
        buyer_address=invoice.buyer_address,
        buyer_gstin=invoice.buyer_gstin,
        seller_name=invoice.seller_name,
        seller_gstin=invoice.seller_gstin,
        seller_address=invoice.seller_address,
        seller_state_code=totals.seller_state_code,
        place_of_supply=invoice.place_of_supply,
        place_of_supply_code=totals.place_of_supply_code,
        supply_type=get_enum_value(totals.supply_type),
        discount_value=invoice.discount.value,
        discount_mode=get_enum_value(invoice.discount.mode),
        additional_tax_kind=get_enum_value(additional_tax.kind) if additional_tax else None,
        additional_tax_rate=additional_tax.rate_percent if additional_tax else None,
        subtotal=totals.sub_total,
        discount_amount=totals.discount_amount,
        taxable_amount=totals.taxable_amount,
        cgst_amount=cgst_amount,
        sgst_amount=sgst_amount,
        igst_amount=igst_amount,
        total_tax=totals.tax_amount,
        additional_tax_amount=totals.additional_tax_amount,
        adjustment=totals.adjustment,
        grand_total=totals.total,
        amount_in_words=totals.amount_in_words,
        computation=totals.model_dump(mode="json"),
        amount_paid=invoice.amount_paid,
        amount_due=invoice.amount_due,
        payment_due_days=invoice.payment_due_days,
        terms_and_conditions=invoice.terms_and_conditions,
        customer_notes=invoice.customer_notes,
        items=[
            InvoiceItem(
                line_number=line.line_number,
                description=line.description,
                quantity=line.quantity,
                unit_rate=line.unit_rate,
                tax_rate=line.tax_rate_percent,
                amount=q2(line.amount),
                tax_amount=q2(line.tax_amount),
                **_printed_line_tax(line),
            )
            for line in totals.line_items
        ],
    )


class InvoiceService:
    """Service for invoice creation, numbering, status and payments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate_invoice_number(
        self,
        invoice_date: date,
        series_code: Optional[str] = None,
    ) -> str:
        """Generate unique invoice number from sequence."""
        series_code = series_code or settings.INVOICE_SERIES_CODE
        fy = financial_year(invoice_date)

        # Get or create sequence
        result = await self.db.execute(
            select(InvoiceNumberSequence).where(
                and_(
                    InvoiceNumberSequence.series_code == series_code,
                    InvoiceNumberSequence.financial_year == fy,
                )
            )
        )
        sequence = result.scalar_one_or_none()

        if not sequence:
            sequence = InvoiceNumberSequence(
                series_code=series_code,
                financial_year=fy,
                prefix=f"{series_code}/{fy}/",
                current_number=0,
                padding_length=5,
            )
            self.db.add(sequence)
            await self.db.flush()

        return sequence.get_next_number()

    async def get_invoice_row(self, invoice_id: uuid.UUID) -> Optional[TaxInvoice]:
        result = await self.db.execute(
            select(TaxInvoice).where(TaxInvoice.id == invoice_id)
        )
        return result.scalar_one_or_none()

    async def get_invoice(self, invoice_id: uuid.UUID) -> Optional[Invoice]:
        row = await self.get_invoice_row(invoice_id)
        return invoice_to_document(row) if row else None

    async def save_new_invoice(
        self,
        invoice: Invoice,
        trigger: GenerationTrigger = GenerationTrigger.MANUAL,
    ) -> Invoice:
        """Number and persist a freshly built invoice."""
        if not invoice.invoice_number:
            number = await self.generate_invoice_number(invoice.invoice_date)
            invoice = invoice.model_copy(update={"invoice_number": number})

        self.db.add(_invoice_row(invoice, trigger))
        await self.db.flush()

        logger.info(
            f"Invoice {invoice.invoice_number} created ({invoice.status.value}, "
            f"{invoice.totals.supply_type.value}, total {invoice.totals.total})"
        )
        return invoice

    async def create_invoice(self, data: InvoiceCreate) -> Invoice:
        """Compute and persist a one-off invoice."""
        invoice = build_invoice(
            data,
            invoice_date=data.invoice_date or today(),
            status=data.status,
            due_date=data.due_date,
        )
        return await self.save_new_invoice(invoice)

    async def update_status(
        self,
        invoice_id: uuid.UUID,
        status: InvoiceStatus,
    ) -> Optional[Invoice]:
        """Move an invoice to a new status through the transition table."""
        row = await self.get_invoice_row(invoice_id)
        if not row:
            return None

        current = invoice_to_document(row)
        updated = transition_invoice_status(current, status)
        if updated.status != current.status:
            row.status = updated.status.value
            await self.db.flush()
            logger.info(
                f"Invoice {row.invoice_number} status {current.status.value} -> {updated.status.value}"
            )
        return updated

    async def record_payment(
        self,
        invoice_id: uuid.UUID,
        amount: Decimal,
    ) -> Optional[Invoice]:
        """Apply a payment and derive PARTIALLY_PAID / PAID."""
        row = await self.get_invoice_row(invoice_id)
        if not row:
            return None

        updated = apply_payment(invoice_to_document(row), amount)
        row.status = updated.status.value
        row.amount_paid = updated.amount_paid
        row.amount_due = updated.amount_due
        await self.db.flush()

        logger.info(
            f"Payment of {amount} recorded on invoice {row.invoice_number}: "
            f"paid {updated.amount_paid}, due {updated.amount_due}, status {updated.status.value}"
        )
        return updated

    async def mark_overdue_invoices(self, as_of: Optional[date] = None) -> Dict[str, Any]:
        """Move open invoices past their due date to OVERDUE."""
        as_of = as_of or today()
        results: Dict[str, Any] = {
            "checked": 0,
            "marked_overdue": 0,
            "invoice_numbers": [],
        }

        result = await self.db.execute(
            select(TaxInvoice).where(
                and_(
                    TaxInvoice.status.in_([s.value for s in OVERDUE_ELIGIBLE_STATUSES]),
                    TaxInvoice.due_date < as_of,
                    TaxInvoice.amount_due > 0,
                )
            )
        )
        rows: List[TaxInvoice] = list(result.scalars().all())
        results["checked"] = len(rows)

        for row in rows:
            updated = mark_overdue(invoice_to_document(row), as_of)
            if updated.status == InvoiceStatus.OVERDUE:
                row.status = updated.status.value
                results["marked_overdue"] += 1
                results["invoice_numbers"].append(row.invoice_number)

        await self.db.flush()
        return results
