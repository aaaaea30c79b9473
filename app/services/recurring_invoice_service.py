"""Recurring Invoice Service.

Stores recurring profiles and runs the scheduler against them. Each
generated invoice is written together with a RecurringGenerationLog row;
the unique (profile_id, generation_date) constraint on the log keeps
generation idempotent even when two workers tick the same profile.
"""
import uuid
import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import select, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enum_utils import get_enum_value, to_enum
from app.models.billing import (
    AdditionalTaxKind,
    DiscountMode,
    GenerationTrigger,
    RecurrenceFrequency,
    RecurringGenerationLog,
    RecurringProfile as RecurringProfileModel,
    RecurringProfileItem,
    RecurringProfileStatus,
    TaxInvoice,
)
from app.schemas.billing import (
    AdditionalTax,
    Discount,
    GeneratedInvoiceRef,
    LineItem,
    RecurringProfile,
    RecurringProfileCreate,
    RecurringProfileScheduleUpdate,
    TickResult,
)
from app.services.invoice_service import InvoiceService
from app.services.recurring_scheduler import (
    initialise_profile,
    reschedule_profile,
    tick_scheduler,
    today,
    transition_profile_status,
)


logger = logging.getLogger(__name__)


def profile_to_document(row: RecurringProfileModel) -> RecurringProfile:
    """Rebuild the engine document from a stored profile."""
    additional_tax = None
    if row.additional_tax_kind:
        additional_tax = AdditionalTax(
            kind=to_enum(row.additional_tax_kind, AdditionalTaxKind),
            rate_percent=row.additional_tax_rate,
            amount=row.additional_tax_amount,
        )

    return RecurringProfile(
        id=row.id,
        profile_name=row.profile_name,
        frequency=to_enum(row.frequency, RecurrenceFrequency),
        start_date=row.start_date,
        end_date=row.end_date,
        never_expires=row.never_expires,
        next_generation_date=row.next_generation_date,
        last_generated_date=row.last_generated_date,
        total_generated=row.total_generated,
        status=to_enum(row.status, RecurringProfileStatus),
        is_active=row.is_active,
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
        terms_and_conditions=row.terms_and_conditions,
        customer_notes=row.customer_notes,
        generated_invoices=[
            GeneratedInvoiceRef(
                invoice_id=log.invoice_id,
                invoice_number=log.invoice_number,
                generation_date=log.generation_date,
                total=log.total,
            )
            for log in row.generation_logs
        ],
    )


def _apply_schedule(row: RecurringProfileModel, profile: RecurringProfile) -> None:
    row.next_generation_date = profile.next_generation_date
    row.last_generated_date = profile.last_generated_date
    row.total_generated = profile.total_generated
    row.status = get_enum_value(profile.status)
    row.is_active = profile.is_active


class RecurringInvoiceService:
    """Service for recurring invoice profiles and their generated invoices."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_profile_row(self, profile_id: uuid.UUID) -> Optional[RecurringProfileModel]:
        result = await self.db.execute(
            select(RecurringProfileModel).where(RecurringProfileModel.id == profile_id)
        )
        return result.scalar_one_or_none()

    async def get_profile(self, profile_id: uuid.UUID) -> Optional[RecurringProfile]:
        row = await self.get_profile_row(profile_id)
        return profile_to_document(row) if row else None

    async def create_profile(self, data: RecurringProfileCreate) -> RecurringProfile:
        """Create a profile; the first invoice is scheduled one period after start_date."""
        profile = initialise_profile(
            RecurringProfile(**{name: getattr(data, name) for name in RecurringProfileCreate.model_fields})
        )
        additional_tax = profile.additional_tax

        row = RecurringProfileModel(
            id=profile.id,
            profile_name=profile.profile_name,
            frequency=get_enum_value(profile.frequency),
            start_date=profile.start_date,
            end_date=profile.end_date,
            never_expires=profile.never_expires,
            next_generation_date=profile.next_generation_date,
            total_generated=0,
            status=get_enum_value(profile.status),
            is_active=True,
            customer_id=profile.customer_id,
            customer_name=profile.customer_name,
            customer_address=profile.customer_address,
            buyer_name=profile.buyer_name,
            buyer_address=profile.buyer_address,
            buyer_gstin=profile.buyer_gstin,
            seller_name=profile.seller_name,
            seller_gstin=profile.seller_gstin,
            seller_address=profile.seller_address,
            seller_state_code=profile.seller_state_code,
            place_of_supply=profile.place_of_supply,
            discount_value=profile.discount.value,
            discount_mode=get_enum_value(profile.discount.mode),
            additional_tax_kind=get_enum_value(additional_tax.kind) if additional_tax else None,
            additional_tax_rate=additional_tax.rate_percent if additional_tax else None,
            additional_tax_amount=additional_tax.amount if additional_tax else None,
            adjustment=profile.adjustment,
            payment_due_days=profile.payment_due_days,
            terms_and_conditions=profile.terms_and_conditions,
            customer_notes=profile.customer_notes,
            items=[
                RecurringProfileItem(
                    line_number=line_number,
                    description=item.description,
                    quantity=item.quantity,
                    unit_rate=item.unit_rate,
                    tax_rate=item.tax_rate_percent,
                )
                for line_number, item in enumerate(profile.items, start=1)
            ],
            generation_logs=[],
        )
        self.db.add(row)
        await self.db.flush()

        logger.info(
            f"Recurring profile '{profile.profile_name}' created ({profile.frequency.value}), "
            f"first invoice on {profile.next_generation_date}"
        )
        return profile

    async def update_status(
        self,
        profile_id: uuid.UUID,
        status: RecurringProfileStatus,
        as_of: Optional[date] = None,
    ) -> Optional[RecurringProfile]:
        """Pause, resume or complete a profile."""
        row = await self.get_profile_row(profile_id)
        if not row:
            return None

        updated = transition_profile_status(profile_to_document(row), status, as_of=as_of or today())
        _apply_schedule(row, updated)
        await self.db.flush()
        return updated

    async def update_schedule(
        self,
        profile_id: uuid.UUID,
        data: RecurringProfileScheduleUpdate,
    ) -> Optional[RecurringProfile]:
        """Change frequency or dates; the next generation date follows the new schedule."""
        row = await self.get_profile_row(profile_id)
        if not row:
            return None

        updated = reschedule_profile(profile_to_document(row), **data.model_dump(exclude_none=True))
        row.frequency = get_enum_value(updated.frequency)
        row.start_date = updated.start_date
        row.end_date = updated.end_date
        row.never_expires = updated.never_expires
        _apply_schedule(row, updated)
        await self.db.flush()
        return updated

    async def tick(
        self,
        profile_id: uuid.UUID,
        as_of: Optional[date] = None,
    ) -> Optional[TickResult]:
        """Run one scheduler step for a profile and persist its outcome."""
        row = await self.get_profile_row(profile_id)
        if not row:
            return None

        result = tick_scheduler(profile_to_document(row), as_of or today())
        invoice = result.new_invoice

        if invoice is not None:
            already_logged = await self.db.scalar(
                select(RecurringGenerationLog.id).where(
                    and_(
                        RecurringGenerationLog.profile_id == row.id,
                        RecurringGenerationLog.generation_date == invoice.generation_date,
                    )
                )
            )
            if already_logged:
                logger.warning(
                    f"Invoice for profile {row.id} on {invoice.generation_date} already exists, not saving again"
                )
                invoice = None
            else:
                invoice = await InvoiceService(self.db).save_new_invoice(
                    invoice, trigger=GenerationTrigger.RECURRING_PROFILE
                )
                row.generation_logs.append(
                    RecurringGenerationLog(
                        generation_date=invoice.generation_date,
                        invoice_id=invoice.id,
                        invoice_number=invoice.invoice_number,
                        total=invoice.totals.total,
                    )
                )

        _apply_schedule(row, result.profile)
        await self.db.flush()

        return TickResult(profile=profile_to_document(row), new_invoice=invoice)

    async def list_generated_invoices(
        self,
        profile_id: uuid.UUID,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[TaxInvoice], int]:
        """Invoices generated by a profile, newest first."""
        condition = TaxInvoice.recurring_profile_id == profile_id

        total = await self.db.scalar(
            select(func.count()).select_from(TaxInvoice).where(condition)
        )
        result = await self.db.execute(
            select(TaxInvoice)
            .where(condition)
            .order_by(TaxInvoice.generation_date.desc(), TaxInvoice.invoice_date.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total or 0

    async def get_due_profile_ids(self, as_of: date) -> List[uuid.UUID]:
        """Active profiles that are due, or whose end date has passed."""
        result = await self.db.execute(
            select(RecurringProfileModel.id).where(
                and_(
                    RecurringProfileModel.status == RecurringProfileStatus.ACTIVE.value,
                    or_(
                        RecurringProfileModel.next_generation_date.is_(None),
                        RecurringProfileModel.next_generation_date <= as_of,
                        and_(
                            RecurringProfileModel.never_expires == False,  # noqa: E712
                            RecurringProfileModel.end_date < as_of,
                        ),
                    ),
                )
            ).order_by(RecurringProfileModel.next_generation_date)
        )
        return list(result.scalars().all())
