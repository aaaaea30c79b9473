"""Pydantic schemas for the billing engine and its HTTP surface.

Engine documents (LineItem, Discount, Invoice, RecurringProfile, ...) are
immutable and use camelCase aliases. Request schemas reuse them so that the
frontend can post the same shapes it reads back.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from app.core.enum_utils import (
    create_uppercase_validator,
    normalize_to_uppercase,
    VALID_ADDITIONAL_TAX_KINDS,
    VALID_DISCOUNT_MODES,
    VALID_INVOICE_STATUSES,
    VALID_RECURRENCE_FREQUENCIES,
    VALID_RECURRING_PROFILE_STATUSES,
    VALID_SUPPLY_TYPES,
)
from app.core.exceptions import NegativeAmount, RecurringProfileError
from app.models.billing import (
    AdditionalTaxKind,
    DiscountMode,
    InvoiceStatus,
    RecurrenceFrequency,
    RecurringProfileStatus,
    SupplyType,
)
from app.schemas.base import BaseCreateSchema, BaseResponseSchema, EngineDocument


ZERO = Decimal("0")

# Spellings the bookkeeping frontend uses for a flat discount
_FIXED_DISCOUNT_ALIASES = {"AMOUNT", "FIXED", "FLAT", "FIXEDAMOUNT", "FIXED_AMOUNT"}


def _reject_negative(field: str, value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and value < 0:
        raise NegativeAmount(field, value)
    return value


# ==================== Line Items ====================

class LineItem(EngineDocument):
    """Invoice line: quantity x unit rate, taxed at tax_rate_percent."""

    description: str = ""
    quantity: Decimal = ZERO
    unit_rate: Decimal = Field(
        ZERO,
        validation_alias=AliasChoices("unitRate", "unit_rate", "rate"),
    )
    tax_rate_percent: Decimal = Field(
        ZERO,
        le=100,
        validation_alias=AliasChoices("taxRatePercent", "tax_rate_percent", "taxRate", "tax"),
    )

    @field_validator("quantity", "unit_rate", "tax_rate_percent")
    @classmethod
    def non_negative(cls, v, info):
        return _reject_negative(info.field_name, v)

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.unit_rate

    @property
    def tax_amount(self) -> Decimal:
        return self.amount * self.tax_rate_percent / Decimal("100")


class LineItemBreakdown(EngineDocument):
    """One printed row of the items table, numbered from 1."""

    line_number: int
    description: str
    quantity: Decimal
    unit_rate: Decimal
    tax_rate_percent: Decimal
    amount: Decimal
    tax_amount: Decimal
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    igst: Decimal = ZERO


class LineItemSummary(EngineDocument):
    """Aggregate of an ordered line item sequence."""

    sub_total: Decimal = ZERO
    total_quantity: Decimal = ZERO
    total_tax: Decimal = ZERO
    lines: List[LineItemBreakdown] = Field(default_factory=list)


# ==================== Discount / TDS / TCS ====================

class Discount(EngineDocument):
    """Invoice-level discount, applied to the subtotal before tax."""

    value: Decimal = ZERO
    mode: DiscountMode = DiscountMode.PERCENTAGE

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v):
        if isinstance(v, str) and v.strip().upper().replace(" ", "_") in _FIXED_DISCOUNT_ALIASES:
            return DiscountMode.FIXED_AMOUNT
        return normalize_to_uppercase(v, VALID_DISCOUNT_MODES)

    @field_validator("value")
    @classmethod
    def non_negative(cls, v):
        return _reject_negative("discount", v)


class AdditionalTax(EngineDocument):
    """
    TDS or TCS on the invoice.

    ``amount`` is always a magnitude; ``kind`` decides the sign (TDS is
    subtracted from the total, TCS is added). Older records stored TDS as a
    negative amount, so a negative amount is read as its absolute value.
    When only ``rate_percent`` is given the amount is derived from the
    discounted subtotal.
    """

    kind: AdditionalTaxKind
    rate_percent: Optional[Decimal] = Field(
        None,
        validation_alias=AliasChoices("ratePercent", "rate_percent", "rate"),
    )
    amount: Optional[Decimal] = None

    normalize_kind = create_uppercase_validator("kind", valid_values=VALID_ADDITIONAL_TAX_KINDS)

    @field_validator("rate_percent")
    @classmethod
    def non_negative_rate(cls, v):
        return _reject_negative("additional_tax_rate", v)

    @field_validator("amount")
    @classmethod
    def magnitude(cls, v):
        return abs(v) if v is not None else v


# ==================== Tax / Totals ====================

class TaxBreakdown(EngineDocument):
    """GST components. Exactly one of cgst+sgst or igst is non-zero."""

    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    igst: Decimal = ZERO

    @property
    def gst_total(self) -> Decimal:
        return self.cgst + self.sgst + self.igst


class InvoiceTotals(EngineDocument):
    """
    Financial summary.

    total = sub_total - discount_amount + tax_amount -/+ additional_tax_amount + adjustment
    """

    sub_total: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    additional_tax_kind: Optional[AdditionalTaxKind] = None
    additional_tax_amount: Decimal = ZERO
    adjustment: Decimal = ZERO
    total: Decimal = ZERO

    @property
    def signed_additional_tax(self) -> Decimal:
        if self.additional_tax_kind == AdditionalTaxKind.TDS:
            return -self.additional_tax_amount
        return self.additional_tax_amount


class SupplyClassification(EngineDocument):
    supply_type: SupplyType
    seller_state_code: str
    place_of_supply_code: str
    resolved_from: str = "DEFAULT"

    normalize_supply_type = create_uppercase_validator("supply_type", valid_values=VALID_SUPPLY_TYPES)


class InvoiceComputation(InvoiceTotals, TaxBreakdown):
    """Result of compute_totals: totals, GST components and the per-line table."""

    taxable_amount: Decimal = ZERO
    total_quantity: Decimal = ZERO
    effective_tax_rate: Decimal = ZERO
    supply_type: SupplyType = SupplyType.INTRA_STATE
    seller_state_code: str = ""
    place_of_supply_code: str = ""
    discount_applies_at_invoice_level: bool = True
    is_credit_balance: bool = False
    amount_in_words: str = ""
    line_items: List[LineItemBreakdown] = Field(default_factory=list)


# ==================== Invoice Documents ====================

class InvoiceTemplate(EngineDocument):
    """Parties, items and summary inputs shared by invoices and recurring profiles."""

    customer_id: Optional[str] = None
    customer_name: str = ""
    customer_address: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_address: Optional[str] = None
    buyer_gstin: Optional[str] = None

    seller_name: Optional[str] = None
    seller_gstin: Optional[str] = None
    seller_address: Optional[str] = None
    seller_state_code: Optional[str] = None  # None: use configured seller state
    place_of_supply: Optional[str] = None

    items: List[LineItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("items", "lineItems", "line_items"),
    )
    discount: Discount = Field(default_factory=Discount)
    additional_tax: Optional[AdditionalTax] = None
    adjustment: Decimal = ZERO
    payment_due_days: int = Field(30, ge=0)

    terms_and_conditions: Optional[str] = None
    customer_notes: Optional[str] = None


class Invoice(InvoiceTemplate):
    """A computed invoice document."""

    id: UUID = Field(default_factory=uuid4)
    invoice_number: Optional[str] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    invoice_date: date
    due_date: Optional[date] = None

    totals: InvoiceComputation
    amount_paid: Decimal = ZERO
    amount_due: Decimal = ZERO

    recurring_profile_id: Optional[UUID] = None
    generation_date: Optional[date] = None

    normalize_status = create_uppercase_validator("status", valid_values=VALID_INVOICE_STATUSES)


class GeneratedInvoiceRef(EngineDocument):
    """Weak reference from a recurring profile to an invoice it produced."""

    invoice_id: UUID
    invoice_number: Optional[str] = None
    generation_date: date
    total: Decimal = ZERO


class RecurringProfile(InvoiceTemplate):
    """Recurring invoice profile with its schedule and generation history."""

    id: UUID = Field(default_factory=uuid4)
    profile_name: str = ""
    frequency: RecurrenceFrequency = RecurrenceFrequency.MONTHLY
    start_date: date
    end_date: Optional[date] = None
    never_expires: bool = False

    next_generation_date: Optional[date] = None
    last_generated_date: Optional[date] = None
    total_generated: int = 0
    status: RecurringProfileStatus = RecurringProfileStatus.ACTIVE
    is_active: bool = True
    generated_invoices: List[GeneratedInvoiceRef] = Field(default_factory=list)

    normalize_enums = create_uppercase_validator("frequency", valid_values=VALID_RECURRENCE_FREQUENCIES)
    normalize_status = create_uppercase_validator("status", valid_values=VALID_RECURRING_PROFILE_STATUSES)

    @model_validator(mode="after")
    def check_schedule(self):
        if not self.never_expires and self.end_date is None:
            raise RecurringProfileError("end_date is required unless the profile never expires")
        if self.end_date is not None and self.end_date < self.start_date:
            raise RecurringProfileError(
                f"end_date {self.end_date} is before start_date {self.start_date}",
                details={"start_date": str(self.start_date), "end_date": str(self.end_date)},
            )
        return self


class TickResult(EngineDocument):
    """Outcome of one scheduler tick for a profile."""

    profile: RecurringProfile
    new_invoice: Optional[Invoice] = None

    @property
    def generated(self) -> bool:
        return self.new_invoice is not None


# ==================== Request Schemas ====================

class ComputeTotalsRequest(BaseCreateSchema):
    """Ad-hoc totals computation, no persistence."""

    line_items: List[LineItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("lineItems", "line_items", "items"),
    )
    discount: Discount = Field(default_factory=Discount)
    additional_tax: Optional[AdditionalTax] = None
    adjustment: Decimal = ZERO
    seller_state_code: Optional[str] = None
    place_of_supply: Optional[str] = None
    buyer_address: Optional[str] = None
    customer_address: Optional[str] = None


class AmountInWordsRequest(BaseCreateSchema):
    amount: Decimal


class AmountInWordsResponse(BaseModel):
    amount: Decimal
    words: str


class JurisdictionResponse(BaseModel):
    address: Optional[str] = None
    state_code: str
    state_name: str
    matched: bool


class InvoiceCreate(InvoiceTemplate):
    """Create a one-off invoice (DRAFT, or SENT when sent immediately)."""

    items: List[LineItem] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("items", "lineItems", "line_items"),
    )
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT

    normalize_status = create_uppercase_validator("status", valid_values=VALID_INVOICE_STATUSES)

    @field_validator("status")
    @classmethod
    def initial_status(cls, v):
        if v not in (InvoiceStatus.DRAFT, InvoiceStatus.SENT):
            raise ValueError("Invoices are created as DRAFT or SENT")
        return v


class InvoiceStatusUpdate(BaseCreateSchema):
    status: InvoiceStatus

    normalize_status = create_uppercase_validator("status", valid_values=VALID_INVOICE_STATUSES)


class PaymentCreate(BaseCreateSchema):
    amount: Decimal
    payment_date: Optional[date] = None
    reference: Optional[str] = Field(None, max_length=100)


class RecurringProfileCreate(InvoiceTemplate):
    """Create a recurring profile; the schedule starts one period after start_date."""

    profile_name: str = Field(..., min_length=1, max_length=200)
    frequency: RecurrenceFrequency = RecurrenceFrequency.MONTHLY
    start_date: date
    end_date: Optional[date] = None
    never_expires: bool = False

    normalize_frequency = create_uppercase_validator("frequency", valid_values=VALID_RECURRENCE_FREQUENCIES)

    @model_validator(mode="after")
    def check_schedule(self):
        if not self.never_expires and self.end_date is None:
            raise RecurringProfileError("end_date is required unless the profile never expires")
        if self.end_date is not None and self.end_date < self.start_date:
            raise RecurringProfileError(
                f"end_date {self.end_date} is before start_date {self.start_date}",
                details={"start_date": str(self.start_date), "end_date": str(self.end_date)},
            )
        return self


class RecurringProfileStatusUpdate(BaseCreateSchema):
    status: RecurringProfileStatus
    as_of: Optional[date] = None

    normalize_status = create_uppercase_validator("status", valid_values=VALID_RECURRING_PROFILE_STATUSES)


class RecurringProfileScheduleUpdate(BaseCreateSchema):
    """Change how often a profile runs or over which dates."""

    frequency: Optional[RecurrenceFrequency] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    never_expires: Optional[bool] = None

    normalize_frequency = create_uppercase_validator("frequency", valid_values=VALID_RECURRENCE_FREQUENCIES)


class TickRequest(BaseCreateSchema):
    as_of: Optional[date] = None


# ==================== Response Schemas ====================

class GeneratedInvoiceResponse(BaseResponseSchema):
    """Invoice row listed under a recurring profile."""

    id: UUID
    invoice_number: Optional[str] = None
    status: str
    invoice_date: date
    generation_date: Optional[date] = None
    due_date: Optional[date] = None
    grand_total: Decimal
    amount_due: Decimal


class GeneratedInvoiceListResponse(BaseModel):
    """Response for listing invoices generated by a profile."""
    items: List[GeneratedInvoiceResponse]
    total: int
    page: int = 1
    size: int = 20
    pages: int = 1
