"""Billing models for GST invoices and recurring invoice profiles.

Supports:
- Tax Invoice with CGST/SGST or IGST split and TDS/TCS
- Recurring invoice profiles (daily/weekly/monthly/yearly)
- Generation log enforcing one invoice per profile per generation date
- Financial-year invoice number sequences
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Date
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.enum_utils import enum_comment
from app.database import Base
from app.db_types import JSONType, UUIDType


class InvoiceStatus(str, Enum):
    """Invoice status enumeration."""
    DRAFT = "DRAFT"
    SENT = "SENT"                     # Sent to customer
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"
    VOID = "VOID"


class SupplyType(str, Enum):
    """GST supply type derived from seller state vs place of supply."""
    INTRA_STATE = "INTRA_STATE"       # CGST + SGST
    INTER_STATE = "INTER_STATE"       # IGST


class DiscountMode(str, Enum):
    """Invoice-level discount mode."""
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class AdditionalTaxKind(str, Enum):
    """Withholding tax applied on the invoice total."""
    TDS = "TDS"                       # Tax Deducted at Source, subtracted
    TCS = "TCS"                       # Tax Collected at Source, added


class RecurrenceFrequency(str, Enum):
    """Recurring profile frequency."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class RecurringProfileStatus(str, Enum):
    """Recurring profile status."""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"


class GenerationTrigger(str, Enum):
    """What created an invoice."""
    MANUAL = "MANUAL"
    RECURRING_PROFILE = "RECURRING_PROFILE"


def _money(precision: int = 14) -> Numeric:
    return Numeric(precision, 2)


class TaxInvoice(Base):
    """
    Tax Invoice.

    Amount columns hold the rounded figures printed on the invoice. The
    line items and discount/TDS/TCS inputs are kept so totals can be
    recomputed by the billing engine.
    """
    __tablename__ = "tax_invoices"
    __table_args__ = (
        Index("ix_tax_invoices_invoice_date", "invoice_date"),
        Index("ix_tax_invoices_due_date", "due_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Invoice Identification
    invoice_number: Mapped[Optional[str]] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
        index=True,
        comment="Unique invoice number e.g., INV/2024-25/00001"
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default="DRAFT",
        nullable=False,
        index=True,
        comment=enum_comment(InvoiceStatus)
    )

    # Dates
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Recurring profile back-reference
    generation_trigger: Mapped[str] = mapped_column(
        String(50),
        default="MANUAL",
        comment=enum_comment(GenerationTrigger)
    )
    recurring_profile_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("recurring_profiles.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    generation_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        comment="Schedule date this invoice was generated for"
    )

    # Customer / Buyer
    customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    buyer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    buyer_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    buyer_gstin: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)

    # Seller Details (denormalized)
    seller_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    seller_gstin: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    seller_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    seller_state_code: Mapped[str] = mapped_column(String(2), nullable=False)

    # Place of Supply
    place_of_supply: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Place of supply as entered (free text)"
    )
    place_of_supply_code: Mapped[str] = mapped_column(
        String(2),
        nullable=False,
        comment="Resolved GST state code for place of supply"
    )
    supply_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="INTRA_STATE (CGST+SGST) or INTER_STATE (IGST)"
    )

    # Discount input
    discount_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=Decimal("0"))
    discount_mode: Mapped[str] = mapped_column(String(20), default="PERCENTAGE")

    # TDS/TCS input
    additional_tax_kind: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    additional_tax_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 4), nullable=True)

    # Amounts (in INR)
    subtotal: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    taxable_amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    sgst_amount: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    igst_amount: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    total_tax: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    additional_tax_amount: Mapped[Decimal] = mapped_column(
        _money(),
        default=Decimal("0"),
        comment="Always stored as a positive magnitude; kind decides the sign"
    )
    adjustment: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    grand_total: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    amount_in_words: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    computation: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Full computed summary incl. per-line GST table"
    )
    currency: Mapped[str] = mapped_column(String(3), default="INR")

    # Payment Status
    amount_paid: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    amount_due: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    payment_due_days: Mapped[int] = mapped_column(Integer, default=30)

    # Remarks
    terms_and_conditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Optimistic locking: concurrent status changes fail with StaleDataError
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    items: Mapped[List["InvoiceItem"]] = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.line_number",
        lazy="selectin",
    )

    @property
    def is_interstate(self) -> bool:
        return self.supply_type == SupplyType.INTER_STATE.value

    def __repr__(self) -> str:
        return f"<Invoice(number='{self.invoice_number}', status='{self.status}')>"


class InvoiceItem(Base):
    """Invoice line item with GST breakup (invoice-level discount not applied)."""
    __tablename__ = "invoice_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("tax_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    unit_rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))

    amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    cgst_amount: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    sgst_amount: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    igst_amount: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))

    invoice: Mapped["TaxInvoice"] = relationship("TaxInvoice", back_populates="items")

    def __repr__(self) -> str:
        return f"<InvoiceItem(line={self.line_number}, description='{self.description}')>"


class RecurringProfile(Base):
    """
    Recurring invoice profile.

    Stores the invoice template (parties, items, discount, TDS/TCS,
    adjustment) and the schedule. Generated invoices point back here.
    """
    __tablename__ = "recurring_profiles"
    __table_args__ = (
        Index("ix_recurring_profiles_next_generation_date", "next_generation_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    profile_name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    # Recurrence Settings
    frequency: Mapped[str] = mapped_column(
        String(20),
        default="MONTHLY",
        nullable=False,
        comment=enum_comment(RecurrenceFrequency)
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    never_expires: Mapped[bool] = mapped_column(Boolean, default=False)

    # Generation Tracking
    next_generation_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_generated_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_generated: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(
        String(20),
        default="ACTIVE",
        nullable=False,
        index=True,
        comment=enum_comment(RecurringProfileStatus)
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Customer / Buyer
    customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    buyer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    buyer_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    buyer_gstin: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)

    # Seller
    seller_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    seller_gstin: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    seller_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    seller_state_code: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    place_of_supply: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Summary inputs
    discount_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=Decimal("0"))
    discount_mode: Mapped[str] = mapped_column(String(20), default="PERCENTAGE")
    additional_tax_kind: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    additional_tax_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 4), nullable=True)
    additional_tax_amount: Mapped[Optional[Decimal]] = mapped_column(_money(), nullable=True)
    adjustment: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    payment_due_days: Mapped[int] = mapped_column(Integer, default=30)

    terms_and_conditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Optimistic locking: concurrent status changes fail with StaleDataError
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    items: Mapped[List["RecurringProfileItem"]] = relationship(
        "RecurringProfileItem",
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="RecurringProfileItem.line_number",
        lazy="selectin",
    )
    generation_logs: Mapped[List["RecurringGenerationLog"]] = relationship(
        "RecurringGenerationLog",
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="RecurringGenerationLog.generation_date",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<RecurringProfile(name='{self.profile_name}', status='{self.status}')>"


class RecurringProfileItem(Base):
    """Line item template of a recurring profile."""
    __tablename__ = "recurring_profile_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("recurring_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    unit_rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))

    profile: Mapped["RecurringProfile"] = relationship("RecurringProfile", back_populates="items")


class RecurringGenerationLog(Base):
    """
    One row per (profile, generation date).

    The unique constraint makes the generation step idempotent at the
    database level.
    """
    __tablename__ = "recurring_generation_logs"
    __table_args__ = (
        UniqueConstraint("profile_id", "generation_date", name="uq_recurring_generation"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("recurring_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    generation_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    total: Mapped[Decimal] = mapped_column(_money(), default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    profile: Mapped["RecurringProfile"] = relationship("RecurringProfile", back_populates="generation_logs")


class InvoiceNumberSequence(Base):
    """
    Invoice number sequence management.
    Maintains series-wise number sequences per financial year.
    """
    __tablename__ = "invoice_number_sequences"
    __table_args__ = (
        UniqueConstraint("series_code", "financial_year", name="uq_invoice_sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    series_code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Invoice series code e.g., INV"
    )
    financial_year: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="e.g., 2024-25"
    )
    prefix: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="e.g., INV/2024-25/"
    )
    current_number: Mapped[int] = mapped_column(Integer, default=0)
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=5,
        comment="Zero padding for number"
    )

    def get_next_number(self) -> str:
        """Generate next invoice number."""
        self.current_number = (self.current_number or 0) + 1
        number = str(self.current_number).zfill(self.padding_length or 5)
        return f"{self.prefix}{number}"

    def __repr__(self) -> str:
        return f"<InvoiceNumberSequence(series='{self.series_code}', year='{self.financial_year}')>"
