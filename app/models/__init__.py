from app.models.billing import (
    InvoiceStatus,
    SupplyType,
    DiscountMode,
    AdditionalTaxKind,
    RecurrenceFrequency,
    RecurringProfileStatus,
    GenerationTrigger,
    TaxInvoice,
    InvoiceItem,
    RecurringProfile,
    RecurringProfileItem,
    RecurringGenerationLog,
    InvoiceNumberSequence,
)

__all__ = [
    "InvoiceStatus",
    "SupplyType",
    "DiscountMode",
    "AdditionalTaxKind",
    "RecurrenceFrequency",
    "RecurringProfileStatus",
    "GenerationTrigger",
    "TaxInvoice",
    "InvoiceItem",
    "RecurringProfile",
    "RecurringProfileItem",
    "RecurringGenerationLog",
    "InvoiceNumberSequence",
]
