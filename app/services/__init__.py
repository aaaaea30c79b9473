# Services module
from app.services.invoice_service import InvoiceService
from app.services.recurring_invoice_service import RecurringInvoiceService

__all__ = [
    "InvoiceService",
    "RecurringInvoiceService",
]
