from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.invoice_service import InvoiceService
from app.services.recurring_invoice_service import RecurringInvoiceService


# Type aliases for dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]


def get_invoice_service(db: DB) -> InvoiceService:
    return InvoiceService(db)


def get_recurring_invoice_service(db: DB) -> RecurringInvoiceService:
    return RecurringInvoiceService(db)


Invoices = Annotated[InvoiceService, Depends(get_invoice_service)]
RecurringInvoices = Annotated[RecurringInvoiceService, Depends(get_recurring_invoice_service)]
