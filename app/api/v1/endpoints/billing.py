"""API endpoints for Billing (GST totals, amount in words, invoices)."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, status, Query

from app.schemas.billing import (
    AmountInWordsRequest, AmountInWordsResponse,
    ComputeTotalsRequest, InvoiceComputation,
    Invoice, InvoiceCreate, InvoiceStatusUpdate,
    JurisdictionResponse, PaymentCreate,
)
from app.api.deps import Invoices
from app.services.billing_engine import amount_to_words, compute_totals
from app.services.gst_jurisdiction_service import match_state_code, resolve_state_code, state_name

router = APIRouter()


# ==================== Computation ====================

@router.post("/compute-totals", response_model=InvoiceComputation)
async def compute_invoice_totals(request: ComputeTotalsRequest):
    """Compute subtotal, discount, GST split, TDS/TCS and total. Nothing is stored."""
    return compute_totals(
        request.line_items,
        discount=request.discount,
        additional_tax=request.additional_tax,
        adjustment=request.adjustment,
        seller_state_code=request.seller_state_code,
        place_of_supply=request.place_of_supply,
        buyer_address=request.buyer_address,
        customer_address=request.customer_address,
    )


@router.post("/amount-in-words", response_model=AmountInWordsResponse)
async def convert_amount_to_words(request: AmountInWordsRequest):
    """Spell an amount in Indian numbering (lakh/crore) with paise."""
    return AmountInWordsResponse(amount=request.amount, words=amount_to_words(request.amount))


@router.get("/jurisdiction", response_model=JurisdictionResponse)
async def resolve_jurisdiction(address: Optional[str] = Query(None, max_length=1000)):
    """Resolve a free-text address to its GST state code."""
    code = resolve_state_code(address)
    return JurisdictionResponse(
        address=address,
        state_code=code,
        state_name=state_name(code),
        matched=match_state_code(address) is not None,
    )


# ==================== Invoices ====================

@router.post("/invoices", response_model=Invoice, status_code=status.HTTP_201_CREATED)
async def create_invoice(invoice_in: InvoiceCreate, service: Invoices):
    """Create a new tax invoice (DRAFT or SENT)."""
    return await service.create_invoice(invoice_in)


@router.get("/invoices/{invoice_id}", response_model=Invoice)
async def get_invoice(invoice_id: UUID, service: Invoices):
    """Get invoice by ID."""
    invoice = await service.get_invoice(invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


@router.patch("/invoices/{invoice_id}/status", response_model=Invoice)
async def update_invoice_status(invoice_id: UUID, update_in: InvoiceStatusUpdate, service: Invoices):
    """Change invoice status. Disallowed moves return 409."""
    invoice = await service.update_status(invoice_id, update_in.status)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


@router.post("/invoices/{invoice_id}/payments", response_model=Invoice)
async def record_payment(invoice_id: UUID, payment_in: PaymentCreate, service: Invoices):
    """Record a payment; the invoice moves to PARTIALLY_PAID or PAID."""
    invoice = await service.record_payment(invoice_id, payment_in.amount)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice
