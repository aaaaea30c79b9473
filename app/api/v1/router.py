from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Invoices, totals, amount in words
    billing,
    # Recurring invoice profiles
    recurring_invoices,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Billing ====================
api_router.include_router(
    billing.router,
    prefix="/billing",
    tags=["Billing"]
)

# ==================== Recurring Invoices ====================
api_router.include_router(
    recurring_invoices.router,
    prefix="/recurring-invoices",
    tags=["Recurring Invoices"]
)
