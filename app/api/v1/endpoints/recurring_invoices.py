"""API endpoints for recurring invoice profiles."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, status, Query

from app.schemas.billing import (
    GeneratedInvoiceListResponse, GeneratedInvoiceResponse,
    RecurringProfile, RecurringProfileCreate, RecurringProfileScheduleUpdate, RecurringProfileStatusUpdate,
    TickRequest, TickResult,
)
from app.api.deps import RecurringInvoices

router = APIRouter()


@router.post("", response_model=RecurringProfile, status_code=status.HTTP_201_CREATED)
async def create_recurring_profile(profile_in: RecurringProfileCreate, service: RecurringInvoices):
    """Create a recurring invoice profile."""
    return await service.create_profile(profile_in)


@router.get("/{profile_id}", response_model=RecurringProfile)
async def get_recurring_profile(profile_id: UUID, service: RecurringInvoices):
    """Get recurring profile by ID, with its generated invoice references."""
    profile = await service.get_profile(profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Recurring profile not found")
    return profile


@router.patch("/{profile_id}/status", response_model=RecurringProfile)
async def update_recurring_profile_status(
    profile_id: UUID,
    update_in: RecurringProfileStatusUpdate,
    service: RecurringInvoices,
):
    """Pause, resume or complete a recurring profile."""
    profile = await service.update_status(profile_id, update_in.status, as_of=update_in.as_of)
    if not profile:
        raise HTTPException(status_code=404, detail="Recurring profile not found")
    return profile


@router.patch("/{profile_id}/schedule", response_model=RecurringProfile)
async def update_recurring_profile_schedule(
    profile_id: UUID,
    schedule_in: RecurringProfileScheduleUpdate,
    service: RecurringInvoices,
):
    """Change frequency, start or end date of a recurring profile."""
    profile = await service.update_schedule(profile_id, schedule_in)
    if not profile:
        raise HTTPException(status_code=404, detail="Recurring profile not found")
    return profile


@router.post("/{profile_id}/tick", response_model=TickResult)
async def tick_recurring_profile(
    profile_id: UUID,
    service: RecurringInvoices,
    tick_in: Optional[TickRequest] = None,
):
    """Run one scheduler step now; generates at most one invoice."""
    as_of = tick_in.as_of if tick_in else None
    result = await service.tick(profile_id, as_of)
    if not result:
        raise HTTPException(status_code=404, detail="Recurring profile not found")
    return result


@router.get("/{profile_id}/generated-invoices", response_model=GeneratedInvoiceListResponse)
async def list_generated_invoices(
    profile_id: UUID,
    service: RecurringInvoices,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    """List invoices generated by a profile, newest first."""
    if not await service.get_profile_row(profile_id):
        raise HTTPException(status_code=404, detail="Recurring profile not found")

    rows, total = await service.list_generated_invoices(profile_id, page=page, size=size)
    return GeneratedInvoiceListResponse(
        items=[GeneratedInvoiceResponse.model_validate(row) for row in rows],
        total=total,
        page=page,
        size=size,
        pages=(total + size - 1) // size if total else 1,
    )
