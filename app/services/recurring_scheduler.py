"""Recurring invoice scheduling.

Occurrences are anchored on the profile start date: occurrence n is
start_date + n periods. Monthly and yearly steps clamp to the end of
shorter months (Jan 31 -> Feb 28/29 -> Mar 31) and Feb 29 to Feb 28 in
non-leap years, without drifting the day of month for later periods.

The first invoice is due one period after start_date.

Profile status:
    ACTIVE <-> PAUSED
    ACTIVE / PAUSED -> COMPLETED (terminal, is_active = False)
"""
import logging
import uuid
from datetime import date, datetime
from typing import Dict, FrozenSet, Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from app.config import settings
from app.core.exceptions import InvalidTransition, RecurringProfileError
from app.models.billing import InvoiceStatus, RecurrenceFrequency, RecurringProfileStatus
from app.schemas.billing import GeneratedInvoiceRef, RecurringProfile, TickResult
from app.services.invoice_lifecycle_service import build_invoice


logger = logging.getLogger(__name__)

# Invoice ids for recurring invoices are derived from (profile, generation date)
RECURRING_INVOICE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "urn:billing:recurring-invoice")

PROFILE_TRANSITIONS: Dict[RecurringProfileStatus, FrozenSet[RecurringProfileStatus]] = {
    RecurringProfileStatus.ACTIVE: frozenset({RecurringProfileStatus.PAUSED, RecurringProfileStatus.COMPLETED}),
    RecurringProfileStatus.PAUSED: frozenset({RecurringProfileStatus.ACTIVE, RecurringProfileStatus.COMPLETED}),
    RecurringProfileStatus.COMPLETED: frozenset(),
}


def today(tz: Optional[str] = None) -> date:
    """Current date in the scheduler timezone."""
    return datetime.now(ZoneInfo(tz or settings.SCHEDULER_TIMEZONE)).date()


def occurrence_date(start_date: date, frequency: RecurrenceFrequency, n: int) -> date:
    """Date of the n-th occurrence after start_date (n = 0 is start_date)."""
    frequency = RecurrenceFrequency(frequency)
    if frequency == RecurrenceFrequency.DAILY:
        return start_date + relativedelta(days=n)
    if frequency == RecurrenceFrequency.WEEKLY:
        return start_date + relativedelta(weeks=n)
    if frequency == RecurrenceFrequency.MONTHLY:
        return start_date + relativedelta(months=n)
    return start_date + relativedelta(years=n)


def _periods_between(start_date: date, later: date, frequency: RecurrenceFrequency) -> int:
    # Lower bound on the number of whole periods from start_date to later
    if frequency == RecurrenceFrequency.DAILY:
        return (later - start_date).days
    if frequency == RecurrenceFrequency.WEEKLY:
        return (later - start_date).days // 7
    if frequency == RecurrenceFrequency.MONTHLY:
        return (later.year - start_date.year) * 12 + later.month - start_date.month - 1
    return later.year - start_date.year - 1


def next_occurrence(
    start_date: date,
    frequency: RecurrenceFrequency,
    after: date,
    inclusive: bool = False,
) -> date:
    """
    First occurrence (n >= 1) strictly after ``after``, or on it when
    ``inclusive`` is set.
    """
    frequency = RecurrenceFrequency(frequency)
    n = max(1, _periods_between(start_date, after, frequency))
    candidate = occurrence_date(start_date, frequency, n)
    while candidate < after or (candidate == after and not inclusive):
        n += 1
        candidate = occurrence_date(start_date, frequency, n)
    return candidate


def compute_next_generation_date(profile: RecurringProfile) -> date:
    """
    Next generation date for a profile: the first occurrence after the last
    generated date, or after the start date when nothing was generated yet.
    """
    anchor = profile.last_generated_date or profile.start_date
    return next_occurrence(profile.start_date, profile.frequency, anchor)


def initialise_profile(profile: RecurringProfile) -> RecurringProfile:
    """Set the first generation date of a new (or rescheduled) profile."""
    return profile.model_copy(update={
        "next_generation_date": compute_next_generation_date(profile),
    })


SCHEDULE_FIELDS = ("frequency", "start_date", "end_date", "never_expires")


def reschedule_profile(profile: RecurringProfile, **changes) -> RecurringProfile:
    """
    Apply schedule changes (frequency, start_date, end_date, never_expires).

    The next generation date is recomputed from the new anchor when the
    frequency or start date changes. Dates already generated are kept.
    """
    unknown = set(changes) - set(SCHEDULE_FIELDS)
    if unknown:
        raise RecurringProfileError(
            f"Cannot reschedule fields: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )
    if profile.status == RecurringProfileStatus.COMPLETED:
        raise RecurringProfileError(
            "A completed recurring profile cannot be rescheduled",
            details={"profile_id": str(profile.id)},
        )

    # Re-validate the schedule as a whole
    updated = RecurringProfile(**{**dict(profile), **changes})
    if updated.frequency != profile.frequency or updated.start_date != profile.start_date:
        updated = initialise_profile(updated)
        logger.info(
            f"Recurring profile '{updated.profile_name}' rescheduled, "
            f"next invoice on {updated.next_generation_date}"
        )
    return updated


def _window_closed(profile: RecurringProfile, on: date) -> bool:
    return not profile.never_expires and profile.end_date is not None and on > profile.end_date


def should_generate(profile: RecurringProfile, as_of: date) -> bool:
    """True when the profile is active, due, and still within its end date."""
    if profile.status != RecurringProfileStatus.ACTIVE:
        return False
    next_date = profile.next_generation_date or compute_next_generation_date(profile)
    return as_of >= next_date and not _window_closed(profile, as_of)


def _complete(profile: RecurringProfile) -> RecurringProfile:
    logger.info(f"Recurring profile '{profile.profile_name}' ({profile.id}) completed")
    return profile.model_copy(update={
        "status": RecurringProfileStatus.COMPLETED,
        "is_active": False,
    })


def recurring_invoice_id(profile_id: uuid.UUID, generation_date: date) -> uuid.UUID:
    return uuid.uuid5(RECURRING_INVOICE_NAMESPACE, f"{profile_id}:{generation_date.isoformat()}")


def tick_scheduler(
    profile: RecurringProfile,
    as_of: date,
    initial_status: Optional[InvoiceStatus] = None,
    strict: Optional[bool] = None,
) -> TickResult:
    """
    Advance a recurring profile by at most one occurrence.

    When the profile is due, builds the invoice for ``next_generation_date``
    (DRAFT or SENT per RECURRING_INVOICE_INITIAL_STATUS), records it in
    ``generated_invoices`` and moves ``next_generation_date`` one period on.
    The profile completes once the next date falls after end_date.

    A tick that runs after end_date completes the profile without
    generating anything, so occurrences on or before end_date that were
    missed until then are dropped rather than caught up.

    A generation date already present in ``generated_invoices`` is never
    generated twice; the schedule is only advanced past it.
    """
    if profile.status != RecurringProfileStatus.ACTIVE:
        return TickResult(profile=profile)

    if profile.next_generation_date is None:
        profile = initialise_profile(profile)
    next_date = profile.next_generation_date

    if _window_closed(profile, next_date) or _window_closed(profile, as_of):
        return TickResult(profile=_complete(profile))

    if as_of < next_date:
        return TickResult(profile=profile)

    existing = next(
        (ref for ref in profile.generated_invoices if ref.generation_date == next_date),
        None,
    )

    new_invoice = None
    generated_invoices = list(profile.generated_invoices)
    total_generated = profile.total_generated

    if existing is None:
        new_invoice = build_invoice(
            profile,
            invoice_date=next_date,
            status=initial_status or settings.RECURRING_INVOICE_INITIAL_STATUS,
            invoice_id=recurring_invoice_id(profile.id, next_date),
            recurring_profile_id=profile.id,
            generation_date=next_date,
            strict=strict,
        )
        generated_invoices.append(
            GeneratedInvoiceRef(
                invoice_id=new_invoice.id,
                generation_date=next_date,
                total=new_invoice.totals.total,
            )
        )
        total_generated += 1
        logger.info(
            f"Generated invoice {new_invoice.id} for recurring profile "
            f"'{profile.profile_name}' dated {next_date} (total {new_invoice.totals.total})"
        )
    else:
        logger.info(
            f"Recurring profile {profile.id} already has invoice {existing.invoice_id} "
            f"for {next_date}, advancing schedule only"
        )

    following = next_occurrence(profile.start_date, profile.frequency, next_date)
    updated = profile.model_copy(update={
        "generated_invoices": generated_invoices,
        "total_generated": total_generated,
        "last_generated_date": next_date,
        "next_generation_date": following,
    })

    if _window_closed(updated, following):
        updated = _complete(updated)

    return TickResult(profile=updated, new_invoice=new_invoice)


def transition_profile_status(
    profile: RecurringProfile,
    requested: RecurringProfileStatus,
    as_of: Optional[date] = None,
    allow_unchecked: Optional[bool] = None,
) -> RecurringProfile:
    """
    Change the status of a recurring profile.

    Resuming a paused profile with ``as_of`` skips the periods missed while
    paused: the next generation date rolls forward to the first occurrence
    on or after ``as_of``.
    """
    current = RecurringProfileStatus(profile.status)
    requested = RecurringProfileStatus(requested)
    if allow_unchecked is None:
        allow_unchecked = settings.ALLOW_UNCHECKED_STATUS_TRANSITIONS

    if current == requested:
        return profile

    allowed = PROFILE_TRANSITIONS[current]
    if requested not in allowed:
        if not allow_unchecked:
            raise InvalidTransition(
                "recurring profile", current.value, requested.value, [s.value for s in allowed]
            )
        logger.warning(f"Unchecked recurring profile status change {current.value} -> {requested.value}")

    if requested == RecurringProfileStatus.COMPLETED:
        return _complete(profile)

    update = {"status": requested, "is_active": True}
    if requested == RecurringProfileStatus.ACTIVE and as_of is not None:
        next_date = profile.next_generation_date or compute_next_generation_date(profile)
        if next_date < as_of:
            update["next_generation_date"] = next_occurrence(
                profile.start_date, profile.frequency, as_of, inclusive=True
            )
    return profile.model_copy(update=update)
