from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidTransition, RecurringProfileError
from app.models.billing import InvoiceStatus, RecurrenceFrequency, RecurringProfileStatus
from app.schemas.billing import GeneratedInvoiceRef, LineItem, RecurringProfile
from app.services.billing_engine import (
    initialise_profile,
    reschedule_profile,
    should_generate,
    tick_scheduler,
    transition_profile_status,
)
from app.services.recurring_scheduler import next_occurrence, occurrence_date, recurring_invoice_id


def _profile(start=date(2024, 1, 31), frequency=RecurrenceFrequency.MONTHLY, end=date(2024, 12, 31), **overrides):
    fields = dict(
        profile_name="Monthly retainer",
        customer_name="Acme Traders",
        place_of_supply="Mumbai, Maharashtra",
        items=[LineItem(description="Retainer", quantity=1, unit_rate=1000, tax_rate_percent=18)],
        frequency=frequency,
        start_date=start,
        end_date=end,
        never_expires=end is None,
    )
    fields.update(overrides)
    return initialise_profile(RecurringProfile(**fields))


# --- Occurrence dates ---

def test_monthly_occurrences_clamp_without_drifting():
    start = date(2024, 1, 31)
    dates = [occurrence_date(start, RecurrenceFrequency.MONTHLY, n) for n in range(1, 5)]
    assert dates == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30), date(2024, 5, 31)]


def test_monthly_occurrence_in_non_leap_year():
    assert occurrence_date(date(2023, 1, 31), RecurrenceFrequency.MONTHLY, 1) == date(2023, 2, 28)


def test_yearly_occurrence_from_leap_day():
    start = date(2024, 2, 29)
    assert occurrence_date(start, RecurrenceFrequency.YEARLY, 1) == date(2025, 2, 28)
    assert occurrence_date(start, RecurrenceFrequency.YEARLY, 4) == date(2028, 2, 29)


@pytest.mark.parametrize("frequency,expected", [
    (RecurrenceFrequency.DAILY, date(2024, 1, 2)),
    (RecurrenceFrequency.WEEKLY, date(2024, 1, 8)),
    (RecurrenceFrequency.MONTHLY, date(2024, 2, 1)),
    (RecurrenceFrequency.YEARLY, date(2025, 1, 1)),
])
def test_first_occurrence_is_one_period_after_start(frequency, expected):
    assert occurrence_date(date(2024, 1, 1), frequency, 1) == expected


def test_next_occurrence_after_a_date():
    start = date(2024, 1, 31)
    assert next_occurrence(start, RecurrenceFrequency.MONTHLY, date(2024, 2, 29)) == date(2024, 3, 31)
    assert next_occurrence(start, RecurrenceFrequency.MONTHLY, date(2024, 2, 29), inclusive=True) == date(2024, 2, 29)
    assert next_occurrence(start, RecurrenceFrequency.MONTHLY, date(2024, 7, 4)) == date(2024, 7, 31)
    assert next_occurrence(start, RecurrenceFrequency.MONTHLY, start) == date(2024, 2, 29)


def test_new_profile_is_scheduled_one_period_after_start():
    assert _profile().next_generation_date == date(2024, 2, 29)
    assert _profile(frequency=RecurrenceFrequency.WEEKLY).next_generation_date == date(2024, 2, 7)


# --- Profile validation ---

def test_end_date_before_start_date_is_rejected():
    with pytest.raises(RecurringProfileError):
        _profile(start=date(2024, 6, 1), end=date(2024, 5, 1))


def test_end_date_is_required_unless_never_expires():
    with pytest.raises(RecurringProfileError):
        _profile(end=None, never_expires=False)


# --- should_generate ---

def test_should_generate():
    profile = _profile()
    assert not should_generate(profile, date(2024, 2, 28))
    assert should_generate(profile, date(2024, 2, 29))
    assert should_generate(profile, date(2024, 3, 15))
    assert not should_generate(profile, date(2025, 1, 1))


def test_paused_profile_is_never_due():
    profile = transition_profile_status(_profile(), RecurringProfileStatus.PAUSED)
    assert not should_generate(profile, date(2024, 6, 1))


# --- tick ---

def test_tick_before_next_date_does_nothing():
    profile = _profile()
    result = tick_scheduler(profile, date(2024, 2, 1))

    assert not result.generated
    assert result.profile == profile


def test_tick_generates_invoice_for_next_date():
    profile = _profile()
    result = tick_scheduler(profile, date(2024, 3, 1), initial_status=InvoiceStatus.SENT)

    invoice = result.new_invoice
    assert invoice is not None
    assert invoice.invoice_date == date(2024, 2, 29)
    assert invoice.generation_date == date(2024, 2, 29)
    assert invoice.recurring_profile_id == profile.id
    assert invoice.id == recurring_invoice_id(profile.id, date(2024, 2, 29))
    assert invoice.status == InvoiceStatus.SENT
    assert invoice.totals.igst == Decimal("180.00")
    assert invoice.totals.total == Decimal("1180.00")

    updated = result.profile
    assert updated.total_generated == 1
    assert updated.last_generated_date == date(2024, 2, 29)
    assert updated.next_generation_date == date(2024, 3, 31)
    assert [ref.generation_date for ref in updated.generated_invoices] == [date(2024, 2, 29)]
    assert updated.generated_invoices[0].total == Decimal("1180.00")
    # The input profile is left untouched
    assert profile.total_generated == 0


def test_recurring_invoices_start_as_draft_by_default():
    result = tick_scheduler(_profile(), date(2024, 3, 1))
    assert result.new_invoice.status == InvoiceStatus.DRAFT


def test_tick_generates_at_most_one_invoice():
    result = tick_scheduler(_profile(), date(2024, 6, 30))
    assert result.new_invoice.invoice_date == date(2024, 2, 29)
    assert result.profile.next_generation_date == date(2024, 3, 31)
    assert result.profile.total_generated == 1


def test_repeated_ticks_catch_up_one_period_at_a_time():
    profile = _profile()
    as_of = date(2024, 6, 30)
    generated = []
    while should_generate(profile, as_of):
        result = tick_scheduler(profile, as_of)
        generated.append(result.new_invoice.invoice_date)
        profile = result.profile

    assert generated == [
        date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30), date(2024, 5, 31), date(2024, 6, 30),
    ]
    assert profile.next_generation_date == date(2024, 7, 31)


def test_tick_is_deterministic():
    profile = _profile()
    first = tick_scheduler(profile, date(2024, 3, 1))
    second = tick_scheduler(profile, date(2024, 3, 1))
    assert first.new_invoice.id == second.new_invoice.id
    assert first.profile.next_generation_date == second.profile.next_generation_date


def test_already_generated_date_is_not_generated_again():
    profile = _profile()
    ref = GeneratedInvoiceRef(
        invoice_id=recurring_invoice_id(profile.id, date(2024, 2, 29)),
        generation_date=date(2024, 2, 29),
        total=Decimal("1180.00"),
    )
    profile = profile.model_copy(update={"generated_invoices": [ref], "total_generated": 1})

    result = tick_scheduler(profile, date(2024, 3, 1))

    assert not result.generated
    assert result.profile.next_generation_date == date(2024, 3, 31)
    assert result.profile.total_generated == 1
    assert len(result.profile.generated_invoices) == 1


def test_profile_completes_after_last_occurrence():
    profile = _profile(end=date(2024, 3, 15))
    result = tick_scheduler(profile, date(2024, 3, 1))

    assert result.generated
    assert result.profile.status == RecurringProfileStatus.COMPLETED
    assert not result.profile.is_active

    again = tick_scheduler(result.profile, date(2024, 4, 1))
    assert not again.generated


def test_profile_completes_once_end_date_has_passed():
    result = tick_scheduler(_profile(end=date(2024, 3, 15)), date(2024, 3, 20))
    assert not result.generated
    assert result.profile.status == RecurringProfileStatus.COMPLETED


def test_missed_final_occurrence_is_dropped_after_end_date():
    profile = _profile(end=date(2024, 3, 31))
    profile = tick_scheduler(profile, date(2024, 3, 1)).profile
    assert profile.next_generation_date == date(2024, 3, 31)

    result = tick_scheduler(profile, date(2024, 4, 2))

    assert not result.generated
    assert result.profile.status == RecurringProfileStatus.COMPLETED
    assert [ref.generation_date for ref in result.profile.generated_invoices] == [date(2024, 2, 29)]


def test_occurrence_on_end_date_is_generated():
    result = tick_scheduler(_profile(end=date(2024, 2, 29)), date(2024, 2, 29))
    assert result.generated
    assert result.profile.status == RecurringProfileStatus.COMPLETED


def test_never_expiring_profile_keeps_going():
    result = tick_scheduler(_profile(end=None, never_expires=True), date(2030, 1, 1))
    assert result.generated
    assert result.profile.status == RecurringProfileStatus.ACTIVE


def test_paused_profile_does_not_generate():
    paused = transition_profile_status(_profile(), RecurringProfileStatus.PAUSED)
    result = tick_scheduler(paused, date(2024, 6, 1))
    assert not result.generated
    assert result.profile == paused


# --- Profile status ---

def test_resume_skips_periods_missed_while_paused():
    profile = _profile(start=date(2024, 1, 1))
    paused = transition_profile_status(profile, RecurringProfileStatus.PAUSED)

    resumed = transition_profile_status(paused, RecurringProfileStatus.ACTIVE, as_of=date(2024, 5, 15))
    assert resumed.status == RecurringProfileStatus.ACTIVE
    assert resumed.next_generation_date == date(2024, 6, 1)

    on_occurrence = transition_profile_status(paused, RecurringProfileStatus.ACTIVE, as_of=date(2024, 5, 1))
    assert on_occurrence.next_generation_date == date(2024, 5, 1)


def test_resume_without_as_of_keeps_schedule():
    paused = transition_profile_status(_profile(), RecurringProfileStatus.PAUSED)
    resumed = transition_profile_status(paused, RecurringProfileStatus.ACTIVE)
    assert resumed.next_generation_date == date(2024, 2, 29)


def test_completing_a_profile_deactivates_it():
    completed = transition_profile_status(_profile(), RecurringProfileStatus.COMPLETED)
    assert completed.status == RecurringProfileStatus.COMPLETED
    assert not completed.is_active


def test_completed_profile_cannot_be_resumed():
    completed = transition_profile_status(_profile(), RecurringProfileStatus.COMPLETED)
    with pytest.raises(InvalidTransition) as exc_info:
        transition_profile_status(completed, RecurringProfileStatus.ACTIVE, allow_unchecked=False)
    assert exc_info.value.details["entity"] == "recurring profile"


# --- Rescheduling ---

def test_changing_frequency_recomputes_next_date():
    rescheduled = reschedule_profile(_profile(), frequency=RecurrenceFrequency.WEEKLY)
    assert rescheduled.frequency == RecurrenceFrequency.WEEKLY
    assert rescheduled.next_generation_date == date(2024, 2, 7)


def test_moving_start_date_after_generation():
    generated = tick_scheduler(_profile(), date(2024, 3, 1)).profile
    rescheduled = reschedule_profile(generated, start_date=date(2024, 3, 15))

    assert rescheduled.next_generation_date == date(2024, 4, 15)
    assert rescheduled.total_generated == 1
    assert rescheduled.last_generated_date == date(2024, 2, 29)


def test_changing_end_date_keeps_next_date():
    rescheduled = reschedule_profile(_profile(), end_date=date(2025, 6, 30))
    assert rescheduled.end_date == date(2025, 6, 30)
    assert rescheduled.next_generation_date == date(2024, 2, 29)


def test_reschedule_validates_dates():
    with pytest.raises(RecurringProfileError):
        reschedule_profile(_profile(), end_date=date(2023, 12, 31))


def test_reschedule_rejects_other_fields():
    with pytest.raises(RecurringProfileError):
        reschedule_profile(_profile(), customer_name="Someone else")


def test_completed_profile_cannot_be_rescheduled():
    completed = transition_profile_status(_profile(), RecurringProfileStatus.COMPLETED)
    with pytest.raises(RecurringProfileError):
        reschedule_profile(completed, frequency=RecurrenceFrequency.WEEKLY)
