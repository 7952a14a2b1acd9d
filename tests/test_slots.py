from datetime import date, datetime, time

import pytest

from bookingcore.domain.scheduling.schedule import Interval, ProviderSchedule, parse_working_hours
from bookingcore.domain.scheduling.schemas import BookingSlotsSettings, SlotConfig, SlotQuery
from bookingcore.domain.scheduling.slots import booking_horizon, iter_slots
from bookingcore.errors import NotFoundError, ValidationError
from bookingcore.models import STATUS_CANCELLED

from .conftest import NOW

TUESDAY = date(2026, 3, 3)
SATURDAY = date(2026, 3, 7)


def at(hour, minute=0, day=TUESDAY):
    return datetime.combine(day, time(hour, minute))


def config(**overrides):
    values = {
        "step_minutes": 15,
        "buffer_minutes": 0,
        "min_advance_minutes": 0,
        "max_days_ahead": 60,
        "service_duration_minutes": 30,
    }
    values.update(overrides)
    return SlotConfig(**values)


def morning_schedule():
    return ProviderSchedule(
        working_hours=parse_working_hours({"tuesday": {"enabled": True, "start": "09:00", "end": "11:00"}})
    )


# ---------------------------------------------------------------------------
# Pure generator
# ---------------------------------------------------------------------------


def test_buffer_pushes_next_slot():
    busy = [Interval(at(9), at(9, 30))]

    slots = list(iter_slots(morning_schedule(), busy, [TUESDAY], config(buffer_minutes=10), NOW))

    assert slots[0] == at(9, 45)
    assert at(9, 30) not in slots


def test_slot_must_fit_in_window():
    slots = list(
        iter_slots(morning_schedule(), [], [TUESDAY], config(step_minutes=30, service_duration_minutes=60), NOW)
    )

    assert slots == [at(9), at(9, 30), at(10)]


def test_last_slot_before_midnight_is_offered():
    schedule = ProviderSchedule(
        working_hours=parse_working_hours({"tuesday": {"enabled": True, "start": "22:00", "end": "24:00"}})
    )

    slots = list(iter_slots(schedule, [], [TUESDAY], config(step_minutes=30), NOW))

    assert slots == [at(22), at(22, 30), at(23), at(23, 30)]


def test_min_advance_drops_near_slots():
    slots = list(iter_slots(morning_schedule(), [], [TUESDAY], config(min_advance_minutes=60), at(9, 10)))

    assert slots[0] == at(10, 15)


def test_blocked_period_removes_overlapping_slots():
    schedule = ProviderSchedule(
        working_hours=morning_schedule().working_hours,
        blocked_periods=(Interval(at(10), at(10, 30)),),
    )

    slots = list(iter_slots(schedule, [], [TUESDAY], config(step_minutes=30), NOW))

    assert slots == [at(9), at(9, 30), at(10, 30)]


def test_inactive_schedule_yields_nothing():
    schedule = ProviderSchedule(working_hours=None, is_active=False)

    assert list(iter_slots(schedule, [], [TUESDAY], config(), NOW)) == []


def test_booking_horizon():
    today = date(2026, 3, 2)

    assert booking_horizon(date(2026, 3, 1), date(2026, 3, 10), today, 3) == (today, date(2026, 3, 5))
    assert booking_horizon(date(2026, 4, 1), date(2026, 4, 2), today, 3) is None


def test_slot_step_is_restricted():
    with pytest.raises(ValidationError):
        SlotConfig.from_settings(BookingSlotsSettings(), step_minutes=20)


# ---------------------------------------------------------------------------
# SlotService against the store
# ---------------------------------------------------------------------------


def test_service_applies_buffer_from_persisted_appointments(slot_service, tenant, provider, make_appointment):
    make_appointment(provider, at(9), minutes=30)

    slots = slot_service.generate_slots(
        tenant.id, provider.id, TUESDAY, TUESDAY, config(buffer_minutes=10)
    )

    assert slots[0] == at(9, 45)
    assert slots == sorted(slots)
    assert slots[-1] == at(17, 30)


def test_cancelled_appointments_do_not_block(slot_service, tenant, provider, make_appointment):
    make_appointment(provider, at(9), minutes=30, status=STATUS_CANCELLED)

    slots = slot_service.generate_slots(tenant.id, provider.id, TUESDAY, TUESDAY, config())

    assert slots[0] == at(9)


def test_weekend_is_skipped(slot_service, tenant, provider):
    assert slot_service.generate_slots(tenant.id, provider.id, SATURDAY, SATURDAY, config()) == []


def test_tenant_settings_are_the_defaults(slot_service, make_tenant, make_provider):
    tenant = make_tenant(settings={"bookingSlots": {"slotStepMinutes": 60, "minAdvanceBookingMinutes": 0}})
    provider = make_provider(tenant)

    slots = slot_service.generate_slots(tenant.id, provider.id, TUESDAY)

    assert slots == [at(h) for h in range(9, 18)]


def test_lead_time_applies_today(slot_service, tenant, provider):
    # NOW is Monday 08:00 and the default lead time is 60 minutes
    slots = slot_service.generate_slots(tenant.id, provider.id, NOW.date(), NOW.date(), config(min_advance_minutes=120))

    assert slots[0] == at(10, day=NOW.date())


def test_past_dates_and_horizon_are_clamped(slot_service, tenant, provider):
    slots = slot_service.generate_slots(
        tenant.id, provider.id, date(2026, 2, 1), date(2026, 3, 31), config(step_minutes=60, max_days_ahead=1)
    )

    assert {s.date() for s in slots} == {NOW.date(), TUESDAY}


def test_inactive_provider_has_no_slots(slot_service, tenant, make_provider):
    provider = make_provider(tenant, is_active=False)

    assert slot_service.generate_slots(tenant.id, provider.id, TUESDAY, TUESDAY, config()) == []


def test_provider_of_another_tenant_is_not_found(slot_service, make_tenant, provider):
    other = make_tenant(name="Other")

    with pytest.raises(NotFoundError):
        slot_service.generate_slots(other.id, provider.id, TUESDAY)


def test_inverted_range_is_rejected(slot_service, tenant, provider):
    with pytest.raises(ValidationError):
        slot_service.generate_slots(tenant.id, provider.id, TUESDAY, NOW.date())


def test_get_slots_merges_query_overrides(slot_service, make_tenant, make_provider):
    tenant = make_tenant(settings={"bookingSlots": {"slotStepMinutes": 60, "minAdvanceBookingMinutes": 0}})
    provider = make_provider(tenant)

    response = slot_service.get_slots(
        tenant.id, provider.id, SlotQuery(dateFrom=TUESDAY, durationMinutes=90, stepMinutes=30)
    )

    assert response.dateTo == TUESDAY
    assert response.durationMinutes == 90
    assert response.availableSlots[0] == at(9)
    assert response.availableSlots[1] == at(9, 30)
    assert response.availableSlots[-1] == at(16, 30)
