"""
Slot generator.

Bookable start times are recomputed from persisted state on every call; there
is no slot table to keep in sync.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, Optional

from sqlalchemy.orm import Session

from ...database import with_db_retry
from ...errors import NotFoundError, ValidationError
from ...models import Appointment
from ...shared.timeutils import Clock
from ..appointments.repository import AppointmentRepository
from .schedule import Interval, ProviderSchedule, overlaps_blocked, working_window
from .schemas import SlotConfig, SlotQuery, SlotResponse
from .settings import load_tenant_settings, resolve_clock

logger = logging.getLogger(__name__)


def iter_days(first: date, last: date) -> Iterator[date]:
    day = first
    while day <= last:
        yield day
        day += timedelta(days=1)


def iter_slots(
    schedule: ProviderSchedule,
    busy: Iterable[Interval],
    days: Iterable[date],
    config: SlotConfig,
    now: datetime,
) -> Iterator[datetime]:
    """
    Yield free start times in ascending order.

    busy holds the raw intervals of non-cancelled appointments; each one is
    widened by the buffer on its end before the overlap test.
    """
    if not schedule.is_active:
        return

    occupied = [interval.shifted_end(config.buffer_minutes) for interval in busy]
    earliest = now + timedelta(minutes=config.min_advance_minutes)
    duration = timedelta(minutes=config.service_duration_minutes)
    step = timedelta(minutes=config.step_minutes)

    for day in days:
        window = working_window(schedule, day)
        if window is None:
            continue

        candidate = window.start
        while candidate + duration <= window.end:
            end = candidate + duration
            if (
                candidate >= earliest
                and not any(o.overlaps(candidate, end) for o in occupied)
                and not overlaps_blocked(schedule, candidate, end)
            ):
                yield candidate
            candidate += step


def booking_horizon(date_from: date, date_to: date, today: date, max_days_ahead: int) -> Optional[tuple[date, date]]:
    """Clamp the requested range to [today, today + max_days_ahead]; None when nothing is left"""
    first = max(date_from, today)
    last = min(date_to, today + timedelta(days=max_days_ahead))
    if first > last:
        return None
    return first, last


class SlotService:
    """Read-only availability queries for one request"""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock
        self.repo = AppointmentRepository()

    def generate_slots(
        self,
        tenant_id: int,
        provider_id: int,
        date_from: date,
        date_to: Optional[date] = None,
        config: Optional[SlotConfig] = None,
    ) -> list[datetime]:
        date_to = date_to or date_from
        if date_to < date_from:
            raise ValidationError("dateTo must not be before dateFrom")

        return with_db_retry(
            lambda: self._generate(tenant_id, provider_id, date_from, date_to, config),
            db=self.db,
        )

    def _generate(
        self,
        tenant_id: int,
        provider_id: int,
        date_from: date,
        date_to: date,
        config: Optional[SlotConfig],
    ) -> list[datetime]:
        settings = load_tenant_settings(self.db, tenant_id)
        provider = self.repo.get_provider(self.db, tenant_id, provider_id)
        if not provider:
            raise NotFoundError(f"Provider {provider_id} not found")

        config = config or SlotConfig.from_settings(settings.bookingSlots)
        schedule = ProviderSchedule.from_provider(provider, settings.timeZone)
        if not schedule.is_active:
            logger.info(f"ℹ️ Provider {provider_id} is inactive, no slots")
            return []

        now = resolve_clock(settings, self.clock)()
        horizon = booking_horizon(date_from, date_to, now.date(), config.max_days_ahead)
        if horizon is None:
            return []
        first, last = horizon

        range_start = datetime.combine(first, time.min) - timedelta(minutes=config.buffer_minutes)
        range_end = datetime.combine(last + timedelta(days=1), time.min)
        appointments = self.repo.find_overlapping(self.db, tenant_id, provider_id, range_start, range_end)
        busy = [_as_interval(a) for a in appointments if a.end_time > a.start_time]

        slots = list(iter_slots(schedule, busy, iter_days(first, last), config, now))
        logger.info(f"📅 {len(slots)} slots for provider {provider_id} between {first} and {last}")
        return slots

    def get_slots(self, tenant_id: int, provider_id: int, query: SlotQuery) -> SlotResponse:
        """Answer an availability query, filling unset parameters from tenant settings"""
        settings = with_db_retry(lambda: load_tenant_settings(self.db, tenant_id), db=self.db)
        config = SlotConfig.from_settings(
            settings.bookingSlots,
            step_minutes=query.stepMinutes,
            buffer_minutes=query.bufferMinutes,
            min_advance_minutes=query.minAdvanceMinutes,
            max_days_ahead=query.maxDaysAhead,
            service_duration_minutes=query.durationMinutes,
        )
        date_to = query.dateTo or query.dateFrom
        slots = self.generate_slots(tenant_id, provider_id, query.dateFrom, date_to, config)
        return SlotResponse(
            providerId=provider_id,
            dateFrom=query.dateFrom,
            dateTo=date_to,
            durationMinutes=config.service_duration_minutes,
            availableSlots=slots,
        )


def _as_interval(appointment: Appointment) -> Interval:
    return Interval(appointment.start_time, appointment.end_time)
