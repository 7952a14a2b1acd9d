"""Booking service - Transactional creation and mutation of appointments"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...database import transaction, with_db_retry
from ...errors import NotFoundError, ValidationError
from ...models import (
    EVENT_CANCELLED,
    EVENT_CREATED,
    EVENT_RESCHEDULED,
    EVENT_SERIES_CREATED,
    EVENT_STATUS_CHANGED,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_DONE,
    STATUS_PENDING,
    TERMINAL_STATUSES,
    Appointment,
    Provider,
)
from ...services.notification_service import Notifier, dispatch_notification, get_default_notifier
from ...shared.timeutils import Clock, to_local_naive
from ...shared.validators import parse_payload
from ..clients.repository import ClientRepository
from ..scheduling.conflicts import ensure_no_conflict
from ..scheduling.recurrence import build_series, expand_recurrence
from ..scheduling.schedule import Interval
from ..scheduling.schemas import TenantSettings
from ..scheduling.settings import load_tenant_settings, resolve_clock
from .repository import AppointmentRepository
from .schemas import AppointmentCreate, SeriesCreate

logger = logging.getLogger(__name__)

# Status workflow; Done and Cancelled are terminal
ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_CONFIRMED, STATUS_DONE, STATUS_CANCELLED},
    STATUS_CONFIRMED: {STATUS_DONE, STATUS_CANCELLED},
}


def interval_payload(start: datetime, end: datetime) -> dict[str, str]:
    return {"startTime": start.isoformat(), "endTime": end.isoformat()}


class BookingService:
    """Service layer for booking writes.

    Every write that could double-book runs the conflict check and the insert
    or update in one transaction, holding the provider's calendar lock.
    """

    def __init__(self, db: Session, notifier: Optional[Notifier] = None, clock: Optional[Clock] = None):
        self.db = db
        self.notifier = notifier if notifier is not None else get_default_notifier()
        self.clock = clock
        self.repo = AppointmentRepository()
        self.clients = ClientRepository()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_interval(
        self,
        settings: TenantSettings,
        start: datetime,
        end: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
    ) -> Interval:
        start = to_local_naive(start, settings.timeZone)
        if end is not None:
            end = to_local_naive(end, settings.timeZone)
        else:
            end = start + timedelta(minutes=duration_minutes or 0)
        return Interval(start, end)

    def _lock_bookable_provider(self, tenant_id: int, provider_id: int) -> Provider:
        provider = self.repo.lock_provider(self.db, tenant_id, provider_id)
        if not provider:
            raise NotFoundError(f"Provider {provider_id} not found")
        if not provider.is_active:
            raise ValidationError("This specialist is not accepting bookings")
        return provider

    def _now(self, settings: TenantSettings) -> datetime:
        return resolve_clock(settings, self.clock)()

    def _notify(self, tenant_id: int, appointment_id: int, event_type: str, payload: dict[str, Any]) -> None:
        dispatch_notification(self.notifier, tenant_id, appointment_id, event_type, payload)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_appointment(self, tenant_id: int, appointment_id: int) -> Appointment:
        appointment = with_db_retry(
            lambda: self.repo.get_appointment(self.db, tenant_id, appointment_id), db=self.db
        )
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    def list_appointments(
        self,
        tenant_id: int,
        provider_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[str] = None,
    ) -> list[Appointment]:
        """Appointments starting within [date_from, date_to], both inclusive"""
        start = datetime.combine(date_from, time.min) if date_from else None
        end = datetime.combine(date_to + timedelta(days=1), time.min) if date_to else None
        return with_db_retry(
            lambda: self.repo.list_appointments(self.db, tenant_id, provider_id, start, end, status),
            db=self.db,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_single(self, tenant_id: int, payload) -> Appointment:
        """
        Book one appointment.

        Raises:
            ValidationError: Malformed request or inverted interval
            NotFoundError: Unknown tenant or provider
            ConflictError: The interval overlaps a non-cancelled appointment
            StoreError: The calendar lock could not be taken in time
        """
        data = parse_payload(AppointmentCreate, payload)

        with transaction(self.db):
            settings = load_tenant_settings(self.db, tenant_id)
            interval = self._resolve_interval(settings, data.startTime, data.endTime, data.durationMinutes)
            logger.info(
                f"📥 Booking provider {data.providerId} at {interval.start.isoformat()} for tenant {tenant_id}"
            )

            self._lock_bookable_provider(tenant_id, data.providerId)
            client_id = self.clients.upsert_client(
                self.db, tenant_id, data.clientName, data.clientPhone, data.clientEmail
            )
            ensure_no_conflict(self.db, tenant_id, data.providerId, interval.start, interval.end)

            appointment = self.repo.insert(
                self.db,
                tenant_id=tenant_id,
                provider_id=data.providerId,
                client_id=client_id,
                client_name=data.clientName,
                client_phone=data.clientPhone,
                client_email=data.clientEmail,
                start_time=interval.start,
                end_time=interval.end,
                status=STATUS_PENDING,
                services=data.services,
                custom_service_name=data.customServiceName,
                custom_price=data.customPrice,
                notes=data.notes,
            )
            event_payload = {"providerId": data.providerId, **interval_payload(interval.start, interval.end)}
            self.repo.record_event(
                self.db, tenant_id, appointment.id, EVENT_CREATED, event_payload, self._now(settings)
            )

        logger.info(f"✅ Appointment {appointment.id} created")
        self._notify(tenant_id, appointment.id, EVENT_CREATED, event_payload)
        return appointment

    def create_recurring_series(self, tenant_id: int, payload) -> list[Appointment]:
        """
        Book every occurrence of a recurring series, or none of them.

        Candidates are checked in generation order; the first one that overlaps
        an existing appointment aborts the whole batch. A request carrying an
        idempotencyKey that was already committed returns the stored series.

        Raises:
            ValidationError: Malformed request, empty expansion, too many occurrences
                or an idempotencyKey reused for a different series
            NotFoundError: Unknown tenant or provider
            ConflictError: Names the first conflicting occurrence
        """
        data = parse_payload(SeriesCreate, payload)

        with transaction(self.db):
            settings = load_tenant_settings(self.db, tenant_id)
            first = self._resolve_interval(settings, data.startTime, data.endTime, data.durationMinutes)

            dates = expand_recurrence(first.start.date(), data.recurrenceEndDate, data.recurrencePattern)
            if not dates:
                raise ValidationError("Recurrence pattern produced no appointments in the selected range")
            intervals = build_series(first.start, first.end, dates)
            for previous, current in zip(intervals, intervals[1:]):
                if current.start < previous.end:
                    raise ValidationError("Occurrences of the series overlap each other")

            self._lock_bookable_provider(tenant_id, data.providerId)

            if data.idempotencyKey:
                existing = self.repo.find_by_idempotency_key(self.db, tenant_id, data.idempotencyKey)
                if existing:
                    anchor = existing[0]
                    if (
                        anchor.provider_id != data.providerId
                        or anchor.recurrence_pattern != data.recurrencePattern.to_json()
                        or anchor.recurrence_end_date != data.recurrenceEndDate
                    ):
                        raise ValidationError(
                            f"Idempotency key {data.idempotencyKey} was already used for a different series"
                        )
                    logger.info(f"♻️ Series with key {data.idempotencyKey} already exists, returning it")
                    return existing

            client_id = self.clients.upsert_client(
                self.db, tenant_id, data.clientName, data.clientPhone, data.clientEmail
            )
            for interval in intervals:
                ensure_no_conflict(
                    self.db,
                    tenant_id,
                    data.providerId,
                    interval.start,
                    interval.end,
                    message=f"Time slot on {interval.start.date().isoformat()} is already booked",
                )

            common = {
                "tenant_id": tenant_id,
                "provider_id": data.providerId,
                "client_id": client_id,
                "client_name": data.clientName,
                "client_phone": data.clientPhone,
                "client_email": data.clientEmail,
                "status": STATUS_PENDING,
                "services": data.services,
                "custom_service_name": data.customServiceName,
                "custom_price": data.customPrice,
                "notes": data.notes,
                "is_recurring": True,
                "recurrence_pattern": data.recurrencePattern.to_json(),
                "recurrence_end_date": data.recurrenceEndDate,
                "idempotency_key": data.idempotencyKey,
            }
            created = self.repo.insert_batch(
                self.db,
                [{**common, "start_time": i.start, "end_time": i.end} for i in intervals],
            )
            anchor = created[0]
            event_payload = {
                "providerId": data.providerId,
                "count": len(created),
                "appointmentIds": [a.id for a in created],
                "dates": [d.isoformat() for d in dates],
            }
            self.repo.record_event(
                self.db, tenant_id, anchor.id, EVENT_SERIES_CREATED, event_payload, self._now(settings)
            )

        logger.info(f"✅ Recurring series of {len(created)} appointments created, anchor {anchor.id}")
        self._notify(tenant_id, anchor.id, EVENT_SERIES_CREATED, event_payload)
        return created

    def apply_status_transition(self, tenant_id: int, appointment_id: int, new_status: str) -> Appointment:
        """
        Move an appointment along the status workflow.

        Raises:
            NotFoundError: Unknown appointment
            ValidationError: Transition not allowed (including anything out of Done/Cancelled)
        """
        with transaction(self.db):
            settings = load_tenant_settings(self.db, tenant_id)
            appointment = self.repo.get_appointment(self.db, tenant_id, appointment_id, for_update=True)
            if not appointment:
                raise NotFoundError(f"Appointment {appointment_id} not found")

            old_status = appointment.status
            if new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
                raise ValidationError(f"Cannot change status from {old_status} to {new_status}")

            self.repo.update_status(self.db, appointment, new_status)
            event_type = EVENT_CANCELLED if new_status == STATUS_CANCELLED else EVENT_STATUS_CHANGED
            event_payload = {"from": old_status, "to": new_status}
            self.repo.record_event(
                self.db, tenant_id, appointment.id, event_type, event_payload, self._now(settings)
            )

        logger.info(f"✅ Appointment {appointment_id} status {old_status} → {new_status}")
        self._notify(tenant_id, appointment_id, event_type, event_payload)
        return appointment

    def reschedule(
        self,
        tenant_id: int,
        appointment_id: int,
        new_start: datetime,
        new_end: Optional[datetime] = None,
    ) -> Appointment:
        """
        Move an appointment to a new interval, keeping its duration when new_end is omitted.

        Raises:
            NotFoundError: Unknown appointment
            ValidationError: Appointment is Done/Cancelled or the interval is inverted
            ConflictError: The new interval overlaps another appointment
        """
        with transaction(self.db):
            settings = load_tenant_settings(self.db, tenant_id)
            current = self.repo.get_appointment(self.db, tenant_id, appointment_id)
            if not current:
                raise NotFoundError(f"Appointment {appointment_id} not found")

            # Provider lock first, then the row; same order as every other writer
            self.repo.lock_provider(self.db, tenant_id, current.provider_id)
            appointment = self.repo.get_appointment(self.db, tenant_id, appointment_id, for_update=True)
            if appointment.status in TERMINAL_STATUSES:
                raise ValidationError(f"Cannot reschedule an appointment with status {appointment.status}")

            if new_end is None:
                start = to_local_naive(new_start, settings.timeZone)
                interval = Interval(start, start + (appointment.end_time - appointment.start_time))
            else:
                interval = self._resolve_interval(settings, new_start, new_end)

            ensure_no_conflict(
                self.db,
                tenant_id,
                appointment.provider_id,
                interval.start,
                interval.end,
                exclude_appointment_id=appointment.id,
            )

            event_payload = {
                "from": interval_payload(appointment.start_time, appointment.end_time),
                "to": interval_payload(interval.start, interval.end),
            }
            self.repo.update_interval(self.db, appointment, interval.start, interval.end)
            self.repo.record_event(
                self.db, tenant_id, appointment.id, EVENT_RESCHEDULED, event_payload, self._now(settings)
            )

        logger.info(f"✅ Appointment {appointment_id} moved to {interval.start.isoformat()}")
        self._notify(tenant_id, appointment_id, EVENT_RESCHEDULED, event_payload)
        return appointment
