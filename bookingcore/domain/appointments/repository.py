"""Appointment repository - Transactional store operations for appointments and their audit trail

Methods only add/flush; committing is the caller's job so that conflict checks
and writes share one transaction (see database.transaction).
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...database import apply_lock_timeout
from ...models import (
    STATUS_CANCELLED,
    Appointment,
    AppointmentEvent,
    Provider,
    Tenant,
)


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_tenant(db: Session, tenant_id: int) -> Optional[Tenant]:
        return db.query(Tenant).filter(Tenant.id == tenant_id).first()

    @staticmethod
    def get_provider(db: Session, tenant_id: int, provider_id: int) -> Optional[Provider]:
        return (
            db.query(Provider)
            .filter(Provider.id == provider_id, Provider.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def lock_provider(db: Session, tenant_id: int, provider_id: int) -> Optional[Provider]:
        """
        Take the provider's calendar lock for the rest of the transaction.

        Every write that must not double-book goes through this first, so two
        requests for the same provider serialize on the provider row.
        """
        apply_lock_timeout(db)
        return (
            db.query(Provider)
            .filter(Provider.id == provider_id, Provider.tenant_id == tenant_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def get_appointment(
        db: Session, tenant_id: int, appointment_id: int, for_update: bool = False
    ) -> Optional[Appointment]:
        query = db.query(Appointment).filter(
            Appointment.id == appointment_id, Appointment.tenant_id == tenant_id
        )
        if for_update:
            apply_lock_timeout(db)
            query = query.with_for_update().populate_existing()
        return query.first()

    @staticmethod
    def find_overlapping(
        db: Session,
        tenant_id: int,
        provider_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Non-cancelled appointments of the provider overlapping [start, end)"""
        query = db.query(Appointment).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.provider_id == provider_id,
            Appointment.status != STATUS_CANCELLED,
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_time).all()

    @staticmethod
    def list_appointments(
        db: Session,
        tenant_id: int,
        provider_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> list[Appointment]:
        """Appointments starting in [start, end) with optional provider/status filters"""
        query = db.query(Appointment).filter(Appointment.tenant_id == tenant_id)

        if provider_id is not None:
            query = query.filter(Appointment.provider_id == provider_id)
        if start is not None:
            query = query.filter(Appointment.start_time >= start)
        if end is not None:
            query = query.filter(Appointment.start_time < end)
        if status:
            query = query.filter(Appointment.status == status)

        return query.order_by(Appointment.start_time).all()

    @staticmethod
    def find_by_idempotency_key(db: Session, tenant_id: int, key: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.tenant_id == tenant_id, Appointment.idempotency_key == key)
            .order_by(Appointment.start_time)
            .all()
        )

    @staticmethod
    def insert(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def insert_batch(db: Session, rows: list[dict[str, Any]]) -> list[Appointment]:
        """
        Insert a recurring series.

        The first row is the series anchor; every later row points at it via
        parent_appointment_id.
        """
        if not rows:
            return []

        anchor = Appointment(**rows[0])
        db.add(anchor)
        db.flush()

        created = [anchor]
        for row in rows[1:]:
            instance = Appointment(parent_appointment_id=anchor.id, **row)
            db.add(instance)
            created.append(instance)

        db.flush()
        return created

    @staticmethod
    def update_status(db: Session, appointment: Appointment, status: str) -> Appointment:
        appointment.status = status
        db.flush()
        return appointment

    @staticmethod
    def update_interval(
        db: Session, appointment: Appointment, start: datetime, end: datetime
    ) -> Appointment:
        appointment.start_time = start
        appointment.end_time = end
        db.flush()
        return appointment

    @staticmethod
    def record_event(
        db: Session,
        tenant_id: int,
        appointment_id: int,
        event_type: str,
        payload: Optional[dict] = None,
        occurred_at: Optional[datetime] = None,
    ) -> AppointmentEvent:
        event = AppointmentEvent(
            tenant_id=tenant_id,
            appointment_id=appointment_id,
            type=event_type,
            payload=payload or {},
        )
        if occurred_at is not None:
            event.occurred_at = occurred_at
        db.add(event)
        db.flush()
        return event

    @staticmethod
    def list_events(db: Session, tenant_id: int, appointment_id: int) -> list[AppointmentEvent]:
        return (
            db.query(AppointmentEvent)
            .filter(
                AppointmentEvent.tenant_id == tenant_id,
                AppointmentEvent.appointment_id == appointment_id,
            )
            .order_by(AppointmentEvent.id)
            .all()
        )
