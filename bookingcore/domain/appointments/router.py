"""Appointment router - FastAPI endpoints for booking operations"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.notification_service import Notifier, get_default_notifier
from ...shared.timeutils import Clock, get_request_clock
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    RescheduleRequest,
    SeriesCreate,
    StatusUpdate,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/appointments", tags=["Appointments"])


def get_booking_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_default_notifier),
    clock: Optional[Clock] = Depends(get_request_clock),
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, notifier=notifier, clock=clock)


@router.get("", response_model=list[AppointmentResponse])
def list_appointments(
    tenant_id: int,
    providerId: Optional[int] = None,
    dateFrom: Optional[date] = None,
    dateTo: Optional[date] = None,
    status: Optional[str] = None,
    service: BookingService = Depends(get_booking_service),
):
    appointments = service.list_appointments(tenant_id, providerId, dateFrom, dateTo, status)
    return [AppointmentResponse.from_model(a) for a in appointments]


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    tenant_id: int,
    appointment_id: int,
    service: BookingService = Depends(get_booking_service),
):
    return AppointmentResponse.from_model(service.get_appointment(tenant_id, appointment_id))


@router.post("", response_model=AppointmentResponse, status_code=201)
def create_appointment(
    tenant_id: int,
    data: AppointmentCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Book a single appointment; 409 when the slot was taken meanwhile"""
    return AppointmentResponse.from_model(service.create_single(tenant_id, data))


@router.post("/series", response_model=list[AppointmentResponse], status_code=201)
def create_appointment_series(
    tenant_id: int,
    data: SeriesCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Book a whole recurring series atomically"""
    appointments = service.create_recurring_series(tenant_id, data)
    return [AppointmentResponse.from_model(a) for a in appointments]


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
def update_appointment_status(
    tenant_id: int,
    appointment_id: int,
    data: StatusUpdate,
    service: BookingService = Depends(get_booking_service),
):
    return AppointmentResponse.from_model(
        service.apply_status_transition(tenant_id, appointment_id, data.status)
    )


@router.patch("/{appointment_id}/reschedule", response_model=AppointmentResponse)
def reschedule_appointment(
    tenant_id: int,
    appointment_id: int,
    data: RescheduleRequest,
    service: BookingService = Depends(get_booking_service),
):
    return AppointmentResponse.from_model(
        service.reschedule(tenant_id, appointment_id, data.startTime, data.endTime)
    )
