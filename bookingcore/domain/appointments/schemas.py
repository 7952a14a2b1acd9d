"""Appointment domain schemas - Pydantic models for booking requests and responses"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...models import APPOINTMENT_STATUSES
from ...shared.validators import normalize_phone, validate_email
from ..scheduling.schemas import RecurrencePattern

AppointmentStatus = Literal["Pending", "Confirmed", "Done", "Cancelled"]


class AppointmentCreate(BaseModel):
    """Schema for booking a single appointment

    Either endTime or durationMinutes must be given.
    """

    providerId: int
    startTime: datetime
    endTime: Optional[datetime] = None
    durationMinutes: Optional[int] = Field(None, ge=5, le=24 * 60)
    clientName: str = Field(..., min_length=1, max_length=255)
    clientPhone: str
    clientEmail: Optional[str] = None
    services: list[int] = Field(default_factory=list)
    customServiceName: Optional[str] = Field(None, max_length=255)
    customPrice: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("clientName")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Client name is required")
        return v

    @field_validator("clientPhone")
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v)

    @field_validator("clientEmail")
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)

    @model_validator(mode="after")
    def require_end_or_duration(self):
        if self.endTime is None and self.durationMinutes is None:
            raise ValueError("Either endTime or durationMinutes is required")
        return self


class SeriesCreate(AppointmentCreate):
    """Schema for booking a recurring series; startTime/endTime describe the first occurrence"""

    recurrencePattern: RecurrencePattern
    recurrenceEndDate: date
    idempotencyKey: Optional[str] = Field(None, min_length=1, max_length=64)


class StatusUpdate(BaseModel):
    status: AppointmentStatus

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if v not in APPOINTMENT_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(APPOINTMENT_STATUSES)}")
        return v


class RescheduleRequest(BaseModel):
    """New interval; endTime defaults to the appointment's current duration"""

    startTime: datetime
    endTime: Optional[datetime] = None


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: int
    tenantId: int
    providerId: int
    clientId: Optional[int] = None
    clientName: Optional[str] = None
    clientPhone: Optional[str] = None
    clientEmail: Optional[str] = None
    startTime: datetime
    endTime: datetime
    status: str
    services: list[int] = Field(default_factory=list)
    customServiceName: Optional[str] = None
    customPrice: Optional[float] = None
    notes: Optional[str] = None
    isRecurring: bool = False
    recurrencePattern: Optional[dict] = None
    recurrenceEndDate: Optional[date] = None
    parentAppointmentId: Optional[int] = None

    @classmethod
    def from_model(cls, appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            tenantId=appointment.tenant_id,
            providerId=appointment.provider_id,
            clientId=appointment.client_id,
            clientName=appointment.client_name,
            clientPhone=appointment.client_phone,
            clientEmail=appointment.client_email,
            startTime=appointment.start_time,
            endTime=appointment.end_time,
            status=appointment.status,
            services=appointment.services or [],
            customServiceName=appointment.custom_service_name,
            customPrice=appointment.custom_price,
            notes=appointment.notes,
            isRecurring=bool(appointment.is_recurring),
            recurrencePattern=appointment.recurrence_pattern,
            recurrenceEndDate=appointment.recurrence_end_date,
            parentAppointmentId=appointment.parent_appointment_id,
        )
