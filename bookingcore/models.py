from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Appointment statuses
STATUS_PENDING = "Pending"
STATUS_CONFIRMED = "Confirmed"
STATUS_DONE = "Done"
STATUS_CANCELLED = "Cancelled"
APPOINTMENT_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_DONE, STATUS_CANCELLED)
TERMINAL_STATUSES = (STATUS_DONE, STATUS_CANCELLED)

# Change request types and statuses
REQUEST_RESCHEDULE = "RESCHEDULE"
REQUEST_CANCEL = "CANCEL"
REQUEST_PENDING = "PENDING"
REQUEST_APPROVED = "APPROVED"
REQUEST_REJECTED = "REJECTED"

# Audit event types
EVENT_CREATED = "CREATED"
EVENT_SERIES_CREATED = "SERIES_CREATED"
EVENT_STATUS_CHANGED = "STATUS_CHANGED"
EVENT_CANCELLED = "CANCELLED"
EVENT_RESCHEDULED = "RESCHEDULED"
EVENT_CHANGE_REQUEST_CREATED = "CLIENT_CHANGE_REQUEST_CREATED"
EVENT_CANCEL_APPROVED = "CLIENT_CANCEL_APPROVED"
EVENT_RESCHEDULE_APPROVED = "CLIENT_RESCHEDULE_APPROVED"
EVENT_CHANGE_REQUEST_REJECTED = "CLIENT_CHANGE_REQUEST_REJECTED"


class Tenant(Base):
    """A business (salon, barbershop, clinic) owning providers and appointments"""

    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    # bookingSlots, clientChangeRequests, timeZone - parsed by TenantSettings
    settings = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    providers = relationship("Provider", back_populates="tenant")


class Provider(Base):
    """A bookable staff resource ("master")"""

    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    # {"monday": {"enabled": true, "start": "09:00", "end": "18:00"}, ...}
    working_hours = Column(JSON, nullable=True)
    # [{"start": "2026-01-01T00:00", "end": "2026-01-08T00:00", "reason": "vacation"}]
    blocked_periods = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    tenant = relationship("Tenant", back_populates="providers")
    appointments = relationship("Appointment", back_populates="provider")


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (UniqueConstraint("tenant_id", "phone", name="uq_clients_tenant_phone"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=False)  # normalized, dedup key
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_provider_start", "provider_id", "start_time"),
        Index("ix_appointments_tenant_idempotency", "tenant_id", "idempotency_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)

    # Snapshot of client contact at booking time
    client_name = Column(String(255), nullable=True)
    client_phone = Column(String(32), nullable=True)
    client_email = Column(String(255), nullable=True)

    # Half-open interval [start_time, end_time)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)

    # Status workflow: Pending → Confirmed → Done, Pending|Confirmed → Cancelled
    status = Column(String(20), default=STATUS_PENDING, nullable=False, index=True)

    services = Column(JSON, nullable=True)  # list of service ids
    custom_service_name = Column(String(255), nullable=True)
    custom_price = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    # Recurrence bookkeeping; parent link is not a cascade relationship
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurrence_pattern = Column(JSON, nullable=True)  # {"type": "weekly", "daysOfWeek": [1, 3]}
    recurrence_end_date = Column(Date, nullable=True)
    parent_appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    idempotency_key = Column(String(64), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    provider = relationship("Provider", back_populates="appointments")
    change_requests = relationship("AppointmentChangeRequest", back_populates="appointment")

    def __repr__(self):
        return f"<Appointment {self.id}: {self.start_time} - {self.end_time} ({self.status})>"


class AppointmentChangeRequest(Base):
    """Client-initiated reschedule/cancel proposal awaiting a provider decision"""

    __tablename__ = "appointment_change_requests"
    __table_args__ = (
        # At most one PENDING request per appointment
        Index(
            "uq_change_requests_one_pending",
            "appointment_id",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)

    type = Column(String(20), nullable=False)  # RESCHEDULE, CANCEL
    status = Column(String(20), default=REQUEST_PENDING, nullable=False)  # PENDING, APPROVED, REJECTED

    requested_start_time = Column(DateTime, nullable=True)
    requested_end_time = Column(DateTime, nullable=True)

    client_note = Column(Text, nullable=True)
    decision_note = Column(Text, nullable=True)
    decided_at = Column(DateTime, nullable=True)
    decided_by = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="change_requests")


class AppointmentEvent(Base):
    """Append-only audit trail of appointment state transitions"""

    __tablename__ = "appointment_events"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    type = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=True)
    occurred_at = Column(DateTime, server_default=func.now(), nullable=False)
