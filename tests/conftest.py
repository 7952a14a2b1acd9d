from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bookingcore.database import Base, create_db_engine, get_db
from bookingcore.domain.appointments.service import BookingService
from bookingcore.domain.change_requests.service import ChangeRequestService
from bookingcore.domain.scheduling.slots import SlotService
from bookingcore.models import STATUS_PENDING, Appointment, Provider, Tenant
from bookingcore.services.notification_service import Notifier, get_default_notifier
from bookingcore.shared.timeutils import get_request_clock

# Monday, 08:00 tenant wall-clock time
NOW = datetime(2026, 3, 2, 8, 0)

WEEKDAYS_9_TO_18 = {
    day: {"enabled": True, "start": "09:00", "end": "18:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events = []

    def notify(self, tenant_id, appointment_id, event_type, payload):
        self.events.append((tenant_id, appointment_id, event_type, payload))

    @property
    def types(self):
        return [event[2] for event in self.events]


class FailingNotifier(Notifier):
    def notify(self, tenant_id, appointment_id, event_type, payload):
        raise RuntimeError("notification channel down")


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_tenant(db):
    def _make(settings=None, name="Barbershop"):
        tenant = Tenant(name=name, settings=settings)
        db.add(tenant)
        db.commit()
        return tenant

    return _make


@pytest.fixture
def make_provider(db):
    def _make(tenant, working_hours=WEEKDAYS_9_TO_18, blocked_periods=None, is_active=True, name="Olena"):
        provider = Provider(
            tenant_id=tenant.id,
            name=name,
            working_hours=working_hours,
            blocked_periods=blocked_periods,
            is_active=is_active,
        )
        db.add(provider)
        db.commit()
        return provider

    return _make


@pytest.fixture
def make_appointment(db):
    def _make(provider, start, minutes=60, status=STATUS_PENDING):
        appointment = Appointment(
            tenant_id=provider.tenant_id,
            provider_id=provider.id,
            client_name="Existing client",
            client_phone="+380501112233",
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            status=status,
        )
        db.add(appointment)
        db.commit()
        return appointment

    return _make


@pytest.fixture
def tenant(make_tenant):
    return make_tenant()


@pytest.fixture
def provider(make_provider, tenant):
    return make_provider(tenant)


@pytest.fixture
def booking_service(db, notifier, clock):
    return BookingService(db, notifier=notifier, clock=clock)


@pytest.fixture
def change_request_service(db, notifier, clock):
    return ChangeRequestService(db, notifier=notifier, clock=clock)


@pytest.fixture
def slot_service(db, clock):
    return SlotService(db, clock=clock)


@pytest.fixture
def booking_payload(provider):
    def _payload(start, minutes=60, **overrides):
        payload = {
            "providerId": provider.id,
            "startTime": start.isoformat(),
            "endTime": (start + timedelta(minutes=minutes)).isoformat(),
            "clientName": "Iryna",
            "clientPhone": "067 123 45 67",
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def api_client(db, notifier, clock):
    from bookingcore.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_default_notifier] = lambda: notifier
    app.dependency_overrides[get_request_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()
