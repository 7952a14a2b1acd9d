import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from bookingcore.database import Base, create_db_engine
from bookingcore.domain.appointments.service import BookingService
from bookingcore.domain.change_requests.service import ChangeRequestService
from bookingcore.errors import BookingError, ConflictError, IdempotencyError
from bookingcore.models import STATUS_CANCELLED, Appointment, Provider, Tenant

from .conftest import NOW, WEEKDAYS_9_TO_18, RecordingNotifier

TEN = datetime(2026, 3, 3, 10)


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def seeded(file_sessions):
    with file_sessions() as db:
        tenant = Tenant(name="Salon")
        db.add(tenant)
        db.flush()
        provider = Provider(tenant_id=tenant.id, name="Olena", working_hours=WEEKDAYS_9_TO_18)
        db.add(provider)
        db.commit()
        return tenant.id, provider.id


def run_in_threads(count, target):
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(index):
        barrier.wait()
        try:
            results[index] = target(index)
        except BookingError as e:
            results[index] = e

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


def test_concurrent_bookings_never_overlap(file_sessions, seeded):
    tenant_id, provider_id = seeded

    def book(index):
        # Staggered starts: every pair of requests overlaps
        start = TEN + timedelta(minutes=10 * (index % 3))
        with file_sessions() as db:
            service = BookingService(db, notifier=RecordingNotifier(), clock=lambda: NOW)
            appointment = service.create_single(
                tenant_id,
                {
                    "providerId": provider_id,
                    "startTime": start.isoformat(),
                    "durationMinutes": 60,
                    "clientName": f"Client {index}",
                    "clientPhone": f"+3806700000{index:02d}",
                },
            )
            return appointment.id

    results = run_in_threads(8, book)

    created = [r for r in results if isinstance(r, int)]
    assert len(created) == 1
    assert all(isinstance(r, ConflictError) for r in results if not isinstance(r, int))

    with file_sessions() as db:
        rows = db.query(Appointment).filter(Appointment.status != STATUS_CANCELLED).all()
        assert len(rows) == 1


def test_concurrent_decisions_apply_once(file_sessions, seeded):
    tenant_id, provider_id = seeded
    with file_sessions() as db:
        appointment = Appointment(
            tenant_id=tenant_id,
            provider_id=provider_id,
            client_name="Iryna",
            start_time=TEN,
            end_time=TEN + timedelta(hours=1),
        )
        db.add(appointment)
        db.commit()
        service = ChangeRequestService(db, notifier=RecordingNotifier(), clock=lambda: NOW)
        request_id = service.file_change_request(
            tenant_id, {"type": "CANCEL", "appointmentId": appointment.id}
        ).id

    def decide(index):
        with file_sessions() as db:
            service = ChangeRequestService(db, notifier=RecordingNotifier(), clock=lambda: NOW)
            action = "approve" if index % 2 == 0 else "reject"
            return service.decide(tenant_id, request_id, action).status

    results = run_in_threads(4, decide)

    applied = [r for r in results if isinstance(r, str)]
    assert len(applied) == 1
    assert all(isinstance(r, IdempotencyError) for r in results if not isinstance(r, str))
