"""
Pytest configuration and shared fixtures.
"""

from datetime import date, datetime, time, timedelta, timezone
import itertools

import pytest
from fastapi.testclient import TestClient

import models
from booking import BookingCoordinator
from config import Settings
from database import Database
from main import create_app

START = datetime(2030, 1, 14, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'booking.db'}")
    db.create_all()
    yield db
    db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coordinator(database, clock):
    return BookingCoordinator(database, expiry_minutes=5, max_attempts=3, retry_max_wait=0.01, clock=clock)


@pytest.fixture
def doctor(database):
    with database.transaction() as db:
        new = models.Doctor(name="Dr. Meera Rao", specialization="Cardiology", experience=12,
                            email="meera.rao@northside-clinic.com")
        db.add(new)
        db.flush()
        return new.doctor_id


@pytest.fixture
def make_patient(database):
    counter = itertools.count(1)

    def _make(name=None):
        n = next(counter)
        with database.transaction() as db:
            new = models.Patient(patient_name=name or f"Patient {n}", email=f"patient{n}@mailbox.com", age=30)
            db.add(new)
            db.flush()
            return new.patient_id

    return _make


@pytest.fixture
def make_slot(database, doctor):
    counter = itertools.count(0)

    def _make(max_capacity=1, slot_date=date(2030, 1, 15), start_time=None, doctor_id=None):
        if start_time is None:
            start_time = time(9 + next(counter), 0)
        with database.transaction() as db:
            new = models.TimeSlot(
                doctor_id=doctor_id or doctor,
                date=slot_date,
                start_time=start_time,
                slot_duration=30,
                max_capacity=max_capacity,
                current_bookings=0,
                status=models.SlotStatus.AVAILABLE,
            )
            db.add(new)
            db.flush()
            return new.slot_id

    return _make


@pytest.fixture
def get_slot(database):
    def _get(slot_id):
        with database.transaction() as db:
            return db.get(models.TimeSlot, slot_id)

    return _get


@pytest.fixture
def client(tmp_path):
    app_settings = Settings(
        sqlalchemy_database_url=f"sqlite:///{tmp_path / 'api.db'}",
        sweeper_enabled=False,
        booking_retry_max_wait=0.01,
    )
    with TestClient(create_app(app_settings)) as test_client:
        yield test_client
