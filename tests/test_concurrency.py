"""
Concurrent bookers against the same slot, and the confirm/sweep expiry race.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from booking import BookingCoordinator
from errors import BookingError, Expired, InvalidState, SlotUnavailable
from models import AppointmentStatus, SlotStatus


@pytest.fixture
def busy_coordinator(database, clock):
    # generous retry budget: SQLite serializes every writer on one file lock
    return BookingCoordinator(database, expiry_minutes=5, max_attempts=10, retry_max_wait=0.05, clock=clock)


def _attempt(call, *args):
    try:
        return call(*args)
    except BookingError as exc:
        return exc


@pytest.mark.parametrize("capacity", [1, 3])
def test_concurrent_bookings_never_exceed_capacity(busy_coordinator, make_patient, make_slot, get_slot, doctor,
                                                   capacity):
    slot_id = make_slot(max_capacity=capacity)
    patients = [make_patient() for _ in range(10 * capacity)]

    with ThreadPoolExecutor(max_workers=10) as pool:
        results = list(pool.map(lambda p: _attempt(busy_coordinator.book, p, doctor, slot_id), patients))

    booked = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(booked) == capacity
    assert all(a.status == AppointmentStatus.PENDING for a in booked)
    assert len(rejected) == 9 * capacity
    assert all(isinstance(r, SlotUnavailable) for r in rejected)

    slot = get_slot(slot_id)
    assert slot.current_bookings == capacity
    assert slot.status == SlotStatus.BOOKED


def test_concurrent_bookings_on_different_slots_all_succeed(busy_coordinator, make_patient, make_slot, get_slot,
                                                            doctor):
    slots = [make_slot(max_capacity=1) for _ in range(5)]
    patients = [make_patient() for _ in slots]

    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(lambda pair: _attempt(busy_coordinator.book, pair[0], doctor, pair[1]),
                                zip(patients, slots)))

    assert all(r.status == AppointmentStatus.PENDING for r in results)
    assert all(get_slot(slot_id).current_bookings == 1 for slot_id in slots)


def test_same_patient_racing_itself_books_once(busy_coordinator, make_patient, make_slot, get_slot, doctor):
    slot_id = make_slot(max_capacity=5)
    patient_id = make_patient()

    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(lambda _: _attempt(busy_coordinator.book, patient_id, doctor, slot_id), range(5)))

    assert len([r for r in results if not isinstance(r, Exception)]) == 1
    assert get_slot(slot_id).current_bookings == 1


def test_confirm_and_sweep_race_releases_capacity_once(busy_coordinator, make_patient, make_slot, get_slot,
                                                       doctor, clock):
    slot_id = make_slot(max_capacity=2)
    busy_coordinator.book(make_patient(), doctor, slot_id)
    appointment = busy_coordinator.book(make_patient(), doctor, slot_id)
    clock.advance(minutes=6)

    with ThreadPoolExecutor(max_workers=2) as pool:
        confirm = pool.submit(_attempt, busy_coordinator.confirm, appointment.appointment_id)
        sweep = pool.submit(busy_coordinator.expire_sweep)
        confirm_result = confirm.result()
        swept = sweep.result()

    # whichever path won, the other saw a cancelled appointment
    assert isinstance(confirm_result, (Expired, InvalidState))
    assert swept in (1, 2)
    assert busy_coordinator.get_appointment(appointment.appointment_id).status == AppointmentStatus.CANCELLED
    assert get_slot(slot_id).current_bookings == 0


def test_concurrent_sweeps_cancel_each_appointment_once(busy_coordinator, make_patient, make_slot, get_slot,
                                                        doctor, clock):
    slot_id = make_slot(max_capacity=6)
    appointments = [busy_coordinator.book(make_patient(), doctor, slot_id) for _ in range(6)]
    clock.advance(minutes=6)

    with ThreadPoolExecutor(max_workers=4) as pool:
        counts = list(pool.map(lambda _: busy_coordinator.expire_sweep(), range(4)))

    assert sum(counts) == len(appointments)
    assert all(busy_coordinator.get_appointment(a.appointment_id).status == AppointmentStatus.CANCELLED
               for a in appointments)
    slot = get_slot(slot_id)
    assert slot.current_bookings == 0
    assert slot.status == SlotStatus.AVAILABLE
