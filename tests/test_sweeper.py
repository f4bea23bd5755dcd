from datetime import timedelta
from unittest.mock import MagicMock

from models import AppointmentStatus
from sweeper import JOB_ID, ExpirySweeper


def test_expire_sweep_cancels_only_expired(coordinator, make_patient, make_slot, get_slot, doctor, clock):
    slot_id = make_slot(max_capacity=4)
    stale = [coordinator.book(make_patient(), doctor, slot_id) for _ in range(2)]
    clock.advance(minutes=3)
    fresh = coordinator.book(make_patient(), doctor, slot_id)
    confirmed = coordinator.book(make_patient(), doctor, slot_id)
    coordinator.confirm(confirmed.appointment_id)

    now = stale[0].expires_at + timedelta(seconds=1)
    assert coordinator.expire_sweep(now) == 2

    for appointment in stale:
        swept = coordinator.get_appointment(appointment.appointment_id)
        assert swept.status == AppointmentStatus.CANCELLED
        assert swept.cancellation_reason == "Expired"
    assert coordinator.get_appointment(fresh.appointment_id).status == AppointmentStatus.PENDING
    assert coordinator.get_appointment(confirmed.appointment_id).status == AppointmentStatus.CONFIRMED
    assert get_slot(slot_id).current_bookings == 2

    assert coordinator.expire_sweep(now) == 0
    assert get_slot(slot_id).current_bookings == 2


def test_expire_sweep_defaults_to_clock(coordinator, make_patient, make_slot, doctor, clock):
    appointment = coordinator.book(make_patient(), doctor, make_slot())
    assert coordinator.expire_sweep() == 0
    clock.advance(minutes=5, seconds=1)
    assert coordinator.expire_sweep() == 1
    history = coordinator.appointment_history(appointment.appointment_id)
    assert history[-1].action == "EXPIRED"
    assert history[-1].changed_by == "system"


def test_one_failing_expiry_does_not_block_others(coordinator, make_patient, make_slot, doctor, clock, monkeypatch):
    first = coordinator.book(make_patient(), doctor, make_slot())
    second = coordinator.book(make_patient(), doctor, make_slot())
    clock.advance(minutes=10)

    original = coordinator._expire_one

    def flaky(db, appointment_id, now):
        if appointment_id == first.appointment_id:
            raise RuntimeError("disk full")
        return original(db, appointment_id, now)

    monkeypatch.setattr(coordinator, "_expire_one", flaky)
    assert coordinator.expire_sweep() == 1
    assert coordinator.get_appointment(first.appointment_id).status == AppointmentStatus.PENDING
    assert coordinator.get_appointment(second.appointment_id).status == AppointmentStatus.CANCELLED


def test_run_once_swallows_errors():
    coordinator = MagicMock()
    coordinator.expire_sweep.side_effect = RuntimeError("database unavailable")
    sweeper = ExpirySweeper(coordinator, interval_seconds=60)
    assert sweeper.run_once() == 0
    coordinator.expire_sweep.assert_called_once_with()


def test_run_once_returns_count():
    coordinator = MagicMock()
    coordinator.expire_sweep.return_value = 3
    assert ExpirySweeper(coordinator).run_once() == 3


def test_start_schedules_interval_job():
    sweeper = ExpirySweeper(MagicMock(), interval_seconds=15)
    sweeper.start()
    try:
        assert sweeper.is_running
        job = sweeper.scheduler.get_job(JOB_ID)
        assert job is not None
        assert job.trigger.interval == timedelta(seconds=15)
        assert job.max_instances == 1
    finally:
        sweeper.shutdown()
    assert not sweeper.is_running


def test_expire_sweep_accepts_naive_utc_timestamp(coordinator, make_patient, make_slot, get_slot, doctor):
    slot_id = make_slot()
    appointment = coordinator.book(make_patient(), doctor, slot_id)

    naive = (appointment.expires_at + timedelta(seconds=1)).replace(tzinfo=None)
    assert coordinator.expire_sweep(naive) == 1
    assert coordinator.get_appointment(appointment.appointment_id).status == AppointmentStatus.CANCELLED
    assert get_slot(slot_id).current_bookings == 0


def test_expire_sweep_skips_appointment_cancelled_after_scan(coordinator, make_patient, make_slot, get_slot,
                                                             doctor, clock, monkeypatch):
    slot_id = make_slot(max_capacity=3)
    stale = coordinator.book(make_patient(), doctor, slot_id)
    kept = coordinator.book(make_patient(), doctor, slot_id)
    coordinator.confirm(kept.appointment_id)
    clock.advance(minutes=10)

    original = coordinator._read

    def cancel_after_scan(operation, *args, **kwargs):
        result = original(operation, *args, **kwargs)
        if operation.__name__ == "find_active_expired":
            for appointment in result:
                coordinator.cancel(appointment.appointment_id, "Changed plans")
        return result

    monkeypatch.setattr(coordinator, "_read", cancel_after_scan)
    assert coordinator.expire_sweep() == 0
    monkeypatch.undo()

    assert get_slot(slot_id).current_bookings == 1
    history = coordinator.appointment_history(stale.appointment_id)
    assert [h.action for h in history] == ["CREATED", "CANCELLED"]
