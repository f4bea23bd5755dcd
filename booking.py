"""
Booking transaction coordinator.

Every write is one unit of work: a single database transaction that takes the
slot and/or appointment row locks, applies the state change, writes the audit
row and commits. Lock contention (``OperationalError``: lock timeouts,
serialization failures, deadlocks) restarts the whole unit of work with a
randomized backoff; domain errors are raised straight to the caller.
"""

import logging
from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_random_exponential

import models
from appointment_store import AppointmentStore
from audit import AuditRecorder
from database import Database
from errors import AlreadyCancelled, Conflict, DuplicateBooking, Expired, InvalidState, NotFound, SlotUnavailable
from models import AppointmentStatus, SlotStatus
from slot_ledger import SlotLedger

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingCoordinator:

    def __init__(self, database: Database, expiry_minutes: int = 5, max_attempts: int = 3,
                 retry_max_wait: float = 1.0, clock: Callable[[], datetime] = utc_now,
                 ledger: Optional[SlotLedger] = None, store: Optional[AppointmentStore] = None,
                 audit: Optional[AuditRecorder] = None):
        self.database = database
        self.max_attempts = max_attempts
        self.retry_max_wait = retry_max_wait
        self.clock = clock
        self.ledger = ledger or SlotLedger()
        self.store = store or AppointmentStore(expiry_minutes=expiry_minutes)
        self.audit = audit or AuditRecorder()

    def _run(self, operation, *args, **kwargs):
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_random_exponential(multiplier=0.05, max=self.retry_max_wait),
            retry=retry_if_exception_type(OperationalError),
            before_sleep=self._log_retry,
        )
        try:
            for attempt in retrying:
                with attempt:
                    with self.database.transaction() as db:
                        return operation(db, *args, **kwargs)
        except RetryError as exc:
            logger.error(
                f"{operation.__name__} gave up after {self.max_attempts} attempts: "
                f"{exc.last_attempt.exception()}"
            )
            raise Conflict() from exc

    @staticmethod
    def _log_retry(retry_state):
        logger.warning(
            f"Lock contention on attempt {retry_state.attempt_number}, retrying: "
            f"{retry_state.outcome.exception()}"
        )

    def _read(self, operation, *args, **kwargs):
        with self.database.transaction() as db:
            return operation(db, *args, **kwargs)

    def book(self, patient_id: int, doctor_id: Optional[int], slot_id: int, reason_for_visit: Optional[str] = None,
             consultation_type: str = "in-person") -> models.Appointment:
        appointment = self._run(self._book, patient_id, doctor_id, slot_id, reason_for_visit, consultation_type)
        logger.info(f"Booked appointment {appointment.appointment_id} for patient {patient_id} on slot {slot_id}")
        return appointment

    def _book(self, db: Session, patient_id, doctor_id, slot_id, reason_for_visit, consultation_type):
        now = self.clock()
        # The capacity and duplicate checks below must run under this lock.
        slot = self.ledger.lock_and_get(db, slot_id)
        if doctor_id is not None and slot.doctor_id != doctor_id:
            raise NotFound("Time slot not found")
        if db.get(models.Patient, patient_id) is None:
            raise NotFound("Patient not found")
        if slot.status != SlotStatus.AVAILABLE:
            raise SlotUnavailable()
        if slot.current_bookings >= slot.max_capacity:
            raise SlotUnavailable("This slot is fully booked")
        if self.store.find_active(db, patient_id, slot_id) is not None:
            raise DuplicateBooking()
        appointment = self.store.insert_pending(
            db, patient_id, slot, now,
            reason_for_visit=reason_for_visit,
            consultation_type=consultation_type,
        )
        self.ledger.increment_booking(db, slot_id)
        self.audit.record(db, appointment.appointment_id, "CREATED", None, AppointmentStatus.PENDING,
                          changed_by="patient", timestamp=now)
        return appointment

    def confirm(self, appointment_id: int) -> models.Appointment:
        appointment, expired = self._run(self._confirm, appointment_id)
        if expired:
            logger.info(f"Appointment {appointment_id} expired before confirmation and was cancelled")
            raise Expired()
        logger.info(f"Confirmed appointment {appointment_id}")
        return appointment

    def _confirm(self, db: Session, appointment_id):
        now = self.clock()
        appointment = self.store.lock_and_get(db, appointment_id)
        if appointment.status != AppointmentStatus.PENDING:
            raise InvalidState(f"Cannot confirm appointment with status: {appointment.status.value}")
        if now > appointment.expires_at:
            self._release(db, appointment, now, "Confirmation window expired", "EXPIRED", "system")
            return appointment, True
        self.store.set_status(db, appointment_id, AppointmentStatus.CONFIRMED, now)
        self.audit.record(db, appointment_id, "CONFIRMED", AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED,
                          changed_by="patient", timestamp=now)
        return appointment, False

    def cancel(self, appointment_id: int, reason: Optional[str] = None, changed_by: str = "patient") -> models.Appointment:
        appointment = self._run(self._cancel, appointment_id, reason, changed_by)
        logger.info(f"Cancelled appointment {appointment_id} ({changed_by}): {reason}")
        return appointment

    def _cancel(self, db: Session, appointment_id, reason, changed_by):
        now = self.clock()
        appointment = self.store.lock_and_get(db, appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED:
            raise AlreadyCancelled()
        self._release(db, appointment, now, reason, "CANCELLED", changed_by)
        return appointment

    def _release(self, db: Session, appointment, now, reason, action, changed_by):
        # Capacity is only released on the transition into CANCELLED, which
        # happens at most once per appointment under its row lock.
        old_status = appointment.status
        self.store.set_status(db, appointment.appointment_id, AppointmentStatus.CANCELLED, now, reason=reason)
        if appointment.slot_id is not None:
            self.ledger.lock_and_get(db, appointment.slot_id)
            self.ledger.decrement_booking(db, appointment.slot_id)
        self.audit.record(db, appointment.appointment_id, action, old_status, AppointmentStatus.CANCELLED,
                          reason=reason, changed_by=changed_by, timestamp=now)

    def complete(self, appointment_id: int) -> models.Appointment:
        appointment = self._run(self._complete, appointment_id)
        logger.info(f"Completed appointment {appointment_id}")
        return appointment

    def _complete(self, db: Session, appointment_id):
        now = self.clock()
        appointment = self.store.lock_and_get(db, appointment_id)
        old_status = appointment.status
        self.store.set_status(db, appointment_id, AppointmentStatus.COMPLETED, now)
        self.audit.record(db, appointment_id, "COMPLETED", old_status, AppointmentStatus.COMPLETED,
                          changed_by="doctor", timestamp=now)
        return appointment

    def expire_sweep(self, now: Optional[datetime] = None) -> int:
        """
        Cancel every PENDING appointment whose ``expires_at`` is before ``now``.

        Each appointment is cancelled in its own transaction, so one failure
        does not stop the rest. Appointments confirmed or cancelled by another
        path since the scan are skipped.

        Returns:
            Number of appointments cancelled by this sweep
        """
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        expired_ids = [a.appointment_id for a in self._read(self.store.find_active_expired, now)]
        if not expired_ids:
            return 0
        logger.info(f"Found {len(expired_ids)} expired pending appointments")
        cancelled = 0
        for appointment_id in expired_ids:
            try:
                if self._run(self._expire_one, appointment_id, now):
                    cancelled += 1
            except Exception as e:
                logger.error(f"Error expiring appointment {appointment_id}: {str(e)}")
        logger.info(f"Expiry sweep cancelled {cancelled} of {len(expired_ids)} appointments")
        return cancelled

    def _expire_one(self, db: Session, appointment_id, now):
        appointment = self.store.lock_and_get(db, appointment_id)
        if appointment.status != AppointmentStatus.PENDING or appointment.expires_at >= now:
            return False
        self._release(db, appointment, now, "Expired", "EXPIRED", "system")
        return True

    def block_slot(self, slot_id: int) -> models.TimeSlot:
        return self._run(self.ledger.block, slot_id)

    def unblock_slot(self, slot_id: int) -> models.TimeSlot:
        return self._run(self.ledger.unblock, slot_id)

    def delete_slot(self, slot_id: int) -> None:
        self._run(self.ledger.delete, slot_id)

    def list_available_slots(self, doctor_id: int, from_date: Optional[date] = None,
                             to_date: Optional[date] = None) -> List[models.TimeSlot]:
        return self._read(self.ledger.list_available, doctor_id, from_date, to_date)

    def list_patient_appointments(self, patient_id: int,
                                  status: Optional[AppointmentStatus] = None) -> List[models.Appointment]:
        return self._read(self.store.list_by_patient, patient_id, status)

    def list_doctor_appointments(self, doctor_id: int, on_date: Optional[date] = None) -> List[models.Appointment]:
        return self._read(self.store.list_by_doctor, doctor_id, on_date)

    def get_appointment(self, appointment_id: int) -> models.Appointment:
        return self._read(self.store.get, appointment_id)

    def appointment_history(self, appointment_id: int) -> List[models.AppointmentAuditLog]:
        return self._read(self.store.history, appointment_id)
