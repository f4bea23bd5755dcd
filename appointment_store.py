"""
Appointment store: appointment rows and their legal status transitions.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
from errors import DuplicateBooking, InvalidTransition, NotFound
from models import AppointmentStatus

TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED},
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.COMPLETED: set(),
}

TIMESTAMP_FIELDS = {
    AppointmentStatus.CONFIRMED: "confirmed_at",
    AppointmentStatus.CANCELLED: "cancelled_at",
    AppointmentStatus.COMPLETED: "completed_at",
}


class AppointmentStore:

    def __init__(self, expiry_minutes: int = 5):
        self.expiry_window = timedelta(minutes=expiry_minutes)

    def find_active(self, db: Session, patient_id: int, slot_id: int) -> Optional[models.Appointment]:
        return (
            db.query(models.Appointment)
            .filter(models.Appointment.patient_id == patient_id)
            .filter(models.Appointment.slot_id == slot_id)
            .filter(models.Appointment.status != AppointmentStatus.CANCELLED)
            .first()
        )

    def insert_pending(self, db: Session, patient_id: int, slot: models.TimeSlot, now: datetime,
                       reason_for_visit: Optional[str] = None,
                       consultation_type: str = "in-person") -> models.Appointment:
        if self.find_active(db, patient_id, slot.slot_id) is not None:
            raise DuplicateBooking()
        new = models.Appointment(
            patient_id=patient_id,
            doctor_id=slot.doctor_id,
            slot_id=slot.slot_id,
            appointment_date=slot.date,
            appointment_time=slot.start_time,
            status=AppointmentStatus.PENDING,
            reason_for_visit=reason_for_visit,
            consultation_type=consultation_type,
            created_at=now,
            updated_at=now,
            expires_at=now + self.expiry_window,
        )
        db.add(new)
        try:
            db.flush()
        except IntegrityError as exc:
            raise DuplicateBooking() from exc
        return new

    def get(self, db: Session, appointment_id: int) -> models.Appointment:
        appointment = db.get(models.Appointment, appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")
        return appointment

    def lock_and_get(self, db: Session, appointment_id: int) -> models.Appointment:
        appointment = (
            db.query(models.Appointment)
            .filter(models.Appointment.appointment_id == appointment_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if appointment is None:
            raise NotFound("Appointment not found")
        return appointment

    def set_status(self, db: Session, appointment_id: int, new_status: AppointmentStatus, now: datetime,
                   reason: Optional[str] = None) -> models.Appointment:
        appointment = self.get(db, appointment_id)
        if new_status not in TRANSITIONS[appointment.status]:
            raise InvalidTransition(
                f"Cannot move appointment from {appointment.status.value} to {new_status.value}"
            )
        appointment.status = new_status
        setattr(appointment, TIMESTAMP_FIELDS[new_status], now)
        if new_status == AppointmentStatus.CANCELLED:
            appointment.cancellation_reason = reason
        appointment.updated_at = now
        db.flush()
        return appointment

    def find_active_expired(self, db: Session, now: datetime) -> List[models.Appointment]:
        return (
            db.query(models.Appointment)
            .filter(models.Appointment.status == AppointmentStatus.PENDING)
            .filter(models.Appointment.expires_at < now)
            .order_by(models.Appointment.expires_at)
            .all()
        )

    def list_by_patient(self, db: Session, patient_id: int,
                        status: Optional[AppointmentStatus] = None) -> List[models.Appointment]:
        query = db.query(models.Appointment).filter(models.Appointment.patient_id == patient_id)
        if status is not None:
            query = query.filter(models.Appointment.status == status)
        return query.order_by(models.Appointment.appointment_date.desc(),
                              models.Appointment.appointment_time.desc()).all()

    def list_by_doctor(self, db: Session, doctor_id: int, on_date: Optional[date] = None) -> List[models.Appointment]:
        query = (
            db.query(models.Appointment)
            .filter(models.Appointment.doctor_id == doctor_id)
            .filter(models.Appointment.status != AppointmentStatus.CANCELLED)
        )
        if on_date is not None:
            query = query.filter(models.Appointment.appointment_date == on_date)
        return query.order_by(models.Appointment.appointment_date,
                              models.Appointment.appointment_time).all()

    def history(self, db: Session, appointment_id: int) -> List[models.AppointmentAuditLog]:
        self.get(db, appointment_id)
        return (
            db.query(models.AppointmentAuditLog)
            .filter(models.AppointmentAuditLog.appointment_id == appointment_id)
            .order_by(models.AppointmentAuditLog.timestamp, models.AppointmentAuditLog.audit_id)
            .all()
        )
