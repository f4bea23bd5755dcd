from database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Date, Time, DateTime, Enum, Text, UniqueConstraint, Index, CheckConstraint
from sqlalchemy.sql.expression import text
from sqlalchemy.types import TypeDecorator
from datetime import datetime, timezone
import enum


def utcnow():
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class SlotStatus(str, enum.Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


def _values(enum_cls):
    return [member.value for member in enum_cls]


slot_status = Enum(SlotStatus, name="slot_status", create_constraint=True, values_callable=_values)
appointment_status = Enum(AppointmentStatus, name="appointment_status", create_constraint=True, values_callable=_values)


class Doctor(Base):
    __tablename__ = 'doctors'
    doctor_id = Column(Integer, primary_key= True)
    name = Column(String, nullable= False)
    specialization = Column(String, nullable= False)
    experience = Column(Integer, nullable=False, default=0)
    email = Column(String, nullable= False, unique= True)
    clinic_name = Column(String, nullable= True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

class Patient(Base):
    __tablename__ = 'patients'
    patient_id = Column(Integer, primary_key= True)
    patient_name = Column(String, nullable= False)
    email = Column(String, nullable= False, unique= True)
    phone = Column(String, nullable= True)
    age = Column(Integer, nullable= True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)


class TimeSlot(Base):
    __tablename__ = 'slots'
    slot_id = Column(Integer, primary_key= True)
    doctor_id = Column(Integer, ForeignKey('doctors.doctor_id', ondelete= 'CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    slot_duration = Column(Integer, nullable=False, default=30)
    max_capacity = Column(Integer, nullable=False, default=1)
    current_bookings = Column(Integer, nullable=False, default=0)
    status = Column(slot_status, nullable=False, default=SlotStatus.AVAILABLE)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
    __table_args__ = (
        UniqueConstraint("doctor_id", "date", "start_time", name="uq_doctor_slot"),
        CheckConstraint("max_capacity >= 1", name="ck_slot_capacity_positive"),
        CheckConstraint("current_bookings >= 0 AND current_bookings <= max_capacity", name="ck_slot_bookings_within_capacity"),
    )

class Appointment(Base):
    __tablename__ = "appointments"
    appointment_id = Column(Integer, primary_key= True)
    patient_id = Column(Integer, ForeignKey('patients.patient_id', ondelete= 'CASCADE'), nullable=False)
    doctor_id = Column(Integer, ForeignKey('doctors.doctor_id', ondelete= 'CASCADE'), nullable=False)
    slot_id = Column(Integer, ForeignKey('slots.slot_id', ondelete= 'SET NULL'), nullable=True)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(Time, nullable=False)
    status = Column(appointment_status, nullable=False, default=AppointmentStatus.PENDING)
    reason_for_visit = Column(Text, nullable=True)
    consultation_type = Column(String, nullable=False, default="in-person")
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
    expires_at = Column(UTCDateTime, nullable=False)
    confirmed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    __table_args__ = (
        Index(
            "uq_active_patient_slot", "patient_id", "slot_id", unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        Index("ix_appointments_pending_expiry", "status", "expires_at"),
    )

class AppointmentAuditLog(Base):
    __tablename__ = "appointment_audit_log"
    audit_id = Column(Integer, primary_key= True)
    appointment_id = Column(Integer, ForeignKey("appointments.appointment_id", ondelete="CASCADE"), nullable=False)
    action = Column(String, nullable=False)
    old_status = Column(appointment_status, nullable=True)
    new_status = Column(appointment_status, nullable=False)
    reason = Column(Text, nullable=True)
    changed_by = Column(Enum("doctor", "patient", "system", name="audit_changed_by", create_constraint=True), nullable=False)
    timestamp = Column(UTCDateTime, nullable=False, default=utcnow)
