from pydantic import BaseModel, EmailStr, Field
from enum import Enum
from typing import Optional, Literal, List
from datetime import date, time, datetime
from models import SlotStatus, AppointmentStatus


class DoctorInput(BaseModel):
    name: str
    specialization: str
    experience: int = Field(0, ge=0)
    email: EmailStr
    clinic_name: Optional[str] = None

class DoctorOutput(BaseModel):
    model_config = {"from_attributes": True}
    doctor_id: int
    name: str
    specialization: str
    experience: int
    clinic_name: Optional[str]
    created_at: datetime

class PatientInput(BaseModel):
    patient_name: str
    email: EmailStr
    phone: Optional[str] = None
    age: Optional[int] = Field(None, ge=0)

class PatientOutput(BaseModel):
    model_config = {"from_attributes": True}
    patient_id: int
    patient_name: str
    email: EmailStr
    phone: Optional[str]
    age: Optional[int]
    created_at: datetime

class SlotsInput(BaseModel):
    date: date
    start_time: time
    end_time: time
    slot_duration: int = Field(30, gt=0)
    max_capacity: int = Field(1, ge=1)

class SlotOutput(BaseModel):
    model_config = {"from_attributes": True}
    slot_id: int
    doctor_id: int
    date: date
    start_time: time
    slot_duration: int
    max_capacity: int
    current_bookings: int
    status: SlotStatus

class DoctorDetailOutput(DoctorOutput):
    available_slots: List[SlotOutput]

class AppointmentInput(BaseModel):
    patient_id: int
    doctor_id: int
    slot_id: int
    reason_for_visit: Optional[str] = None
    consultation_type: Literal["in-person", "video", "phone"] = "in-person"

class AppointmentCancel(BaseModel):
    reason: str = "Patient requested cancellation"
    changed_by: Literal["patient", "doctor"] = "patient"

class AppointmentOutput(BaseModel):
    model_config = {"from_attributes": True}
    appointment_id: int
    patient_id: int
    doctor_id: int
    slot_id: Optional[int]
    appointment_date: date
    appointment_time: time
    status: AppointmentStatus
    reason_for_visit: Optional[str]
    consultation_type: str
    created_at: datetime
    expires_at: datetime
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    completed_at: Optional[datetime]

class AuditLogOutput(BaseModel):
    model_config = {"from_attributes": True}
    audit_id: int
    appointment_id: int
    action: str
    old_status: Optional[AppointmentStatus]
    new_status: AppointmentStatus
    reason: Optional[str]
    changed_by: str
    timestamp: datetime

class SweepOutput(BaseModel):
    cancelled: int

class SlotsFilter(str, Enum):
    booked = "booked"
    available = "available"
    blocked = "blocked"
