from fastapi import APIRouter, Depends
from booking import BookingCoordinator
from dependencies import get_coordinator
import schemas
from typing import List

router = APIRouter(prefix= "/appointments", tags=['Appointments'])

@router.post("/", response_model= schemas.AppointmentOutput, status_code=201)
def post_appointment(appointment: schemas.AppointmentInput, coordinator: BookingCoordinator = Depends(get_coordinator)):
    return coordinator.book(
        appointment.patient_id,
        appointment.doctor_id,
        appointment.slot_id,
        reason_for_visit=appointment.reason_for_visit,
        consultation_type=appointment.consultation_type,
    )

@router.post("/expire", response_model= schemas.SweepOutput)
def expire_appointments(coordinator: BookingCoordinator = Depends(get_coordinator)):
    return {"cancelled": coordinator.expire_sweep()}

@router.get("/{id}", response_model= schemas.AppointmentOutput)
def get_appointment(id: int, coordinator: BookingCoordinator = Depends(get_coordinator)):
    return coordinator.get_appointment(id)

@router.get("/{id}/history", response_model= List[schemas.AuditLogOutput])
def get_history(id: int, coordinator: BookingCoordinator = Depends(get_coordinator)):
    return coordinator.appointment_history(id)

@router.post("/{id}/confirm", response_model= schemas.AppointmentOutput)
def confirm_appointment(id: int, coordinator: BookingCoordinator = Depends(get_coordinator)):
    return coordinator.confirm(id)

@router.post("/{id}/cancel", response_model= schemas.AppointmentOutput)
def cancel_appointment(id: int, payload: schemas.AppointmentCancel | None = None,
                       coordinator: BookingCoordinator = Depends(get_coordinator)):
    payload = payload or schemas.AppointmentCancel()
    return coordinator.cancel(id, payload.reason, changed_by=payload.changed_by)

@router.post("/{id}/complete", response_model= schemas.AppointmentOutput)
def complete_appointment(id: int, coordinator: BookingCoordinator = Depends(get_coordinator)):
    return coordinator.complete(id)
