from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from dependencies import get_coordinator, get_db
from booking import BookingCoordinator
import models, schemas
from typing import List
router = APIRouter(prefix= '/patients', tags=['Patients'])

def _get_patient(db: Session, id: int):
    patient = db.query(models.Patient).filter(models.Patient.patient_id == id).one_or_none()
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient

@router.post("/", response_model= schemas.PatientOutput, status_code=201)
def create_patient(patient: schemas.PatientInput, db: Session = Depends(get_db)):
    new = models.Patient(**patient.model_dump())
    try:
        db.add(new)
        db.commit()
    except IntegrityError:
        raise HTTPException(status_code=409, detail= "Patient already exists")
    db.refresh(new)
    return new

@router.get("/{id}", response_model= schemas.PatientOutput)
def get_patient(id: int, db: Session = Depends(get_db)):
    return _get_patient(db, id)

@router.get("/{id}/appointments", response_model= List[schemas.AppointmentOutput])
def get_appointments(id: int, status: models.AppointmentStatus | None = Query(None), db: Session = Depends(get_db),
                     coordinator: BookingCoordinator = Depends(get_coordinator)):
    _get_patient(db, id)
    return coordinator.store.list_by_patient(db, id, status)
