from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from dependencies import get_coordinator, get_db
from booking import BookingCoordinator
import models, schemas
from typing import List, Optional
from datetime import date, datetime, timezone

router = APIRouter(prefix= '/doctors',tags=['Doctors'])

def _get_doctor(db: Session, id: int):
    doctor = db.query(models.Doctor).filter(models.Doctor.doctor_id == id).one_or_none()
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")
    return doctor

@router.post("/", response_model= schemas.DoctorOutput, status_code=201)
def create_doctor(doctor: schemas.DoctorInput, db: Session = Depends(get_db)):
    new = models.Doctor(**doctor.model_dump())
    try:
        db.add(new)
        db.commit()
    except IntegrityError:
        raise HTTPException(status_code=409, detail= "Doctor profile already exists")
    db.refresh(new)
    return new

@router.get("/", response_model= List[schemas.DoctorOutput])
def get_doctors(specialization: Optional[str] = Query(None), db: Session = Depends(get_db)):
    query = db.query(models.Doctor)
    if specialization:
        query = query.filter(models.Doctor.specialization == specialization)
    return query.order_by(models.Doctor.name).all()

@router.get("/{id}", response_model= schemas.DoctorDetailOutput)
def get_doctor(id: int, from_date: Optional[date] = Query(None), to_date: Optional[date] = Query(None),
               db: Session = Depends(get_db), coordinator: BookingCoordinator = Depends(get_coordinator)):
    doctor = _get_doctor(db, id)
    available = coordinator.ledger.list_available(db, id, from_date, to_date)
    response = schemas.DoctorOutput.model_validate(doctor).model_dump()
    response["available_slots"] = [schemas.SlotOutput.model_validate(slot) for slot in available]
    return response

@router.post("/{id}/slots", response_model=List[schemas.SlotOutput], status_code=201)
def create_slots(id: int, slot: schemas.SlotsInput, db: Session = Depends(get_db),
                 coordinator: BookingCoordinator = Depends(get_coordinator)):
    _get_doctor(db, id)
    start_dt = datetime.combine(slot.date, slot.start_time, tzinfo=timezone.utc)
    if start_dt < coordinator.clock():
        raise HTTPException(status_code=422, detail="Availability time must be in the future")
    try:
        created = coordinator.ledger.create_slots(db, id, slot.date, slot.start_time, slot.end_time,
                                                  slot.slot_duration, slot.max_capacity)
        db.commit()
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Slot already exists")
    return created

@router.get("/{id}/slots", response_model= List[schemas.SlotOutput])
def get_slots(id: int, status: schemas.SlotsFilter | None = Query(None), from_date: Optional[date] = Query(None),
              to_date: Optional[date] = Query(None), db: Session = Depends(get_db),
              coordinator: BookingCoordinator = Depends(get_coordinator)):
    _get_doctor(db, id)
    slot_status = models.SlotStatus(status.value) if status else None
    return coordinator.ledger.list_doctor_slots(db, id, slot_status, from_date, to_date)

@router.get("/{id}/appointments", response_model=List[schemas.AppointmentOutput])
def get_appointments(id: int, on_date: Optional[date] = Query(None, alias="date"), db: Session = Depends(get_db),
                     coordinator: BookingCoordinator = Depends(get_coordinator)):
    _get_doctor(db, id)
    return coordinator.store.list_by_doctor(db, id, on_date)
