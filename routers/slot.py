from fastapi import APIRouter, Depends, Query, Response
from booking import BookingCoordinator
from dependencies import get_coordinator
import schemas
from datetime import date
from typing import List, Optional

router = APIRouter(prefix= '/slots', tags=['Slots'])


@router.get("/", response_model= List[schemas.SlotOutput])
def get_available_slots(doctor_id: int, from_date: Optional[date] = Query(None), to_date: Optional[date] = Query(None),
                        coordinator: BookingCoordinator = Depends(get_coordinator)):
    return coordinator.list_available_slots(doctor_id, from_date, to_date)

@router.patch("/{id}/block", response_model= schemas.SlotOutput)
def block_slot(id: int, coordinator: BookingCoordinator = Depends(get_coordinator)):
    return coordinator.block_slot(id)

@router.patch("/{id}/unblock", response_model= schemas.SlotOutput)
def unblock_slot(id: int, coordinator: BookingCoordinator = Depends(get_coordinator)):
    return coordinator.unblock_slot(id)

@router.delete("/{id}", status_code=204)
def delete_slot(id: int, coordinator: BookingCoordinator = Depends(get_coordinator)):
    coordinator.delete_slot(id)
    return Response(status_code=204)
