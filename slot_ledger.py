"""
Slot ledger: time-slot capacity state.

``lock_and_get`` takes the slot row lock for the enclosing transaction.
``increment_booking`` and ``decrement_booking`` must only be called while that
lock is held; the booking coordinator is their only caller.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

import models
from errors import CapacityExceeded, InvalidState, NotFound, ValidationFailed
from models import SlotStatus

logger = logging.getLogger(__name__)


def recompute_status(slot: models.TimeSlot) -> None:
    if slot.status == SlotStatus.BLOCKED:
        return
    if slot.current_bookings >= slot.max_capacity:
        slot.status = SlotStatus.BOOKED
    else:
        slot.status = SlotStatus.AVAILABLE


class SlotLedger:

    def lock_and_get(self, db: Session, slot_id: int) -> models.TimeSlot:
        slot = (
            db.query(models.TimeSlot)
            .filter(models.TimeSlot.slot_id == slot_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if slot is None:
            raise NotFound("Time slot not found")
        return slot

    def _held(self, db: Session, slot_id: int) -> models.TimeSlot:
        slot = db.get(models.TimeSlot, slot_id)
        if slot is None:
            raise NotFound("Time slot not found")
        return slot

    def increment_booking(self, db: Session, slot_id: int) -> models.TimeSlot:
        slot = self._held(db, slot_id)
        if slot.current_bookings + 1 > slot.max_capacity:
            raise CapacityExceeded()
        slot.current_bookings += 1
        recompute_status(slot)
        db.flush()
        return slot

    def decrement_booking(self, db: Session, slot_id: int) -> models.TimeSlot:
        slot = self._held(db, slot_id)
        slot.current_bookings = max(slot.current_bookings - 1, 0)
        recompute_status(slot)
        db.flush()
        return slot

    def list_available(self, db: Session, doctor_id: int, from_date: Optional[date] = None,
                       to_date: Optional[date] = None) -> List[models.TimeSlot]:
        query = (
            db.query(models.TimeSlot)
            .filter(models.TimeSlot.doctor_id == doctor_id)
            .filter(models.TimeSlot.status == SlotStatus.AVAILABLE)
            .filter(models.TimeSlot.current_bookings < models.TimeSlot.max_capacity)
        )
        return self._in_range(query, from_date, to_date).all()

    def list_doctor_slots(self, db: Session, doctor_id: int, status: Optional[SlotStatus] = None,
                          from_date: Optional[date] = None, to_date: Optional[date] = None) -> List[models.TimeSlot]:
        query = db.query(models.TimeSlot).filter(models.TimeSlot.doctor_id == doctor_id)
        if status is not None:
            query = query.filter(models.TimeSlot.status == status)
        return self._in_range(query, from_date, to_date).all()

    def _in_range(self, query, from_date, to_date):
        if from_date is not None:
            query = query.filter(models.TimeSlot.date >= from_date)
        if to_date is not None:
            query = query.filter(models.TimeSlot.date <= to_date)
        return query.order_by(models.TimeSlot.date, models.TimeSlot.start_time)

    def create_slots(self, db: Session, doctor_id: int, slot_date: date, start_time: time, end_time: time,
                     slot_duration: int = 30, max_capacity: int = 1) -> List[models.TimeSlot]:
        """
        Split ``start_time``..``end_time`` into consecutive slots of
        ``slot_duration`` minutes. Slots that already exist for the doctor
        are skipped, so the same window can be submitted twice.
        """
        if slot_duration <= 0:
            raise ValidationFailed("slot_duration must be positive")
        if max_capacity < 1:
            raise ValidationFailed("max_capacity must be at least 1")
        if start_time >= end_time:
            raise ValidationFailed("end_time must be after start_time")

        existing = {
            row.start_time
            for row in db.query(models.TimeSlot.start_time)
            .filter(models.TimeSlot.doctor_id == doctor_id, models.TimeSlot.date == slot_date)
        }
        current = datetime.combine(slot_date, start_time)
        end_dt = datetime.combine(slot_date, end_time)
        duration = timedelta(minutes=slot_duration)
        created = []
        generated = 0
        while current + duration <= end_dt:
            generated += 1
            if current.time() in existing:
                logger.info("Slot already exists: doctor=%s %s %s", doctor_id, slot_date, current.time())
            else:
                new_slot = models.TimeSlot(
                    doctor_id=doctor_id,
                    date=slot_date,
                    start_time=current.time(),
                    slot_duration=slot_duration,
                    max_capacity=max_capacity,
                    current_bookings=0,
                    status=SlotStatus.AVAILABLE,
                )
                db.add(new_slot)
                created.append(new_slot)
            current += duration
        if generated == 0:
            raise ValidationFailed("Window is shorter than one slot")
        db.flush()
        return created

    def block(self, db: Session, slot_id: int) -> models.TimeSlot:
        slot = self.lock_and_get(db, slot_id)
        slot.status = SlotStatus.BLOCKED
        db.flush()
        return slot

    def unblock(self, db: Session, slot_id: int) -> models.TimeSlot:
        slot = self.lock_and_get(db, slot_id)
        if slot.status != SlotStatus.BLOCKED:
            raise InvalidState("Time slot is not blocked")
        slot.status = SlotStatus.AVAILABLE
        recompute_status(slot)
        db.flush()
        return slot

    def delete(self, db: Session, slot_id: int) -> None:
        slot = self.lock_and_get(db, slot_id)
        if slot.current_bookings > 0:
            raise InvalidState("Time slot has active bookings")
        db.delete(slot)
        db.flush()
