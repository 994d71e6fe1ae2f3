from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.database import get_db
from models.day_of_week import DayOfWeek
from models.time_slot import TimeSlot
from schemas.reference import DayOfWeekOut, TimeSlotCreate, TimeSlotOut, TimeSlotUpdate


router = APIRouter()
days_router = APIRouter()


@router.get("/", response_model=list[TimeSlotOut])
def list_time_slots(db: Session = Depends(get_db)) -> list[TimeSlotOut]:
    return db.execute(select(TimeSlot).order_by(TimeSlot.display_order.asc(), TimeSlot.code.asc())).scalars().all()


@router.post("/", response_model=TimeSlotOut)
def create_time_slot(payload: TimeSlotCreate, db: Session = Depends(get_db)) -> TimeSlotOut:
    data = payload.model_dump()
    data["code"] = str(data["code"]).strip().upper()
    if not data["code"]:
        raise HTTPException(status_code=400, detail="INVALID_CODE")
    if data.get("start_time") and data.get("end_time") and data["start_time"] >= data["end_time"]:
        raise HTTPException(status_code=400, detail="INVALID_TIME_RANGE")

    slot = TimeSlot(**data)
    db.add(slot)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="TIME_SLOT_CODE_ALREADY_EXISTS")
    db.refresh(slot)
    return slot


@router.patch("/{time_slot_id}", response_model=TimeSlotOut)
def update_time_slot(time_slot_id: uuid.UUID, payload: TimeSlotUpdate, db: Session = Depends(get_db)) -> TimeSlotOut:
    slot = db.get(TimeSlot, time_slot_id)
    if slot is None:
        raise HTTPException(status_code=404, detail="TIME_SLOT_NOT_FOUND")

    updates = payload.model_dump(exclude_unset=True)
    if updates.get("code") is not None:
        updates["code"] = str(updates["code"]).strip().upper()
        if not updates["code"]:
            raise HTTPException(status_code=400, detail="INVALID_CODE")
    for k, v in updates.items():
        setattr(slot, k, v)
    if slot.start_time and slot.end_time and slot.start_time >= slot.end_time:
        db.rollback()
        raise HTTPException(status_code=400, detail="INVALID_TIME_RANGE")

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="TIME_SLOT_CODE_ALREADY_EXISTS")
    db.refresh(slot)
    return slot


@days_router.get("/", response_model=list[DayOfWeekOut])
def list_days_of_week(db: Session = Depends(get_db)) -> list[DayOfWeekOut]:
    return db.execute(select(DayOfWeek).order_by(DayOfWeek.day_number.asc())).scalars().all()
