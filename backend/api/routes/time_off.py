from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.database import get_db
from models.staff import Staff
from models.time_off import TimeOffRequest, TimeOffShift
from schemas.time_off import TimeOffCreate, TimeOffOut, TimeOffShiftOut
from services.calendar import load_day_lookup
from services.coverage import cancel_absence, ensure_coverage_request, get_absence, scheduled_shifts_in_range


logger = logging.getLogger(__name__)


router = APIRouter()


@router.get("/", response_model=list[TimeOffOut])
def list_time_off(
    teacher_id: uuid.UUID | None = Query(default=None),
    include_cancelled: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[TimeOffOut]:
    q = select(TimeOffRequest)
    if teacher_id is not None:
        q = q.where(TimeOffRequest.teacher_id == teacher_id)
    if not include_cancelled:
        q = q.where(TimeOffRequest.status != "cancelled")
    return db.execute(q.order_by(TimeOffRequest.start_date.asc())).scalars().all()


@router.post("/", response_model=TimeOffOut)
def create_time_off(payload: TimeOffCreate, db: Session = Depends(get_db)) -> TimeOffOut:
    end = payload.end_date or payload.start_date
    if end < payload.start_date:
        raise HTTPException(status_code=400, detail="DATE_RANGE_INVERTED")
    if payload.status not in ("draft", "active"):
        raise HTTPException(status_code=400, detail="INVALID_STATUS")
    if db.get(Staff, payload.teacher_id) is None:
        raise HTTPException(status_code=404, detail="STAFF_NOT_FOUND")

    days = load_day_lookup(db)
    if payload.shifts:
        planned = [
            (s.date, days.id_for_date(s.date), s.time_slot_id, s.is_partial)
            for s in payload.shifts
            if payload.start_date <= s.date <= end
        ]
    else:
        # No explicit shifts: the teacher is out for every scheduled shift in the range.
        planned = [
            (d, day_id, slot_id, False)
            for d, day_id, slot_id in scheduled_shifts_in_range(db, payload.teacher_id, payload.start_date, end)
        ]
    if not planned:
        raise HTTPException(status_code=400, detail="NO_SHIFTS_SELECTED")

    absence = TimeOffRequest(
        teacher_id=payload.teacher_id,
        start_date=payload.start_date,
        end_date=end,
        reason=payload.reason,
        notes=payload.notes,
        status=payload.status,
    )
    db.add(absence)
    db.flush()
    seen: set[tuple] = set()
    for d, day_id, slot_id, is_partial in planned:
        if (d, slot_id) in seen:
            continue
        seen.add((d, slot_id))
        db.add(
            TimeOffShift(
                time_off_request_id=absence.id,
                date=d,
                day_of_week_id=day_id,
                time_slot_id=slot_id,
                is_partial=is_partial,
            )
        )
    db.commit()
    db.refresh(absence)

    if absence.status == "active":
        ensure_coverage_request(db, absence)
        db.refresh(absence)
    logger.info("Created time off %s for teacher %s (%d shifts)", absence.id, absence.teacher_id, len(seen))
    return absence


@router.get("/{absence_id}", response_model=TimeOffOut)
def get_time_off(absence_id: uuid.UUID, db: Session = Depends(get_db)) -> TimeOffOut:
    return get_absence(db, absence_id)


@router.get("/{absence_id}/shifts", response_model=list[TimeOffShiftOut])
def list_time_off_shifts(absence_id: uuid.UUID, db: Session = Depends(get_db)) -> list[TimeOffShiftOut]:
    get_absence(db, absence_id)
    return (
        db.execute(
            select(TimeOffShift)
            .where(TimeOffShift.time_off_request_id == absence_id)
            .order_by(TimeOffShift.date.asc())
        )
        .scalars()
        .all()
    )


@router.post("/{absence_id}/cancel", response_model=TimeOffOut)
def cancel_time_off(absence_id: uuid.UUID, db: Session = Depends(get_db)) -> TimeOffOut:
    return cancel_absence(db, get_absence(db, absence_id))
