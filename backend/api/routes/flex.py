from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from schemas.flex import (
    FlexAssignmentCreate,
    FlexAssignmentOut,
    FlexAvailabilityRequest,
    FlexRemoveOut,
    FlexRemoveRequest,
)
from services.flex import (
    SPECIFIC_WEEKDAYS,
    DayFilter,
    FlexShift,
    cancel_flex_event,
    create_flex_assignment,
    flex_availability,
    removal_context,
    remove_flex_shifts,
)


router = APIRouter()


@router.post("/flex/availability")
def get_flex_availability(payload: FlexAvailabilityRequest, db: Session = Depends(get_db)) -> dict:
    return flex_availability(
        db,
        start=payload.start_date,
        end=payload.end_date,
        time_slot_ids=list(payload.time_slot_ids),
        classroom_ids=list(payload.classroom_ids),
    )


@router.post("/flex", response_model=FlexAssignmentOut)
def create_flex(payload: FlexAssignmentCreate, db: Session = Depends(get_db)) -> FlexAssignmentOut:
    if payload.day_mode == SPECIFIC_WEEKDAYS:
        day_filter = DayFilter.specific(payload.weekdays)
    else:
        day_filter = DayFilter.this_day_only(payload.weekdays[0] if payload.weekdays else None)

    shifts = None
    if payload.shifts is not None:
        shifts = [FlexShift(s.date, s.time_slot_id, s.classroom_id) for s in payload.shifts]

    event, count = create_flex_assignment(
        db,
        staff_id=payload.staff_id,
        start=payload.start_date,
        end=payload.end_date,
        classroom_ids=list(payload.classroom_ids),
        time_slot_ids=list(payload.time_slot_ids),
        day_filter=day_filter,
        shifts=shifts,
        notes=payload.notes,
    )
    return FlexAssignmentOut(
        id=event.id,
        staff_id=event.staff_id,
        start_date=event.start_date,
        end_date=event.end_date,
        status=event.status,
        notes=event.notes,
        shift_count=count,
    )


@router.get("/flex/remove")
def get_flex_removal_context(
    event_id: uuid.UUID = Query(...),
    classroom_id: uuid.UUID | None = Query(default=None),
    time_slot_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    return removal_context(db, event_id=event_id, classroom_id=classroom_id, time_slot_id=time_slot_id)


@router.post("/flex/remove", response_model=FlexRemoveOut)
def remove_flex(payload: FlexRemoveRequest, db: Session = Depends(get_db)) -> FlexRemoveOut:
    result = remove_flex_shifts(
        db,
        event_id=payload.event_id,
        scope=payload.scope,
        shift_date=payload.date,
        day_of_week_id=payload.day_of_week_id,
        classroom_id=payload.classroom_id,
        time_slot_id=payload.time_slot_id,
    )
    return FlexRemoveOut(**result)


@router.post("/{event_id}/cancel")
def cancel_flex(event_id: uuid.UUID, db: Session = Depends(get_db)) -> dict:
    event = cancel_flex_event(db, event_id=event_id)
    return {"ok": True, "id": str(event.id), "status": event.status}
