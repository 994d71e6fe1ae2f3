from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.database import get_db, is_duplicate_key_error
from models.teacher_schedule import TeacherSchedule
from schemas.teacher_schedule import (
    ConflictCheckOut,
    ConflictCheckRequest,
    ResolveConflictOut,
    ResolveConflictRequest,
    TeacherScheduleCreate,
    TeacherScheduleOut,
    TeacherScheduleUpdate,
)
from services.audit import log_audit_event
from services.conflicts import ResolutionRequest, find_conflicts, resolve_conflict, staff_names
from services.snapshot import CellRef


logger = logging.getLogger(__name__)


router = APIRouter()


def _find_existing(db: Session, payload: TeacherScheduleCreate) -> TeacherSchedule | None:
    return (
        db.execute(
            select(TeacherSchedule)
            .where(TeacherSchedule.teacher_id == payload.teacher_id)
            .where(TeacherSchedule.classroom_id == payload.classroom_id)
            .where(TeacherSchedule.day_of_week_id == payload.day_of_week_id)
            .where(TeacherSchedule.time_slot_id == payload.time_slot_id)
        )
        .scalars()
        .first()
    )


@router.get("/", response_model=list[TeacherScheduleOut])
def list_teacher_schedules(
    teacher_id: uuid.UUID | None = Query(default=None),
    classroom_id: uuid.UUID | None = Query(default=None),
    day_of_week_id: uuid.UUID | None = Query(default=None),
    time_slot_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[TeacherScheduleOut]:
    q = select(TeacherSchedule)
    if teacher_id is not None:
        q = q.where(TeacherSchedule.teacher_id == teacher_id)
    if classroom_id is not None:
        q = q.where(TeacherSchedule.classroom_id == classroom_id)
    if day_of_week_id is not None:
        q = q.where(TeacherSchedule.day_of_week_id == day_of_week_id)
    if time_slot_id is not None:
        q = q.where(TeacherSchedule.time_slot_id == time_slot_id)
    return db.execute(q.order_by(TeacherSchedule.created_at.asc())).scalars().all()


@router.post("/", response_model=TeacherScheduleOut)
def create_teacher_schedule(payload: TeacherScheduleCreate, db: Session = Depends(get_db)) -> TeacherScheduleOut:
    # Creating an assignment that already exists is a no-op, not an error.
    existing = _find_existing(db, payload)
    if existing is not None:
        return existing

    row = TeacherSchedule(**payload.model_dump())
    db.add(row)
    try:
        db.flush()
        log_audit_event(
            db,
            action="create",
            category="teacher_schedule",
            entity_type="teacher_schedule",
            entity_id=row.id,
            details=payload.model_dump(),
            commit=False,
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not is_duplicate_key_error(exc):
            raise HTTPException(status_code=409, detail="CONFLICT")
        logger.info("Teacher schedule for teacher %s already existed; treating create as success", payload.teacher_id)
        existing = _find_existing(db, payload)
        if existing is None:
            raise HTTPException(status_code=409, detail="CONFLICT")
        return existing
    db.refresh(row)
    return row


@router.put("/{schedule_id}", response_model=TeacherScheduleOut)
def update_teacher_schedule(
    schedule_id: uuid.UUID,
    payload: TeacherScheduleUpdate,
    db: Session = Depends(get_db),
) -> TeacherScheduleOut:
    row = db.get(TeacherSchedule, schedule_id)
    if row is None:
        raise HTTPException(status_code=404, detail="TEACHER_SCHEDULE_NOT_FOUND")

    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    before = {k: getattr(row, k) for k in updates}
    for k, v in updates.items():
        setattr(row, k, v)
    try:
        log_audit_event(
            db,
            action="update",
            category="teacher_schedule",
            entity_type="teacher_schedule",
            entity_id=row.id,
            details={"teacher_id": row.teacher_id, "before": before, "after": updates},
            commit=False,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="TEACHER_SCHEDULE_ALREADY_EXISTS")
    db.refresh(row)
    return row


@router.delete("/{schedule_id}")
def delete_teacher_schedule(schedule_id: uuid.UUID, db: Session = Depends(get_db)) -> dict:
    row = db.get(TeacherSchedule, schedule_id)
    if row is None:
        raise HTTPException(status_code=404, detail="TEACHER_SCHEDULE_NOT_FOUND")
    log_audit_event(
        db,
        action="delete",
        category="teacher_schedule",
        entity_type="teacher_schedule",
        entity_id=row.id,
        details={
            "teacher_id": row.teacher_id,
            "classroom_id": row.classroom_id,
            "day_of_week_id": row.day_of_week_id,
            "time_slot_id": row.time_slot_id,
            "is_floater": bool(row.is_floater),
        },
        commit=False,
    )
    db.delete(row)
    db.commit()
    return {"ok": True}


@router.post("/check-conflicts", response_model=ConflictCheckOut)
def check_conflicts(payload: ConflictCheckRequest, db: Session = Depends(get_db)) -> ConflictCheckOut:
    conflicts = find_conflicts(
        db,
        checks=[
            (c.teacher_id, CellRef(c.classroom_id, c.day_of_week_id, c.time_slot_id))
            for c in payload.checks
        ],
    )
    return ConflictCheckOut(conflicts=[c.to_dict() for c in conflicts])


@router.post("/resolve-conflict", response_model=ResolveConflictOut)
def resolve_teacher_conflict(payload: ResolveConflictRequest, db: Session = Depends(get_db)) -> ResolveConflictOut:
    name = staff_names(db, [payload.teacher_id]).get(payload.teacher_id)
    result = resolve_conflict(
        db,
        ResolutionRequest(
            teacher_id=payload.teacher_id,
            day_of_week_id=payload.day_of_week_id,
            time_slot_id=payload.time_slot_id,
            target_classroom_id=payload.target_classroom_id,
            resolution=payload.resolution,
            teacher_name=name,
        ),
    )
    return ResolveConflictOut(**result.to_dict())
