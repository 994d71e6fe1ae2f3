from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.database import get_db
from models.classroom import Classroom
from models.schedule_cell import ScheduleCell
from models.teacher_schedule import TeacherSchedule
from schemas.reference import ClassroomCreate, ClassroomOut, ClassroomUpdate


logger = logging.getLogger(__name__)


router = APIRouter()


def _ensure_unique_name(db: Session, *, name: str, exclude_id: uuid.UUID | None) -> None:
    q = select(Classroom.id).where(Classroom.name == name)
    if exclude_id is not None:
        q = q.where(Classroom.id != exclude_id)
    if db.execute(q.limit(1)).first() is not None:
        raise HTTPException(status_code=409, detail="CLASSROOM_NAME_ALREADY_EXISTS")


@router.get("/", response_model=list[ClassroomOut])
def list_classrooms(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[ClassroomOut]:
    q = select(Classroom)
    if not include_inactive:
        q = q.where(Classroom.is_active.is_(True))
    return db.execute(q.order_by(Classroom.display_order.asc(), Classroom.name.asc())).scalars().all()


@router.post("/", response_model=ClassroomOut)
def create_classroom(payload: ClassroomCreate, db: Session = Depends(get_db)) -> ClassroomOut:
    data = payload.model_dump()
    data["name"] = str(data["name"]).strip()
    if not data["name"]:
        raise HTTPException(status_code=400, detail="INVALID_NAME")
    _ensure_unique_name(db, name=data["name"], exclude_id=None)

    room = Classroom(**data)
    db.add(room)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="CLASSROOM_NAME_ALREADY_EXISTS")
    db.refresh(room)
    return room


@router.patch("/{classroom_id}", response_model=ClassroomOut)
def update_classroom(classroom_id: uuid.UUID, payload: ClassroomUpdate, db: Session = Depends(get_db)) -> ClassroomOut:
    room = db.get(Classroom, classroom_id)
    if room is None:
        raise HTTPException(status_code=404, detail="CLASSROOM_NOT_FOUND")

    updates = payload.model_dump(exclude_unset=True)
    if updates.get("name") is not None:
        updates["name"] = str(updates["name"]).strip()
        if not updates["name"]:
            raise HTTPException(status_code=400, detail="INVALID_NAME")
        _ensure_unique_name(db, name=updates["name"], exclude_id=classroom_id)
    for k, v in updates.items():
        setattr(room, k, v)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="CONFLICT")
    db.refresh(room)
    return room


@router.delete("/{classroom_id}")
def delete_classroom(classroom_id: uuid.UUID, db: Session = Depends(get_db)) -> dict:
    room = db.get(Classroom, classroom_id)
    if room is None:
        raise HTTPException(status_code=404, detail="CLASSROOM_NOT_FOUND")

    in_use = (
        db.execute(select(TeacherSchedule.id).where(TeacherSchedule.classroom_id == classroom_id).limit(1)).first()
        or db.execute(select(ScheduleCell.id).where(ScheduleCell.classroom_id == classroom_id).limit(1)).first()
    )
    if in_use:
        # Keep history intact; deactivate instead.
        logger.info("Classroom %s is referenced by schedules; deactivating instead of deleting", classroom_id)
        room.is_active = False
        db.commit()
        return {"ok": True, "deactivated": True}

    db.delete(room)
    db.commit()
    return {"ok": True}
