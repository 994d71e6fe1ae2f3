from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.database import get_db
from models.staff import Staff
from models.sub_availability import SubAvailability, SubAvailabilityException, SubClassGroupQualification
from schemas.reference import StaffCreate, StaffOut, StaffUpdate, SubAvailabilityPut


router = APIRouter()


def _get_staff(db: Session, staff_id: uuid.UUID) -> Staff:
    member = db.get(Staff, staff_id)
    if member is None:
        raise HTTPException(status_code=404, detail="STAFF_NOT_FOUND")
    return member


@router.get("/", response_model=list[StaffOut])
def list_staff(
    role: str | None = Query(default=None, description="teacher | sub | flexible"),
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[StaffOut]:
    q = select(Staff)
    if not include_inactive:
        q = q.where(Staff.active.is_(True))
    if role == "teacher":
        q = q.where(Staff.is_teacher.is_(True))
    elif role == "sub":
        q = q.where(Staff.is_sub.is_(True))
    elif role == "flexible":
        q = q.where(Staff.is_flexible.is_(True))
    elif role is not None:
        raise HTTPException(status_code=400, detail="INVALID_ROLE")
    return db.execute(q.order_by(Staff.last_name.asc(), Staff.first_name.asc())).scalars().all()


@router.post("/", response_model=StaffOut)
def create_staff(payload: StaffCreate, db: Session = Depends(get_db)) -> StaffOut:
    data = payload.model_dump()
    data["first_name"] = str(data["first_name"]).strip()
    data["last_name"] = str(data["last_name"]).strip()
    if not data["first_name"] or not data["last_name"]:
        raise HTTPException(status_code=400, detail="INVALID_NAME")

    member = Staff(**data)
    db.add(member)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="CONFLICT")
    db.refresh(member)
    return member


@router.patch("/{staff_id}", response_model=StaffOut)
def update_staff(staff_id: uuid.UUID, payload: StaffUpdate, db: Session = Depends(get_db)) -> StaffOut:
    member = _get_staff(db, staff_id)
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(member, k, v)
    db.commit()
    db.refresh(member)
    return member


@router.get("/{staff_id}/availability")
def get_sub_availability(staff_id: uuid.UUID, db: Session = Depends(get_db)) -> dict:
    _get_staff(db, staff_id)
    weekly = db.execute(select(SubAvailability).where(SubAvailability.sub_id == staff_id)).scalars().all()
    exceptions = (
        db.execute(
            select(SubAvailabilityException)
            .where(SubAvailabilityException.sub_id == staff_id)
            .order_by(SubAvailabilityException.date.asc())
        )
        .scalars()
        .all()
    )
    groups = (
        db.execute(
            select(SubClassGroupQualification.class_group_id).where(SubClassGroupQualification.sub_id == staff_id)
        )
        .scalars()
        .all()
    )
    return {
        "weekly": [
            {"day_of_week_id": str(r.day_of_week_id), "time_slot_id": str(r.time_slot_id), "available": r.available}
            for r in weekly
        ],
        "exceptions": [
            {"date": r.date.isoformat(), "time_slot_id": str(r.time_slot_id), "available": r.available}
            for r in exceptions
        ],
        "qualified_class_group_ids": [str(g) for g in groups],
    }


@router.put("/{staff_id}/availability")
def put_sub_availability(staff_id: uuid.UUID, payload: SubAvailabilityPut, db: Session = Depends(get_db)) -> dict:
    _get_staff(db, staff_id)

    db.execute(delete(SubAvailability).where(SubAvailability.sub_id == staff_id))
    db.execute(delete(SubAvailabilityException).where(SubAvailabilityException.sub_id == staff_id))
    db.execute(delete(SubClassGroupQualification).where(SubClassGroupQualification.sub_id == staff_id))

    seen: set[tuple] = set()
    for item in payload.weekly:
        key = (item.day_of_week_id, item.time_slot_id)
        if key in seen:
            continue
        seen.add(key)
        db.add(SubAvailability(sub_id=staff_id, **item.model_dump()))
    seen.clear()
    for item in payload.exceptions:
        key = (item.date, item.time_slot_id)
        if key in seen:
            continue
        seen.add(key)
        db.add(SubAvailabilityException(sub_id=staff_id, **item.model_dump()))
    for group_id in dict.fromkeys(payload.qualified_class_group_ids):
        db.add(SubClassGroupQualification(sub_id=staff_id, class_group_id=group_id))

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="CONFLICT")
    return {"ok": True}
