from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.database import get_db
from models.class_group import ClassGroup
from schemas.reference import ClassGroupCreate, ClassGroupOut, ClassGroupUpdate


router = APIRouter()


def _check_ages(min_age: int | None, max_age: int | None) -> None:
    if min_age is not None and max_age is not None and min_age > max_age:
        raise HTTPException(status_code=400, detail="INVALID_AGE_RANGE")


@router.get("/", response_model=list[ClassGroupOut])
def list_class_groups(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[ClassGroupOut]:
    q = select(ClassGroup)
    if not include_inactive:
        q = q.where(ClassGroup.is_active.is_(True))
    return db.execute(q.order_by(ClassGroup.min_age.asc().nulls_last(), ClassGroup.name.asc())).scalars().all()


@router.post("/", response_model=ClassGroupOut)
def create_class_group(payload: ClassGroupCreate, db: Session = Depends(get_db)) -> ClassGroupOut:
    data = payload.model_dump()
    data["name"] = str(data["name"]).strip()
    if not data["name"]:
        raise HTTPException(status_code=400, detail="INVALID_NAME")
    _check_ages(data.get("min_age"), data.get("max_age"))

    group = ClassGroup(**data)
    db.add(group)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="CONFLICT")
    db.refresh(group)
    return group


@router.patch("/{class_group_id}", response_model=ClassGroupOut)
def update_class_group(
    class_group_id: uuid.UUID,
    payload: ClassGroupUpdate,
    db: Session = Depends(get_db),
) -> ClassGroupOut:
    group = db.get(ClassGroup, class_group_id)
    if group is None:
        raise HTTPException(status_code=404, detail="CLASS_GROUP_NOT_FOUND")

    updates = payload.model_dump(exclude_unset=True)
    _check_ages(updates.get("min_age", group.min_age), updates.get("max_age", group.max_age))
    for k, v in updates.items():
        setattr(group, k, v)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="CONFLICT")
    db.refresh(group)
    return group
