from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from models.schedule_cell import ScheduleCell, ScheduleCellClassGroup
from services.errors import StaffingValidationError
from services.snapshot import CellRef


@dataclass(frozen=True)
class DesiredTeacher:
    teacher_id: Any
    is_floater: bool = False


@dataclass
class CellEdit:
    """One cell's desired state. ``teachers=None`` leaves the roster untouched."""

    cell: CellRef
    is_active: bool = True
    enrollment_for_staffing: int | None = None
    notes: str | None = None
    class_group_ids: list[Any] = field(default_factory=list)
    teachers: list[DesiredTeacher] | None = None


def validate_cell_edit(edit: CellEdit, *, label: str | None = None) -> None:
    if edit.is_active and not edit.class_group_ids:
        raise StaffingValidationError(
            f"Active cell {label or edit.cell.describe()} needs at least one class group",
            code="CELL_MISSING_CLASS_GROUPS",
        )
    if edit.enrollment_for_staffing is not None and edit.enrollment_for_staffing < 0:
        raise StaffingValidationError("enrollment_for_staffing must be >= 0", code="INVALID_ENROLLMENT")


def get_cell(db: Session, cell: CellRef) -> ScheduleCell | None:
    return (
        db.execute(
            select(ScheduleCell)
            .where(ScheduleCell.classroom_id == cell.classroom_id)
            .where(ScheduleCell.day_of_week_id == cell.day_of_week_id)
            .where(ScheduleCell.time_slot_id == cell.time_slot_id)
        )
        .scalars()
        .first()
    )


def upsert_cell(db: Session, edit: CellEdit, *, commit: bool = True) -> ScheduleCell:
    """Create the cell on first save, otherwise update it in place.

    Class-group membership is replaced wholesale; teacher assignments are not
    touched here.
    """

    row = get_cell(db, edit.cell)
    if row is None:
        row = ScheduleCell(
            classroom_id=edit.cell.classroom_id,
            day_of_week_id=edit.cell.day_of_week_id,
            time_slot_id=edit.cell.time_slot_id,
        )
        db.add(row)
    row.is_active = bool(edit.is_active)
    row.enrollment_for_staffing = edit.enrollment_for_staffing
    row.notes = edit.notes
    db.flush()

    wanted = list(dict.fromkeys(edit.class_group_ids))
    stale = delete(ScheduleCellClassGroup).where(ScheduleCellClassGroup.schedule_cell_id == row.id)
    if wanted:
        stale = stale.where(ScheduleCellClassGroup.class_group_id.not_in(wanted))
    db.execute(stale)
    have = set(
        db.execute(
            select(ScheduleCellClassGroup.class_group_id).where(ScheduleCellClassGroup.schedule_cell_id == row.id)
        )
        .scalars()
        .all()
    )
    for group_id in wanted:
        if group_id not in have:
            db.add(ScheduleCellClassGroup(schedule_cell_id=row.id, class_group_id=group_id))

    if commit:
        db.commit()
        db.refresh(row)
    else:
        db.flush()
    return row
