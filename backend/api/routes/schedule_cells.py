from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.database import get_db
from models.teacher_schedule import TeacherSchedule
from schemas.schedule_cell import (
    BulkCellUpdate,
    ClassGroupRef,
    RosterApplyOut,
    RosterApplyRequest,
    ScheduleCellIn,
    ScheduleCellOut,
)
from services.cells import CellEdit, DesiredTeacher, get_cell, upsert_cell, validate_cell_edit
from services.conflicts import classroom_names, staff_names
from services.reconciliation import apply_roster_batch
from services.roster_cache import RosterCache, sql_roster_loader
from services.snapshot import CellRef
from services.staffing import cell_staffing


logger = logging.getLogger(__name__)


router = APIRouter()


def _to_edit(item: ScheduleCellIn) -> CellEdit:
    return CellEdit(
        cell=CellRef(item.classroom_id, item.day_of_week_id, item.time_slot_id),
        is_active=item.is_active,
        enrollment_for_staffing=item.enrollment_for_staffing,
        notes=item.notes,
        class_group_ids=list(item.class_group_ids),
        teachers=(
            None
            if item.teachers is None
            else [DesiredTeacher(t.teacher_id, is_floater=t.is_floater) for t in item.teachers]
        ),
    )


@router.get("/cell", response_model=ScheduleCellOut)
def get_schedule_cell(
    classroom_id: uuid.UUID = Query(...),
    day_of_week_id: uuid.UUID = Query(...),
    time_slot_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
) -> ScheduleCellOut:
    ref = CellRef(classroom_id, day_of_week_id, time_slot_id)
    cell = get_cell(db, ref)
    assignments = (
        db.execute(
            select(TeacherSchedule)
            .where(TeacherSchedule.classroom_id == classroom_id)
            .where(TeacherSchedule.day_of_week_id == day_of_week_id)
            .where(TeacherSchedule.time_slot_id == time_slot_id)
            .order_by(TeacherSchedule.created_at.asc())
        )
        .scalars()
        .all()
    )
    staffing = cell_staffing(db, cell=cell, assignments=assignments)
    names = staff_names(db, [a.teacher_id for a in assignments])

    return ScheduleCellOut(
        id=cell.id if cell is not None else None,
        classroom_id=classroom_id,
        day_of_week_id=day_of_week_id,
        time_slot_id=time_slot_id,
        # Cells that were never saved read as active and empty.
        is_active=bool(cell.is_active) if cell is not None else True,
        enrollment_for_staffing=cell.enrollment_for_staffing if cell is not None else None,
        notes=cell.notes if cell is not None else None,
        class_groups=[ClassGroupRef.model_validate(g) for g in staffing.class_groups],
        assignments=[
            {
                "id": a.id,
                "teacher_id": a.teacher_id,
                "teacher_name": names.get(a.teacher_id),
                "is_floater": bool(a.is_floater),
            }
            for a in assignments
        ],
        **staffing.to_dict(),
    )


@router.put("/bulk")
def bulk_update_cells(payload: BulkCellUpdate, db: Session = Depends(get_db)) -> dict:
    """Save cell settings (active flag, enrollment, notes, class groups) for many cells.

    Every cell is validated before the first write. Rosters are not touched;
    use ``/apply`` for teacher changes.
    """

    edits = [_to_edit(item) for item in payload.cells]
    rooms = classroom_names(db, [e.cell.classroom_id for e in edits])
    for edit in edits:
        validate_cell_edit(edit, label=edit.cell.describe(rooms))

    saved = [upsert_cell(db, edit) for edit in edits]
    logger.info("Bulk-updated %d schedule cells", len(saved))
    return {"ok": True, "updated": len(saved), "ids": [str(c.id) for c in saved]}


@router.post("/apply", response_model=RosterApplyOut)
def apply_roster(payload: RosterApplyRequest, db: Session = Depends(get_db)) -> RosterApplyOut:
    edits = [_to_edit(item) for item in payload.cells]
    resolutions = {
        (r.teacher_id, r.day_of_week_id, r.time_slot_id, r.target_classroom_id): r.resolution
        for r in payload.resolutions
    }
    cache = RosterCache(sql_roster_loader(db))
    result = apply_roster_batch(db, edits=edits, resolutions=resolutions, cache=cache)

    return RosterApplyOut(
        cells=len(result.cells),
        steps=result.steps,
        resolutions=result.resolutions,
        warnings=result.warnings,
        rosters=[
            {
                "classroom_id": str(key[0]),
                "day_of_week_id": str(key[1]),
                "time_slot_id": str(key[2]),
                "teachers": roster,
            }
            for key, roster in result.rosters.items()
        ],
    )
