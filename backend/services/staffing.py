from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.config import settings
from models.class_group import ClassGroup
from models.classroom import Classroom
from models.schedule_cell import ScheduleCell, ScheduleCellClassGroup
from models.staffing_event import StaffingEventShift
from models.sub_assignment import SubAssignment
from models.teacher_schedule import TeacherSchedule
from services.calendar import load_day_lookup
from services.ratios import StaffingTargets, staffing_targets


logger = logging.getLogger(__name__)


BELOW_REQUIRED = "below_required"
BELOW_PREFERRED = "below_preferred"
ADEQUATE = "adequate"
STAFFING_STATUSES = (BELOW_REQUIRED, BELOW_PREFERRED, ADEQUATE)


def round_one(value: float) -> float:
    """Round half-up to one decimal place (2.25 -> 2.3, not banker's 2.2)."""

    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class StaffingStatus:
    status: str
    scheduled: float
    required: int | None
    preferred: int | None
    shortfall: float = 0.0

    @property
    def has_target(self) -> bool:
        return self.required is not None or self.preferred is not None

    def message(self) -> str:
        if self.status == BELOW_REQUIRED:
            return f"Below required staffing by {self.shortfall:.1f}"
        if self.status == BELOW_PREFERRED:
            return f"Below preferred staffing by {self.shortfall:.1f}"
        return f"Meets preferred staffing ({self.scheduled:.1f} teachers)"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "scheduled": self.scheduled,
            "required": self.required,
            "preferred": self.preferred,
            "shortfall": self.shortfall,
            "message": self.message(),
        }


def classify_staffing(scheduled: float, required: int | None, preferred: int | None) -> StaffingStatus:
    """Classify a slot against its targets.

    Exactly one of below_required / below_preferred / adequate holds for any
    triple. A missing target is never violated.
    """

    scheduled = round_one(scheduled)
    if required is not None and scheduled < required:
        return StaffingStatus(BELOW_REQUIRED, scheduled, required, preferred, round_one(required - scheduled))
    if preferred is not None and scheduled < preferred:
        return StaffingStatus(BELOW_PREFERRED, scheduled, required, preferred, round_one(preferred - scheduled))
    return StaffingStatus(ADEQUATE, scheduled, required, preferred, 0.0)


def assignment_contribution(
    is_floater: bool,
    *,
    floater_rooms: int | None = None,
    mode: str | None = None,
    weight: float | None = None,
) -> float:
    if not is_floater:
        return 1.0
    mode = mode or settings.floater_weight_mode
    if mode == "proportional" and floater_rooms:
        return 1.0 / int(floater_rooms)
    return float(settings.floater_weight if weight is None else weight)


def _field(row: Any, name: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def count_scheduled(
    assignments: Iterable[Any],
    *,
    floater_rooms: Mapping[Any, int] | None = None,
    mode: str | None = None,
    weight: float | None = None,
) -> float:
    """Weighted head count for one slot: 1.0 per teacher, a fraction per floater.

    ``assignments`` are rows or dicts with ``teacher_id`` and ``is_floater``.
    ``floater_rooms`` maps teacher_id -> number of rooms that teacher floats
    across in the same day/slot (only used in proportional mode).
    """

    total = 0.0
    for a in assignments:
        rooms = (floater_rooms or {}).get(_field(a, "teacher_id"))
        total += assignment_contribution(bool(_field(a, "is_floater")), floater_rooms=rooms, mode=mode, weight=weight)
    return round_one(total)


@dataclass
class CellStaffing:
    cell: ScheduleCell | None
    targets: StaffingTargets
    status: StaffingStatus | None
    class_groups: list[ClassGroup] = field(default_factory=list)
    assignments: list[TeacherSchedule] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "required": self.targets.required,
            "preferred": self.targets.preferred,
            "ratio_class_group_id": str(self.targets.class_group_id) if self.targets.class_group_id else None,
            "staffing": self.status.to_dict() if self.status is not None else None,
        }


def class_groups_by_cell(db: Session, cell_ids: Iterable[Any]) -> dict[Any, list[ClassGroup]]:
    ids = list(cell_ids)
    out: dict[Any, list[ClassGroup]] = defaultdict(list)
    if not ids:
        return out
    q = (
        select(ScheduleCellClassGroup.schedule_cell_id, ClassGroup)
        .join(ClassGroup, ClassGroup.id == ScheduleCellClassGroup.class_group_id)
        .where(ScheduleCellClassGroup.schedule_cell_id.in_(ids))
    )
    for cell_id, group in db.execute(q).all():
        out[cell_id].append(group)
    return out


def floater_room_counts(db: Session, *, day_of_week_id: Any, time_slot_id: Any) -> dict[Any, int]:
    q = (
        select(TeacherSchedule.teacher_id, func.count(TeacherSchedule.id))
        .where(TeacherSchedule.day_of_week_id == day_of_week_id)
        .where(TeacherSchedule.time_slot_id == time_slot_id)
        .where(TeacherSchedule.is_floater.is_(True))
        .group_by(TeacherSchedule.teacher_id)
    )
    return {tid: int(n) for tid, n in db.execute(q).all()}


def cell_staffing(
    db: Session,
    *,
    cell: ScheduleCell | None,
    assignments: list[TeacherSchedule],
    class_groups: list[ClassGroup] | None = None,
) -> CellStaffing:
    """Targets and status for one cell. Inactive cells and cells without class
    groups are exempt (status None)."""

    if cell is None:
        return CellStaffing(cell=None, targets=StaffingTargets(None, None), status=None, assignments=assignments)

    groups = class_groups if class_groups is not None else class_groups_by_cell(db, [cell.id]).get(cell.id, [])
    targets = staffing_targets(cell.enrollment_for_staffing, groups)
    status = None
    if cell.is_active and groups and targets.required is not None:
        rooms = None
        if settings.floater_weight_mode == "proportional":
            rooms = floater_room_counts(db, day_of_week_id=cell.day_of_week_id, time_slot_id=cell.time_slot_id)
        scheduled = count_scheduled(assignments, floater_rooms=rooms)
        status = classify_staffing(scheduled, targets.required, targets.preferred)
    return CellStaffing(cell=cell, targets=targets, status=status, class_groups=groups, assignments=assignments)


@dataclass(frozen=True)
class ShiftMetric:
    date: date
    time_slot_id: Any
    classroom_id: Any
    classroom_name: str
    status: StaffingStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "time_slot_id": str(self.time_slot_id),
            "classroom_id": str(self.classroom_id),
            "classroom_name": self.classroom_name,
            "required_staff": self.status.required,
            "preferred_staff": self.status.preferred,
            "scheduled_staff": self.status.scheduled,
            "status": self.status.status,
        }


def shift_metrics(
    db: Session,
    *,
    dates: Iterable[date],
    time_slot_ids: Iterable[Any],
    classroom_ids: Iterable[Any],
) -> list[ShiftMetric]:
    """Per date/slot/classroom staffing: baseline teachers (floaters weighted)
    plus active sub assignments and active flex shifts on that date."""

    dates = sorted(set(dates))
    slot_ids = list(dict.fromkeys(time_slot_ids))
    room_ids = list(dict.fromkeys(classroom_ids))
    if not dates or not slot_ids or not room_ids:
        return []

    days = load_day_lookup(db)

    cells = (
        db.execute(
            select(ScheduleCell)
            .where(ScheduleCell.is_active.is_(True))
            .where(ScheduleCell.classroom_id.in_(room_ids))
            .where(ScheduleCell.time_slot_id.in_(slot_ids))
        )
        .scalars()
        .all()
    )
    groups_by_cell = class_groups_by_cell(db, [c.id for c in cells])
    targets_by_key: dict[tuple[Any, Any, Any], StaffingTargets] = {}
    for c in cells:
        groups = groups_by_cell.get(c.id, [])
        if not c.enrollment_for_staffing or not groups:
            continue
        targets_by_key[(c.day_of_week_id, c.time_slot_id, c.classroom_id)] = staffing_targets(
            c.enrollment_for_staffing, groups
        )

    baseline: dict[tuple[Any, Any, Any], list[TeacherSchedule]] = defaultdict(list)
    for ts in (
        db.execute(
            select(TeacherSchedule)
            .where(TeacherSchedule.classroom_id.in_(room_ids))
            .where(TeacherSchedule.time_slot_id.in_(slot_ids))
        )
        .scalars()
        .all()
    ):
        baseline[(ts.day_of_week_id, ts.time_slot_id, ts.classroom_id)].append(ts)

    dated: dict[tuple[date, Any, Any], int] = defaultdict(int)
    sub_rows = db.execute(
        select(SubAssignment.date, SubAssignment.time_slot_id, SubAssignment.classroom_id)
        .where(SubAssignment.status == "active")
        .where(SubAssignment.date >= dates[0])
        .where(SubAssignment.date <= dates[-1])
    ).all()
    flex_rows = db.execute(
        select(StaffingEventShift.date, StaffingEventShift.time_slot_id, StaffingEventShift.classroom_id)
        .where(StaffingEventShift.status == "active")
        .where(StaffingEventShift.date >= dates[0])
        .where(StaffingEventShift.date <= dates[-1])
    ).all()
    for d, slot_id, room_id in list(sub_rows) + list(flex_rows):
        dated[(d, slot_id, room_id)] += 1

    room_names = {
        r.id: str(r.name)
        for r in db.execute(select(Classroom).where(Classroom.id.in_(room_ids))).scalars().all()
    }

    proportional = settings.floater_weight_mode == "proportional"
    rooms_cache: dict[tuple[Any, Any], dict[Any, int]] = {}

    out: list[ShiftMetric] = []
    for d in dates:
        day_id = days.id_for_date(d)
        for slot_id in slot_ids:
            rooms = None
            if proportional and day_id is not None:
                key = (day_id, slot_id)
                if key not in rooms_cache:
                    rooms_cache[key] = floater_room_counts(db, day_of_week_id=day_id, time_slot_id=slot_id)
                rooms = rooms_cache[key]
            for room_id in room_ids:
                targets = targets_by_key.get((day_id, slot_id, room_id), StaffingTargets(None, None))
                scheduled = count_scheduled(baseline.get((day_id, slot_id, room_id), []), floater_rooms=rooms)
                scheduled = round_one(scheduled + dated.get((d, slot_id, room_id), 0))
                out.append(
                    ShiftMetric(
                        date=d,
                        time_slot_id=slot_id,
                        classroom_id=room_id,
                        classroom_name=room_names.get(room_id, ""),
                        status=classify_staffing(scheduled, targets.required, targets.preferred),
                    )
                )
    return out


def dashboard_rollup(db: Session, *, day_of_week_id: Any | None = None) -> dict[str, Any]:
    """Baseline staffing status of every active cell, with counts per status."""

    q = select(ScheduleCell).where(ScheduleCell.is_active.is_(True))
    if day_of_week_id is not None:
        q = q.where(ScheduleCell.day_of_week_id == day_of_week_id)
    cells = db.execute(q).scalars().all()
    groups_by_cell = class_groups_by_cell(db, [c.id for c in cells])

    assignments: dict[tuple[Any, Any, Any], list[TeacherSchedule]] = defaultdict(list)
    ts_q = select(TeacherSchedule)
    if day_of_week_id is not None:
        ts_q = ts_q.where(TeacherSchedule.day_of_week_id == day_of_week_id)
    for ts in db.execute(ts_q).scalars().all():
        assignments[(ts.classroom_id, ts.day_of_week_id, ts.time_slot_id)].append(ts)

    counts = {s: 0 for s in STAFFING_STATUSES}
    rows: list[dict[str, Any]] = []
    for c in cells:
        staffing = cell_staffing(
            db,
            cell=c,
            assignments=assignments.get((c.classroom_id, c.day_of_week_id, c.time_slot_id), []),
            class_groups=groups_by_cell.get(c.id, []),
        )
        if staffing.status is None:
            continue
        counts[staffing.status.status] += 1
        rows.append(
            {
                "classroom_id": str(c.classroom_id),
                "day_of_week_id": str(c.day_of_week_id),
                "time_slot_id": str(c.time_slot_id),
                **staffing.status.to_dict(),
            }
        )

    logger.debug("Dashboard rollup: %d cells evaluated (%s)", len(rows), counts)
    return {"counts": counts, "cells": rows}
