from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.coverage_request import CoverageRequest, CoverageRequestShift
from models.schedule_cell import ScheduleCell
from models.sub_assignment import SubAssignment
from models.teacher_schedule import TeacherSchedule
from models.time_off import TimeOffRequest, TimeOffShift
from models.time_slot import TimeSlot
from services.calendar import iter_dates, load_day_lookup, shift_key
from services.errors import NotFoundError
from services.lifecycle import ensure_transition
from services.ratios import authoritative_class_group
from services.staffing import class_groups_by_cell


logger = logging.getLogger(__name__)


UNCOVERED = "uncovered"
PARTIALLY_COVERED = "partially_covered"
FULLY_COVERED = "fully_covered"


def get_absence(db: Session, absence_id: Any) -> TimeOffRequest:
    absence = db.get(TimeOffRequest, absence_id)
    if absence is None:
        raise NotFoundError("Time off request not found", code="TIME_OFF_NOT_FOUND")
    return absence


def get_coverage_request(db: Session, coverage_request_id: Any) -> CoverageRequest:
    request = db.get(CoverageRequest, coverage_request_id)
    if request is None:
        raise NotFoundError("Coverage request not found", code="COVERAGE_REQUEST_NOT_FOUND")
    return request


def _baseline_placement(db: Session, teacher_id: Any) -> dict[tuple[Any, Any], tuple[Any, Any]]:
    """(day, slot) -> (classroom, class group) from the teacher's baseline schedule."""

    rows = (
        db.execute(
            select(TeacherSchedule)
            .where(TeacherSchedule.teacher_id == teacher_id)
            .order_by(TeacherSchedule.is_floater.asc(), TeacherSchedule.created_at.asc())
        )
        .scalars()
        .all()
    )
    placement: dict[tuple[Any, Any], Any] = {}
    for r in rows:
        placement.setdefault((r.day_of_week_id, r.time_slot_id), r.classroom_id)
    if not placement:
        return {}

    cells = (
        db.execute(select(ScheduleCell).where(ScheduleCell.classroom_id.in_(set(placement.values()))))
        .scalars()
        .all()
    )
    groups = class_groups_by_cell(db, [c.id for c in cells])
    group_by_key = {}
    for c in cells:
        g = authoritative_class_group(groups.get(c.id, []))
        group_by_key[(c.classroom_id, c.day_of_week_id, c.time_slot_id)] = g.id if g is not None else None

    return {
        (day_id, slot_id): (room_id, group_by_key.get((room_id, day_id, slot_id)))
        for (day_id, slot_id), room_id in placement.items()
    }


def ensure_coverage_request(db: Session, absence: TimeOffRequest) -> CoverageRequest:
    """Return the absence's coverage request, creating it (and its shifts) on first use."""

    if absence.coverage_request_id is not None:
        existing = db.get(CoverageRequest, absence.coverage_request_id)
        if existing is not None:
            return existing

    start = absence.start_date
    end = absence.end_date or absence.start_date
    request = CoverageRequest(
        request_type="time_off",
        source_request_id=absence.id,
        teacher_id=absence.teacher_id,
        start_date=start,
        end_date=end,
        status="open",
    )
    db.add(request)
    db.flush()

    days = load_day_lookup(db)
    placement = _baseline_placement(db, absence.teacher_id)
    time_off_shifts = (
        db.execute(
            select(TimeOffShift)
            .where(TimeOffShift.time_off_request_id == absence.id)
            .order_by(TimeOffShift.date.asc())
        )
        .scalars()
        .all()
    )
    for s in time_off_shifts:
        day_id = s.day_of_week_id or days.id_for_date(s.date)
        room_id, group_id = placement.get((day_id, s.time_slot_id), (None, None))
        db.add(
            CoverageRequestShift(
                coverage_request_id=request.id,
                date=s.date,
                day_of_week_id=day_id,
                time_slot_id=s.time_slot_id,
                classroom_id=room_id,
                class_group_id=group_id,
                is_partial=bool(s.is_partial),
                status="active",
            )
        )
    absence.coverage_request_id = request.id
    db.flush()
    refresh_request_status(db, request)
    db.commit()
    db.refresh(request)
    logger.info("Created coverage request %s for absence %s (%d shifts)", request.id, absence.id, len(time_off_shifts))
    return request


def active_shifts(db: Session, coverage_request_id: Any) -> list[CoverageRequestShift]:
    return (
        db.execute(
            select(CoverageRequestShift)
            .where(CoverageRequestShift.coverage_request_id == coverage_request_id)
            .where(CoverageRequestShift.status == "active")
            .order_by(CoverageRequestShift.date.asc())
        )
        .scalars()
        .all()
    )


def slot_codes(db: Session, slot_ids) -> dict[Any, str]:
    ids = list(set(slot_ids))
    if not ids:
        return {}
    return {s.id: str(s.code) for s in db.execute(select(TimeSlot).where(TimeSlot.id.in_(ids))).scalars().all()}


def active_assignments(db: Session, request: CoverageRequest) -> list[SubAssignment]:
    """Active sub assignments covering this request's teacher within its date range."""

    return (
        db.execute(
            select(SubAssignment)
            .where(SubAssignment.teacher_id == request.teacher_id)
            .where(SubAssignment.status == "active")
            .where(SubAssignment.date >= request.start_date)
            .where(SubAssignment.date <= request.end_date)
        )
        .scalars()
        .all()
    )


def assignments_by_shift(
    shifts: list[CoverageRequestShift],
    assignments: list[SubAssignment],
) -> dict[Any, list[SubAssignment]]:
    """Match assignments to shifts by shift id, falling back to date and slot."""

    by_id = {s.id: s for s in shifts}
    by_key: dict[tuple, list[CoverageRequestShift]] = defaultdict(list)
    for s in shifts:
        by_key[(s.date, s.time_slot_id)].append(s)

    out: dict[Any, list[SubAssignment]] = defaultdict(list)
    for a in assignments:
        if a.coverage_request_shift_id in by_id:
            out[a.coverage_request_shift_id].append(a)
            continue
        for s in by_key.get((a.date, a.time_slot_id), []):
            out[s.id].append(a)
    return out


def shift_coverage_status(assignments: list[SubAssignment]) -> str:
    if not assignments:
        return UNCOVERED
    if any(not a.is_partial for a in assignments):
        return FULLY_COVERED
    return PARTIALLY_COVERED


@dataclass(frozen=True)
class CoverageCounts:
    total_shifts: int
    uncovered_shifts: int
    partial_shifts: int
    assigned_shifts: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total_shifts": self.total_shifts,
            "uncovered_shifts": self.uncovered_shifts,
            "partial_shifts": self.partial_shifts,
            "assigned_shifts": self.assigned_shifts,
        }


def coverage_counts(statuses: list[str]) -> CoverageCounts:
    return CoverageCounts(
        total_shifts=len(statuses),
        uncovered_shifts=sum(1 for s in statuses if s == UNCOVERED),
        partial_shifts=sum(1 for s in statuses if s == PARTIALLY_COVERED),
        assigned_shifts=sum(1 for s in statuses if s == FULLY_COVERED),
    )


def coverage_details(db: Session, request: CoverageRequest) -> dict[str, Any]:
    shifts = active_shifts(db, request.id)
    codes = slot_codes(db, [s.time_slot_id for s in shifts])
    matched = assignments_by_shift(shifts, active_assignments(db, request))

    details: list[dict[str, Any]] = []
    shift_map: dict[str, str] = {}
    statuses: list[str] = []
    for s in shifts:
        code = codes.get(s.time_slot_id, "")
        status = shift_coverage_status(matched.get(s.id, []))
        statuses.append(status)
        details.append(
            {
                "id": str(s.id),
                "date": s.date.isoformat(),
                "day_of_week_id": str(s.day_of_week_id) if s.day_of_week_id else None,
                "time_slot_id": str(s.time_slot_id),
                "time_slot_code": code,
                "classroom_id": str(s.classroom_id) if s.classroom_id else None,
                "class_group_id": str(s.class_group_id) if s.class_group_id else None,
                "is_partial": bool(s.is_partial),
                "status": status,
                "assigned_sub_ids": sorted({str(a.sub_id) for a in matched.get(s.id, [])}),
            }
        )
        shift_map[f"{shift_key(s.date, code)}|{s.classroom_id or ''}"] = str(s.id)
        shift_map.setdefault(shift_key(s.date, code), str(s.id))

    return {
        "coverage_request_id": str(request.id),
        "status": request.status,
        "shift_details": details,
        "shift_map": shift_map,
        **coverage_counts(statuses).to_dict(),
    }


def remaining_shifts(db: Session, request: CoverageRequest) -> dict[str, Any]:
    """Shift keys (``date|time_slot_code``) not yet held by any sub.

    Deduplicated by key, so several classrooms sharing a date and slot count once.
    """

    shifts = active_shifts(db, request.id)
    codes = slot_codes(db, [s.time_slot_id for s in shifts])
    coverage_keys = list(dict.fromkeys(shift_key(s.date, codes.get(s.time_slot_id, "")) for s in shifts))

    assignments = active_assignments(db, request)
    codes.update(slot_codes(db, [a.time_slot_id for a in assignments if a.time_slot_id not in codes]))
    wanted = set(coverage_keys)
    assigned: list[dict[str, Any]] = []
    assigned_keys: set[str] = set()
    for a in assignments:
        key = shift_key(a.date, codes.get(a.time_slot_id, ""))
        if key not in wanted:
            continue
        assigned_keys.add(key)
        assigned.append(
            {
                "id": str(a.id),
                "sub_id": str(a.sub_id),
                "date": a.date.isoformat(),
                "time_slot_code": codes.get(a.time_slot_id, ""),
                "coverage_request_shift_id": str(a.coverage_request_shift_id) if a.coverage_request_shift_id else None,
            }
        )

    remaining = [k for k in coverage_keys if k not in assigned_keys]
    return {
        "assigned_shifts": assigned,
        "remaining_shift_keys": remaining,
        "remaining_shift_count": len(remaining),
        "total_shifts": len(coverage_keys),
    }


def refresh_request_status(db: Session, request: CoverageRequest) -> str:
    """Move the request to ``filled`` when nothing is outstanding, back to ``open`` otherwise."""

    if request.status == "cancelled":
        return request.status
    summary = remaining_shifts(db, request)
    new = "filled" if summary["total_shifts"] > 0 and summary["remaining_shift_count"] == 0 else "open"
    if new != request.status:
        ensure_transition("coverage_request", request.status, new)
        logger.debug("Coverage request %s: %s -> %s", request.id, request.status, new)
        request.status = new
    return request.status


def cancel_absence(db: Session, absence: TimeOffRequest) -> TimeOffRequest:
    """Cancel an absence along with its coverage request, shifts and sub assignments."""

    ensure_transition("time_off", absence.status, "cancelled")
    absence.status = "cancelled"

    if absence.coverage_request_id is not None:
        request = db.get(CoverageRequest, absence.coverage_request_id)
        if request is not None:
            for a in active_assignments(db, request):
                a.status = "cancelled"
            for s in active_shifts(db, request.id):
                s.status = "cancelled"
            ensure_transition("coverage_request", request.status, "cancelled")
            request.status = "cancelled"
    db.commit()
    db.refresh(absence)
    return absence


def scheduled_shifts_in_range(db: Session, teacher_id: Any, start: date, end: date) -> list[tuple[date, Any, Any]]:
    """(date, day_of_week_id, time_slot_id) for every baseline shift of the teacher in [start, end]."""

    days = load_day_lookup(db)
    slots_by_day: dict[Any, list[Any]] = defaultdict(list)
    for day_id, slot_id in db.execute(
        select(TeacherSchedule.day_of_week_id, TeacherSchedule.time_slot_id)
        .where(TeacherSchedule.teacher_id == teacher_id)
        .distinct()
    ).all():
        slots_by_day[day_id].append(slot_id)

    out: list[tuple[date, Any, Any]] = []
    for d in iter_dates(start, end):
        day_id = days.id_for_date(d)
        out.extend((d, day_id, slot_id) for slot_id in slots_by_day.get(day_id, []))
    return out
