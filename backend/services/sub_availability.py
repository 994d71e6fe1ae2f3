from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.staffing_event import StaffingEventShift
from models.sub_assignment import SubAssignment
from models.sub_availability import SubAvailability, SubAvailabilityException, SubClassGroupQualification
from models.teacher_schedule import TeacherSchedule
from models.time_off import TimeOffRequest, TimeOffShift


UNAVAILABLE = "unavailable"
QUALIFICATION_MISMATCH = "qualification_mismatch"
SCHEDULE_CONFLICT = "schedule_conflict"
SUB_CONFLICT = "sub_conflict"
TIME_OFF = "time_off"

# Hard conflicts (already teaching or subbing elsewhere, or out) can never be overridden.
OVERRIDABLE_REASONS = frozenset({UNAVAILABLE, QUALIFICATION_MISMATCH})

REASON_LABELS = {
    UNAVAILABLE: "Not available",
    QUALIFICATION_MISMATCH: "Not qualified for class",
    SCHEDULE_CONFLICT: "Has scheduled shift",
    SUB_CONFLICT: "Already subbing elsewhere",
    TIME_OFF: "Has time off",
}


def is_overridable(reason: str | None) -> bool:
    return reason in OVERRIDABLE_REASONS


@dataclass(frozen=True)
class ShiftSlot:
    date: date
    day_of_week_id: Any
    time_slot_id: Any
    classroom_id: Any | None = None
    class_group_id: Any | None = None
    id: Any | None = None


@dataclass(frozen=True)
class ShiftAvailability:
    shift: ShiftSlot
    can_cover: bool
    reason: str | None = None

    @property
    def overridable(self) -> bool:
        return not self.can_cover and is_overridable(self.reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "coverage_request_shift_id": str(self.shift.id) if self.shift.id else None,
            "date": self.shift.date.isoformat(),
            "time_slot_id": str(self.shift.time_slot_id),
            "can_cover": self.can_cover,
            "reason": self.reason,
            "reason_label": REASON_LABELS.get(self.reason) if self.reason else None,
            "overridable": self.overridable,
        }


@dataclass
class StaffCalendar:
    """Everything that decides whether one staff member can take a shift in a date range."""

    staff_id: Any
    weekly: dict[tuple[Any, Any], bool] = field(default_factory=dict)
    exceptions: dict[tuple[date, Any], bool] = field(default_factory=dict)
    scheduled: set[tuple[Any, Any]] = field(default_factory=set)
    time_off: set[tuple[date, Any]] = field(default_factory=set)
    sub_shifts: set[tuple[date, Any]] = field(default_factory=set)
    flex_shifts: set[tuple[date, Any]] = field(default_factory=set)
    qualified_group_ids: set[Any] = field(default_factory=set)

    @property
    def has_availability_data(self) -> bool:
        return bool(self.weekly or self.exceptions)

    def is_available(self, shift_date: date, day_of_week_id: Any, time_slot_id: Any, *, default: bool) -> bool:
        exception = self.exceptions.get((shift_date, time_slot_id))
        if exception is not None:
            return exception
        if not self.has_availability_data:
            return default
        return self.weekly.get((day_of_week_id, time_slot_id), False)

    def evaluate(self, shift: ShiftSlot, *, default_available: bool = False) -> ShiftAvailability:
        dated = (shift.date, shift.time_slot_id)
        if (shift.day_of_week_id, shift.time_slot_id) in self.scheduled:
            return ShiftAvailability(shift, False, SCHEDULE_CONFLICT)
        if dated in self.sub_shifts or dated in self.flex_shifts:
            return ShiftAvailability(shift, False, SUB_CONFLICT)
        if dated in self.time_off:
            return ShiftAvailability(shift, False, TIME_OFF)
        if not self.is_available(shift.date, shift.day_of_week_id, shift.time_slot_id, default=default_available):
            return ShiftAvailability(shift, False, UNAVAILABLE)
        if (
            shift.class_group_id is not None
            and self.qualified_group_ids
            and shift.class_group_id not in self.qualified_group_ids
        ):
            return ShiftAvailability(shift, False, QUALIFICATION_MISMATCH)
        return ShiftAvailability(shift, True, None)


def load_staff_calendar(
    db: Session,
    staff_id: Any,
    *,
    start: date,
    end: date,
    covering_teacher_id: Any | None = None,
) -> StaffCalendar:
    """Load availability facts for ``staff_id`` between ``start`` and ``end``.

    Sub assignments covering ``covering_teacher_id`` are the request being
    worked on, not a conflict, so they are left out.
    """

    cal = StaffCalendar(staff_id=staff_id)

    for row in db.execute(select(SubAvailability).where(SubAvailability.sub_id == staff_id)).scalars().all():
        if row.available:
            cal.weekly[(row.day_of_week_id, row.time_slot_id)] = True

    for row in (
        db.execute(
            select(SubAvailabilityException)
            .where(SubAvailabilityException.sub_id == staff_id)
            .where(SubAvailabilityException.date >= start)
            .where(SubAvailabilityException.date <= end)
        )
        .scalars()
        .all()
    ):
        cal.exceptions[(row.date, row.time_slot_id)] = bool(row.available)

    cal.scheduled = {
        (day_id, slot_id)
        for day_id, slot_id in db.execute(
            select(TeacherSchedule.day_of_week_id, TeacherSchedule.time_slot_id).where(
                TeacherSchedule.teacher_id == staff_id
            )
        ).all()
    }

    cal.time_off = {
        (d, slot_id)
        for d, slot_id in db.execute(
            select(TimeOffShift.date, TimeOffShift.time_slot_id)
            .join(TimeOffRequest, TimeOffRequest.id == TimeOffShift.time_off_request_id)
            .where(TimeOffRequest.teacher_id == staff_id)
            .where(TimeOffRequest.status != "cancelled")
            .where(TimeOffShift.date >= start)
            .where(TimeOffShift.date <= end)
        ).all()
    }

    sub_q = (
        select(SubAssignment.date, SubAssignment.time_slot_id)
        .where(SubAssignment.sub_id == staff_id)
        .where(SubAssignment.status == "active")
        .where(SubAssignment.date >= start)
        .where(SubAssignment.date <= end)
    )
    if covering_teacher_id is not None:
        sub_q = sub_q.where(SubAssignment.teacher_id != covering_teacher_id)
    cal.sub_shifts = {(d, slot_id) for d, slot_id in db.execute(sub_q).all()}

    cal.flex_shifts = {
        (d, slot_id)
        for d, slot_id in db.execute(
            select(StaffingEventShift.date, StaffingEventShift.time_slot_id)
            .where(StaffingEventShift.staff_id == staff_id)
            .where(StaffingEventShift.status == "active")
            .where(StaffingEventShift.date >= start)
            .where(StaffingEventShift.date <= end)
        ).all()
    }

    cal.qualified_group_ids = set(
        db.execute(
            select(SubClassGroupQualification.class_group_id).where(SubClassGroupQualification.sub_id == staff_id)
        )
        .scalars()
        .all()
    )
    return cal
