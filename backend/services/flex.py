from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.database import is_duplicate_key_error
from models.day_of_week import DayOfWeek
from models.staff import Staff
from models.staffing_event import StaffingEvent, StaffingEventShift
from models.time_slot import TimeSlot
from services.calendar import WEEKDAY_NAMES, iter_dates, load_day_lookup, normalize_weekday, shift_key, weekday_name
from services.errors import FlexConflictError, NotFoundError, StaffingValidationError
from services.staffing import BELOW_PREFERRED, BELOW_REQUIRED, ShiftMetric, shift_metrics
from services.sub_availability import ShiftSlot, load_staff_calendar


logger = logging.getLogger(__name__)


THIS_DAY_ONLY = "this_day_only"
SPECIFIC_WEEKDAYS = "specific_weekdays"

SINGLE_SHIFT = "single_shift"
WEEKDAY = "weekday"
ALL_SHIFTS = "all_shifts"
REMOVAL_SCOPES = (SINGLE_SHIFT, WEEKDAY, ALL_SHIFTS)


def _weekday(name: str) -> str:
    try:
        return normalize_weekday(name)
    except ValueError as exc:
        raise StaffingValidationError(str(exc), code="INVALID_WEEKDAY") from exc


@dataclass(frozen=True)
class DayFilter:
    """Which dates of a range a flex assignment covers.

    ``this_day_only`` keeps one weekday (the anchor, defaulting to the start
    date's weekday); ``specific_weekdays`` keeps every listed weekday.
    """

    mode: str = THIS_DAY_ONLY
    weekdays: frozenset[str] = frozenset()

    @classmethod
    def this_day_only(cls, anchor: str | date | None = None) -> "DayFilter":
        if anchor is None:
            return cls(THIS_DAY_ONLY)
        name = weekday_name(anchor) if isinstance(anchor, date) else _weekday(anchor)
        return cls(THIS_DAY_ONLY, frozenset({name}))

    @classmethod
    def specific(cls, weekdays: Iterable[str]) -> "DayFilter":
        names = frozenset(_weekday(w) for w in weekdays)
        if not names:
            raise StaffingValidationError("Pick at least one weekday", code="NO_WEEKDAYS_SELECTED")
        return cls(SPECIFIC_WEEKDAYS, names)

    def allowed(self, start: date) -> frozenset[str]:
        if self.mode == THIS_DAY_ONLY:
            return self.weekdays or frozenset({weekday_name(start)})
        return self.weekdays

    def matches(self, value: date, *, start: date) -> bool:
        return weekday_name(value) in self.allowed(start)


def _validate_range(start: date, end: date) -> None:
    if start is None or end is None:
        raise StaffingValidationError("start_date and end_date are required", code="DATE_RANGE_REQUIRED")
    if start > end:
        raise StaffingValidationError("start_date must be on or before end_date", code="DATE_RANGE_INVERTED")


def enumerate_shift_keys(
    start: date,
    end: date,
    time_slot_ids: Iterable[Any],
    day_filter: DayFilter | None = None,
) -> list[str]:
    """``date|time_slot_id`` for every date in [start, end] that passes the filter."""

    _validate_range(start, end)
    slots = list(dict.fromkeys(str(s) for s in time_slot_ids))
    if not slots:
        raise StaffingValidationError("Pick at least one time slot", code="NO_TIME_SLOTS_SELECTED")
    day_filter = day_filter or DayFilter()

    keys: list[str] = []
    for d in iter_dates(start, end):
        if not day_filter.matches(d, start=start):
            continue
        keys.extend(shift_key(d, slot) for slot in slots)
    return keys


@dataclass(frozen=True)
class FlexShift:
    date: date
    time_slot_id: str
    classroom_id: str


def expand_shifts(keys: Iterable[str], classroom_ids: Iterable[Any]) -> list[FlexShift]:
    rooms = list(dict.fromkeys(str(c) for c in classroom_ids))
    out: list[FlexShift] = []
    for key in keys:
        day, _, slot = key.partition("|")
        d = date.fromisoformat(day)
        out.extend(FlexShift(d, slot, room) for room in rooms)
    return out


def planned_shift_count(keys: Iterable[str], classroom_ids: Iterable[Any]) -> int:
    return len(list(keys)) * len(set(str(c) for c in classroom_ids))


def staffing_warnings(
    keys: Iterable[str],
    classroom_ids: Iterable[Any],
    metrics: Iterable[ShiftMetric],
) -> dict[str, int]:
    """Advisory counts of planned shifts already below required / preferred staffing."""

    wanted = {(k, str(c)) for k in keys for c in classroom_ids}
    below_required = below_preferred = 0
    for m in metrics:
        if (shift_key(m.date, m.time_slot_id), str(m.classroom_id)) not in wanted:
            continue
        if m.status.status == BELOW_REQUIRED:
            below_required += 1
        elif m.status.status == BELOW_PREFERRED:
            below_preferred += 1
    return {"below_required": below_required, "below_preferred": below_preferred}


def _day_options(db: Session) -> list[dict[str, Any]]:
    rows = db.execute(select(DayOfWeek).order_by(DayOfWeek.day_number.asc())).scalars().all()
    return [
        {"id": str(r.id), "name": r.name, "short_name": str(r.name)[:3], "day_number": r.day_number}
        for r in rows
    ]


def flex_availability(
    db: Session,
    *,
    start: date,
    end: date,
    time_slot_ids: list[Any],
    classroom_ids: list[Any] | None = None,
) -> dict[str, Any]:
    """Which flex staff can take which shifts, plus per-shift staffing metrics and
    counts of the planned shifts already below required / preferred."""

    keys = enumerate_shift_keys(start, end, time_slot_ids, DayFilter(SPECIFIC_WEEKDAYS, frozenset(WEEKDAY_NAMES)))
    days = load_day_lookup(db)
    slot_codes = {
        str(s.id): str(s.code)
        for s in db.execute(select(TimeSlot).where(TimeSlot.id.in_(list(time_slot_ids)))).scalars().all()
    }
    slot_by_str = {str(s): s for s in time_slot_ids}

    flex_staff = (
        db.execute(
            select(Staff)
            .where(Staff.is_flexible.is_(True))
            .where(Staff.active.is_(True))
            .order_by(Staff.last_name.asc(), Staff.first_name.asc())
        )
        .scalars()
        .all()
    )

    slots: list[tuple[str, ShiftSlot]] = []
    for key in keys:
        day, _, slot = key.partition("|")
        d = date.fromisoformat(day)
        slots.append((key, ShiftSlot(date=d, day_of_week_id=days.id_for_date(d), time_slot_id=slot_by_str[slot])))

    staff_out: list[dict[str, Any]] = []
    for member in flex_staff:
        cal = load_staff_calendar(db, member.id, start=start, end=end)
        available = [key for key, s in slots if cal.evaluate(s, default_available=True).can_cover]
        staff_out.append({"id": str(member.id), "name": member.name, "available_shift_keys": available})

    metrics = shift_metrics(
        db,
        dates=[s.date for _, s in slots],
        time_slot_ids=list(time_slot_ids),
        classroom_ids=list(classroom_ids or []),
    )
    warnings = staffing_warnings(keys, classroom_ids or [], metrics)

    return {
        "staff": staff_out,
        "shifts": [
            {"date": s.date.isoformat(), "time_slot_id": str(s.time_slot_id), "time_slot_code": slot_codes.get(str(s.time_slot_id), "")}
            for _, s in slots
        ],
        "day_options": _day_options(db),
        "shift_metrics": [{**m.to_dict(), "time_slot_code": slot_codes.get(str(m.time_slot_id), "")} for m in metrics],
        "warnings": warnings,
    }


def create_flex_assignment(
    db: Session,
    *,
    staff_id: Any,
    start: date,
    end: date,
    classroom_ids: list[Any],
    time_slot_ids: list[Any],
    day_filter: DayFilter | None = None,
    shifts: list[FlexShift] | None = None,
    notes: str | None = None,
) -> tuple[StaffingEvent, int]:
    """Create the event and every shift row in one transaction, or nothing."""

    _validate_range(start, end)
    if not classroom_ids:
        raise StaffingValidationError("Pick at least one classroom", code="NO_CLASSROOMS_SELECTED")
    if not time_slot_ids:
        raise StaffingValidationError("Pick at least one time slot", code="NO_TIME_SLOTS_SELECTED")
    if db.get(Staff, staff_id) is None:
        raise NotFoundError("Staff member not found", code="STAFF_NOT_FOUND")

    if shifts:
        planned = [s for s in shifts if start <= s.date <= end]
    else:
        planned = expand_shifts(enumerate_shift_keys(start, end, time_slot_ids, day_filter), classroom_ids)
    if not planned:
        raise StaffingValidationError("No shifts matched the selected filters", code="NO_SHIFTS_SELECTED")

    days = load_day_lookup(db)
    slot_ids = {str(s): s for s in time_slot_ids}
    room_ids = {str(c): c for c in classroom_ids}

    event = StaffingEvent(
        event_type="flex_assignment",
        staff_id=staff_id,
        start_date=start,
        end_date=end,
        notes=notes,
        status="active",
    )
    db.add(event)
    db.flush()
    for s in planned:
        db.add(
            StaffingEventShift(
                staffing_event_id=event.id,
                staff_id=staff_id,
                date=s.date,
                day_of_week_id=days.id_for_date(s.date),
                time_slot_id=slot_ids.get(str(s.time_slot_id)) or uuid.UUID(str(s.time_slot_id)),
                classroom_id=room_ids.get(str(s.classroom_id)) or uuid.UUID(str(s.classroom_id)),
                status="active",
            )
        )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if is_duplicate_key_error(exc):
            raise FlexConflictError(
                "Flex assignment conflicts with an existing active assignment for this staff member"
            ) from exc
        raise
    db.refresh(event)
    logger.info("Created flex assignment %s for staff %s with %d shifts", event.id, staff_id, len(planned))
    return event, len(planned)


def _get_event(db: Session, event_id: Any) -> StaffingEvent:
    event = db.get(StaffingEvent, event_id)
    if event is None:
        raise NotFoundError("Flex assignment not found", code="FLEX_ASSIGNMENT_NOT_FOUND")
    return event


def _active_shifts(event_id: Any):
    return (
        select(StaffingEventShift)
        .where(StaffingEventShift.staffing_event_id == event_id)
        .where(StaffingEventShift.status == "active")
    )


def _active_count(db: Session, event_id: Any) -> int:
    return int(
        db.execute(
            select(func.count(StaffingEventShift.id))
            .where(StaffingEventShift.staffing_event_id == event_id)
            .where(StaffingEventShift.status == "active")
        ).scalar_one()
    )


def removal_context(
    db: Session,
    *,
    event_id: Any,
    classroom_id: Any | None = None,
    time_slot_id: Any | None = None,
) -> dict[str, Any]:
    event = _get_event(db, event_id)
    q = _active_shifts(event_id)
    if classroom_id is not None:
        q = q.where(StaffingEventShift.classroom_id == classroom_id)
    if time_slot_id is not None:
        q = q.where(StaffingEventShift.time_slot_id == time_slot_id)
    rows = db.execute(q).scalars().all()

    day_ids = {r.day_of_week_id for r in rows if r.day_of_week_id is not None}
    weekdays: list[str] = []
    if day_ids:
        weekdays = [
            str(d.name)
            for d in db.execute(
                select(DayOfWeek).where(DayOfWeek.id.in_(day_ids)).order_by(DayOfWeek.day_number.asc())
            )
            .scalars()
            .all()
        ]

    active = _active_count(db, event_id)
    return {
        "event_id": str(event.id),
        "start_date": event.start_date.isoformat(),
        "end_date": event.end_date.isoformat(),
        "weekdays": weekdays,
        "matching_shift_count": len(rows),
        "active_shift_count": active,
        "scopes": [SINGLE_SHIFT] if active <= 1 else list(REMOVAL_SCOPES),
    }


def remove_flex_shifts(
    db: Session,
    *,
    event_id: Any,
    scope: str,
    shift_date: date | None = None,
    day_of_week_id: Any | None = None,
    classroom_id: Any | None = None,
    time_slot_id: Any | None = None,
) -> dict[str, Any]:
    """Cancel flex shifts at the requested scope.

    An event with a single active shift only supports ``single_shift``; any
    other scope collapses to it. The event itself is cancelled once no
    active shift remains.
    """

    if scope not in REMOVAL_SCOPES:
        raise StaffingValidationError(f"Unknown removal scope {scope!r}", code="INVALID_SCOPE")
    event = _get_event(db, event_id)

    active_rows = db.execute(_active_shifts(event_id)).scalars().all()
    if len(active_rows) == 1 and scope != SINGLE_SHIFT:
        logger.debug("Flex event %s has one active shift; %s collapses to single_shift", event_id, scope)
        scope = SINGLE_SHIFT
        targets = list(active_rows)
    else:
        if scope in (SINGLE_SHIFT, WEEKDAY) and (classroom_id is None or time_slot_id is None):
            raise StaffingValidationError(
                "classroom_id and time_slot_id are required for this scope", code="REMOVAL_TARGET_REQUIRED"
            )
        if scope == SINGLE_SHIFT and shift_date is None:
            raise StaffingValidationError("date is required for single_shift", code="REMOVAL_TARGET_REQUIRED")
        if scope == WEEKDAY and day_of_week_id is None:
            raise StaffingValidationError(
                "day_of_week_id is required for weekday scope", code="REMOVAL_TARGET_REQUIRED"
            )

        targets = []
        for r in active_rows:
            if scope == SINGLE_SHIFT and not (
                r.date == shift_date and r.classroom_id == classroom_id and r.time_slot_id == time_slot_id
            ):
                continue
            if scope == WEEKDAY and not (
                r.day_of_week_id == day_of_week_id and r.classroom_id == classroom_id and r.time_slot_id == time_slot_id
            ):
                continue
            targets.append(r)

    if not targets:
        raise NotFoundError("No matching active shifts were found to remove", code="NO_MATCHING_SHIFTS")

    for r in targets:
        r.status = "cancelled"
    db.flush()

    remaining = _active_count(db, event_id)
    if remaining == 0:
        event.status = "cancelled"
    db.commit()

    logger.info("Removed %d flex shifts from event %s (scope=%s, remaining=%d)", len(targets), event_id, scope, remaining)
    return {
        "removed_count": len(targets),
        "remaining_active_shifts": remaining,
        "scope": scope,
        "event_status": event.status,
    }


def cancel_flex_event(db: Session, *, event_id: Any) -> StaffingEvent:
    event = _get_event(db, event_id)
    event.status = "cancelled"
    for r in db.execute(_active_shifts(event_id)).scalars().all():
        r.status = "cancelled"
    db.commit()
    db.refresh(event)
    return event
