from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from models.coverage_request import CoverageRequest, CoverageRequestShift
from models.staff import Staff
from models.sub_assignment import SubAssignment
from models.substitute_contact import SubContactShiftOverride
from services.audit import log_audit_event
from services.conflicts import staff_names
from services.coverage import (
    active_assignments,
    active_shifts,
    assignments_by_shift,
    ensure_coverage_request,
    get_absence,
    get_coverage_request,
    refresh_request_status,
)
from services.errors import (
    AssignmentNotActiveError,
    ConfirmationRequiredError,
    NotFoundError,
    ShiftHeldError,
    ShiftNotAssignableError,
    StaffingValidationError,
)
from services.lifecycle import ensure_transition
from services.sub_availability import REASON_LABELS, ShiftSlot, load_staff_calendar
from services.sub_contacts import (
    CONFIRMED,
    find_contact,
    apply_contact_status,
    contact_overrides,
    get_or_create_contact,
)


logger = logging.getLogger(__name__)


SINGLE = "single"
ALL_FOR_ABSENCE = "all_for_absence"
UNASSIGN_SCOPES = (SINGLE, ALL_FOR_ABSENCE)

CONFIRMATION_CHOICES = ("confirm_and_assign", "assign_without_confirming")


def _slot(shift: CoverageRequestShift) -> ShiftSlot:
    return ShiftSlot(
        date=shift.date,
        day_of_week_id=shift.day_of_week_id,
        time_slot_id=shift.time_slot_id,
        classroom_id=shift.classroom_id,
        class_group_id=shift.class_group_id,
        id=shift.id,
    )


def sub_availability(db: Session, *, coverage_request_id: Any, sub_id: Any) -> list[dict[str, Any]]:
    """can_cover / reason for every active shift of the request, with override flags."""

    request = get_coverage_request(db, coverage_request_id)
    shifts = active_shifts(db, request.id)
    cal = load_staff_calendar(
        db, sub_id, start=request.start_date, end=request.end_date, covering_teacher_id=request.teacher_id
    )
    contact = get_or_create_contact(db, coverage_request_id=request.id, sub_id=sub_id)
    overridden = {o.coverage_request_shift_id for o in contact_overrides(db, contact.id) if o.override_availability}

    out: list[dict[str, Any]] = []
    for s in shifts:
        verdict = cal.evaluate(_slot(s))
        out.append({**verdict.to_dict(), "override_applied": s.id in overridden and verdict.overridable})
    return out


def assign_sub_shifts(
    db: Session,
    *,
    coverage_request_id: Any,
    sub_id: Any,
    selected_shift_ids: list[Any],
    confirm: bool | None = None,
    swap: bool = False,
) -> dict[str, Any]:
    """Assign ``sub_id`` to the selected coverage shifts.

    Every shift must be coverable, or unavailable for an overridable reason
    that the director overrode. A shift another sub holds needs ``swap=True``.
    When the sub has not confirmed yet, ``confirm`` must say whether to mark
    them confirmed (True) or assign without confirming (False).
    """

    if not selected_shift_ids:
        raise StaffingValidationError("Select at least one shift to assign", code="NO_SHIFTS_SELECTED")

    request = get_coverage_request(db, coverage_request_id)
    if request.status == "cancelled":
        raise StaffingValidationError("Coverage request is cancelled", code="COVERAGE_REQUEST_CANCELLED")

    wanted = set(selected_shift_ids)
    shifts = [s for s in active_shifts(db, request.id) if s.id in wanted]
    if not shifts:
        raise NotFoundError("No valid shifts found for assignment", code="NO_VALID_SHIFTS")

    contact = get_or_create_contact(db, coverage_request_id=request.id, sub_id=sub_id)
    overrides = {o.coverage_request_shift_id: o for o in contact_overrides(db, contact.id)}

    cal = load_staff_calendar(
        db, sub_id, start=request.start_date, end=request.end_date, covering_teacher_id=request.teacher_id
    )
    blocked: list[dict[str, Any]] = []
    for s in shifts:
        verdict = cal.evaluate(_slot(s))
        if verdict.can_cover:
            continue
        o = overrides.get(s.id)
        if verdict.overridable and o is not None and o.override_availability:
            continue
        blocked.append(
            {
                "coverage_request_shift_id": str(s.id),
                "date": s.date.isoformat(),
                "reason": verdict.reason,
                "reason_label": REASON_LABELS.get(verdict.reason or ""),
                "overridable": verdict.overridable,
            }
        )
    if blocked:
        raise ShiftNotAssignableError(
            "Some selected shifts cannot be assigned to this sub",
            details={"shifts": blocked},
        )

    held = assignments_by_shift(shifts, active_assignments(db, request))
    to_cancel: list[SubAssignment] = []
    to_create: list[CoverageRequestShift] = []
    holders: list[tuple[Any, SubAssignment]] = []
    for s in shifts:
        current = held.get(s.id, [])
        if any(a.sub_id == sub_id for a in current):
            continue
        if current:
            holders.extend((s.id, a) for a in current)
            to_cancel.extend(current)
        to_create.append(s)

    if holders and not swap:
        names = staff_names(db, [a.sub_id for _, a in holders])
        raise ShiftHeldError(
            "Another sub already holds one or more of these shifts; swap to reassign",
            details={
                "holders": [
                    {
                        "coverage_request_shift_id": str(shift_id),
                        "assignment_id": str(a.id),
                        "sub_id": str(a.sub_id),
                        "sub_name": names.get(a.sub_id),
                    }
                    for shift_id, a in holders
                ]
            },
        )

    if contact.response_status in ("none", "pending"):
        if confirm is None:
            raise ConfirmationRequiredError(
                "This sub has not confirmed yet",
                details={"choices": list(CONFIRMATION_CHOICES), "contact_id": str(contact.id)},
            )
        if confirm:
            apply_contact_status(contact, CONFIRMED)

    cancelled_ids: list[Any] = []
    for a in to_cancel:
        ensure_transition("sub_assignment", a.status, "cancelled")
        a.status = "cancelled"
        cancelled_ids.append(a.id)

    created: list[SubAssignment] = []
    for s in to_create:
        o = overrides.get(s.id)
        row = SubAssignment(
            sub_id=sub_id,
            teacher_id=request.teacher_id,
            coverage_request_shift_id=s.id,
            date=s.date,
            day_of_week_id=s.day_of_week_id,
            time_slot_id=s.time_slot_id,
            classroom_id=s.classroom_id,
            assignment_type="Substitute Shift",
            is_partial=bool(o.is_partial) if o is not None else bool(s.is_partial),
            status="active",
        )
        db.add(row)
        created.append(row)
        if o is None:
            o = SubContactShiftOverride(substitute_contact_id=contact.id, coverage_request_shift_id=s.id)
            db.add(o)
        o.selected = True
    db.flush()

    refresh_request_status(db, request)
    log_audit_event(
        db,
        action="assign",
        category="sub_assignment",
        entity_type="coverage_request",
        entity_id=request.id,
        details={
            "sub_id": sub_id,
            "teacher_id": request.teacher_id,
            "assignment_ids": [a.id for a in created],
            "swapped_assignment_ids": cancelled_ids,
            "confirmed": contact.response_status == CONFIRMED,
        },
        commit=False,
    )
    db.commit()
    logger.info(
        "Assigned sub %s to %d shifts on coverage request %s (%d swapped)",
        sub_id,
        len(created),
        request.id,
        len(cancelled_ids),
    )
    return {
        "assigned_shifts": [
            {
                "id": str(a.id),
                "coverage_request_shift_id": str(a.coverage_request_shift_id),
                "date": a.date.isoformat(),
                "time_slot_id": str(a.time_slot_id),
                "classroom_id": str(a.classroom_id) if a.classroom_id else None,
                "is_partial": bool(a.is_partial),
            }
            for a in created
        ],
        "swapped_assignment_ids": [str(i) for i in cancelled_ids],
        "coverage_request_status": request.status,
        "response_status": contact.response_status,
    }


def unassign_shifts(
    db: Session,
    *,
    absence_id: Any,
    sub_id: Any,
    scope: str,
    assignment_id: Any | None = None,
    coverage_request_shift_id: Any | None = None,
) -> dict[str, Any]:
    if scope not in UNASSIGN_SCOPES:
        raise StaffingValidationError(f"Unknown scope {scope!r}", code="INVALID_SCOPE")
    if scope == SINGLE and assignment_id is None and coverage_request_shift_id is None:
        raise StaffingValidationError(
            "assignment_id or coverage_request_shift_id is required for single removal",
            code="REMOVAL_TARGET_REQUIRED",
        )

    absence = get_absence(db, absence_id)
    request: CoverageRequest = ensure_coverage_request(db, absence)
    shifts = active_shifts(db, request.id)
    matched = assignments_by_shift(shifts, [a for a in active_assignments(db, request) if a.sub_id == sub_id])
    mine: dict[Any, SubAssignment] = {}
    for rows in matched.values():
        for a in rows:
            mine[a.id] = a

    if scope == SINGLE:
        targets = [
            a
            for a in mine.values()
            if (assignment_id is not None and a.id == assignment_id)
            or (assignment_id is None and a.coverage_request_shift_id == coverage_request_shift_id)
        ]
        if not targets:
            raise AssignmentNotActiveError("That assignment is no longer active for this time off request")
    else:
        targets = list(mine.values())
        if not targets:
            raise AssignmentNotActiveError("No active assignments found for this sub on this time off request")

    for a in targets:
        ensure_transition("sub_assignment", a.status, "cancelled")
        a.status = "cancelled"
    db.flush()

    # Deselect the freed shifts so the contact panel reflects the removal.
    freed = {a.coverage_request_shift_id for a in targets if a.coverage_request_shift_id is not None}
    contact = find_contact(db, request.id, sub_id)
    if freed and contact is not None:
        for o in contact_overrides(db, contact.id):
            if o.coverage_request_shift_id in freed:
                o.selected = False

    refresh_request_status(db, request)
    log_audit_event(
        db,
        action="unassign",
        category="sub_assignment",
        entity_type="time_off_request",
        entity_id=absence.id,
        details={
            "scope": scope,
            "sub_id": sub_id,
            "teacher_id": absence.teacher_id,
            "assignment_ids": [a.id for a in targets],
            "removed_count": len(targets),
        },
        commit=False,
    )
    db.commit()
    logger.info("Unassigned %d shifts for sub %s on absence %s (scope=%s)", len(targets), sub_id, absence.id, scope)
    return {
        "removed_count": len(targets),
        "scope": scope,
        "coverage_request_status": request.status,
    }


def candidate_subs(db: Session, *, coverage_request_id: Any, include_flexible: bool = False) -> list[dict[str, Any]]:
    """Active subs ranked by how many of the request's active shifts they can cover."""

    request = get_coverage_request(db, coverage_request_id)
    shifts = active_shifts(db, request.id)
    if not shifts:
        return []

    q = select(Staff).where(Staff.active.is_(True)).where(Staff.id != request.teacher_id)
    if include_flexible:
        q = q.where(or_(Staff.is_sub.is_(True), Staff.is_flexible.is_(True)))
    else:
        q = q.where(Staff.is_sub.is_(True))
    subs = db.execute(q).scalars().all()

    slots = [_slot(s) for s in shifts]
    out: list[dict[str, Any]] = []
    for sub in subs:
        cal = load_staff_calendar(
            db, sub.id, start=request.start_date, end=request.end_date, covering_teacher_id=request.teacher_id
        )
        verdicts = [cal.evaluate(s) for s in slots]
        out.append(
            {
                "id": str(sub.id),
                "name": sub.name,
                "can_cover_count": sum(1 for v in verdicts if v.can_cover),
                "overridable_count": sum(1 for v in verdicts if v.overridable),
                "total_shifts": len(verdicts),
                "can_cover_shift_ids": [str(v.shift.id) for v in verdicts if v.can_cover],
            }
        )
    out.sort(key=lambda c: (-c["can_cover_count"], -c["overridable_count"], c["name"].lower()))
    return out
