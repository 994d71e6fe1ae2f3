from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.database import is_duplicate_key_error
from models.classroom import Classroom
from models.staff import Staff
from models.teacher_schedule import TeacherSchedule
from services.audit import log_audit_event
from services.errors import StaffingValidationError, UnresolvedConflictsError
from services.snapshot import AssignmentSnapshot, CellRef, load_snapshot


logger = logging.getLogger(__name__)


REMOVE_OTHER = "remove_other"
CANCEL = "cancel"
MARK_FLOATER = "mark_floater"
RESOLUTIONS = (REMOVE_OTHER, CANCEL, MARK_FLOATER)


@dataclass(frozen=True)
class Conflict:
    teacher_id: Any
    day_of_week_id: Any
    time_slot_id: Any
    target_classroom_id: Any
    conflicting_classroom_id: Any
    conflicting_assignment_id: Any
    teacher_name: str | None = None
    conflicting_classroom_name: str | None = None

    @property
    def key(self) -> tuple[Any, Any, Any, Any]:
        return (self.teacher_id, self.day_of_week_id, self.time_slot_id, self.target_classroom_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "teacher_id": str(self.teacher_id),
            "teacher_name": self.teacher_name,
            "day_of_week_id": str(self.day_of_week_id),
            "time_slot_id": str(self.time_slot_id),
            "target_classroom_id": str(self.target_classroom_id),
            "conflicting_classroom_id": str(self.conflicting_classroom_id),
            "conflicting_classroom_name": self.conflicting_classroom_name,
            "conflicting_assignment_id": str(self.conflicting_assignment_id),
        }


@dataclass(frozen=True)
class ResolutionRequest:
    teacher_id: Any
    day_of_week_id: Any
    time_slot_id: Any
    target_classroom_id: Any
    resolution: str
    teacher_name: str | None = None

    @property
    def key(self) -> tuple[Any, Any, Any, Any]:
        return (self.teacher_id, self.day_of_week_id, self.time_slot_id, self.target_classroom_id)


@dataclass
class ResolutionResult:
    resolution: str
    teacher_id: Any
    created_id: Any | None = None
    deleted_ids: list[Any] = field(default_factory=list)
    updated_ids: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolution": self.resolution,
            "teacher_id": str(self.teacher_id),
            "created_id": str(self.created_id) if self.created_id else None,
            "deleted_ids": [str(i) for i in self.deleted_ids],
            "updated_ids": [str(i) for i in self.updated_ids],
        }


def detect_conflicts(
    snapshot: AssignmentSnapshot,
    cell: CellRef,
    teacher_ids: Iterable[Any],
    *,
    teacher_names: Mapping[Any, str] | None = None,
    classroom_names: Mapping[Any, str] | None = None,
) -> list[Conflict]:
    """Non-floater assignments of the same teacher, day and slot in another classroom."""

    teacher_names = teacher_names or {}
    classroom_names = classroom_names or {}
    out: list[Conflict] = []
    for teacher_id in dict.fromkeys(teacher_ids):
        for row in snapshot.for_teacher_slot(teacher_id, cell.day_of_week_id, cell.time_slot_id):
            if row.classroom_id == cell.classroom_id or row.is_floater:
                continue
            out.append(
                Conflict(
                    teacher_id=teacher_id,
                    day_of_week_id=cell.day_of_week_id,
                    time_slot_id=cell.time_slot_id,
                    target_classroom_id=cell.classroom_id,
                    conflicting_classroom_id=row.classroom_id,
                    conflicting_assignment_id=row.id,
                    teacher_name=teacher_names.get(teacher_id),
                    conflicting_classroom_name=classroom_names.get(row.classroom_id),
                )
            )
    return out


def require_resolutions(
    conflicts: list[Conflict],
    resolutions: Mapping[tuple[Any, Any, Any, Any], str],
) -> list[ResolutionRequest]:
    """All-or-nothing gate: every conflict needs a resolution before anything is written.

    Conflicts sharing a (teacher, day, slot, target classroom) key collapse
    into one request, so each resolution is issued exactly once.
    """

    missing = [c for c in conflicts if c.key not in resolutions]
    if missing:
        raise UnresolvedConflictsError(missing)

    requests: dict[tuple, ResolutionRequest] = {}
    for c in conflicts:
        choice = resolutions[c.key]
        if choice not in RESOLUTIONS:
            raise StaffingValidationError(
                f"Unknown conflict resolution {choice!r} for {c.teacher_name or c.teacher_id}",
                code="INVALID_RESOLUTION",
            )
        if c.key not in requests:
            requests[c.key] = ResolutionRequest(
                teacher_id=c.teacher_id,
                day_of_week_id=c.day_of_week_id,
                time_slot_id=c.time_slot_id,
                target_classroom_id=c.target_classroom_id,
                resolution=choice,
                teacher_name=c.teacher_name,
            )
    return list(requests.values())


def staff_names(db: Session, staff_ids: Iterable[Any]) -> dict[Any, str]:
    ids = list(dict.fromkeys(staff_ids))
    if not ids:
        return {}
    return {s.id: s.name for s in db.execute(select(Staff).where(Staff.id.in_(ids))).scalars().all()}


def classroom_names(db: Session, classroom_ids: Iterable[Any]) -> dict[Any, str]:
    ids = list(dict.fromkeys(classroom_ids))
    if not ids:
        return {}
    return {
        c.id: str(c.name)
        for c in db.execute(select(Classroom).where(Classroom.id.in_(ids))).scalars().all()
    }


def find_conflicts(db: Session, *, checks: Iterable[tuple[Any, CellRef]]) -> list[Conflict]:
    """Conflicts for (teacher_id, target cell) pairs, with display names filled in."""

    checks = list(checks)
    if not checks:
        return []
    snapshot = load_snapshot(
        db,
        day_of_week_ids={cell.day_of_week_id for _, cell in checks},
        time_slot_ids={cell.time_slot_id for _, cell in checks},
    )
    by_cell: dict[CellRef, list[Any]] = defaultdict(list)
    for teacher_id, cell in checks:
        by_cell[cell].append(teacher_id)

    found: list[Conflict] = []
    for cell, teacher_ids in by_cell.items():
        found.extend(detect_conflicts(snapshot, cell, teacher_ids))
    if not found:
        return []

    teachers = staff_names(db, [c.teacher_id for c in found])
    rooms = classroom_names(db, [c.conflicting_classroom_id for c in found])
    return [
        Conflict(
            teacher_id=c.teacher_id,
            day_of_week_id=c.day_of_week_id,
            time_slot_id=c.time_slot_id,
            target_classroom_id=c.target_classroom_id,
            conflicting_classroom_id=c.conflicting_classroom_id,
            conflicting_assignment_id=c.conflicting_assignment_id,
            teacher_name=teachers.get(c.teacher_id, "Unknown"),
            conflicting_classroom_name=rooms.get(c.conflicting_classroom_id, "Unknown"),
        )
        for c in found
    ]


def _ensure_target(db: Session, req: ResolutionRequest, *, is_floater: bool, result: ResolutionResult) -> None:
    existing = (
        db.execute(
            select(TeacherSchedule)
            .where(TeacherSchedule.teacher_id == req.teacher_id)
            .where(TeacherSchedule.classroom_id == req.target_classroom_id)
            .where(TeacherSchedule.day_of_week_id == req.day_of_week_id)
            .where(TeacherSchedule.time_slot_id == req.time_slot_id)
        )
        .scalars()
        .first()
    )
    if existing is not None:
        if bool(existing.is_floater) != is_floater:
            existing.is_floater = is_floater
            result.updated_ids.append(existing.id)
        result.created_id = existing.id
        return

    row = TeacherSchedule(
        teacher_id=req.teacher_id,
        classroom_id=req.target_classroom_id,
        day_of_week_id=req.day_of_week_id,
        time_slot_id=req.time_slot_id,
        is_floater=is_floater,
    )
    db.add(row)
    db.flush()
    result.created_id = row.id


def _apply_resolution(db: Session, req: ResolutionRequest) -> ResolutionResult:
    result = ResolutionResult(resolution=req.resolution, teacher_id=req.teacher_id)

    if req.resolution == CANCEL:
        log_audit_event(
            db,
            action="conflict_resolved",
            category="teacher_schedule",
            entity_type="teacher_schedule",
            details={
                "teacher_id": req.teacher_id,
                "canceled": True,
                "would_have_added_to_classroom_id": req.target_classroom_id,
                "day_of_week_id": req.day_of_week_id,
                "time_slot_id": req.time_slot_id,
                "reason": "conflict_resolution_cancel",
            },
            commit=False,
        )
        db.commit()
        return result

    others = (
        db.execute(
            select(TeacherSchedule)
            .where(TeacherSchedule.teacher_id == req.teacher_id)
            .where(TeacherSchedule.day_of_week_id == req.day_of_week_id)
            .where(TeacherSchedule.time_slot_id == req.time_slot_id)
            .where(TeacherSchedule.classroom_id != req.target_classroom_id)
            .where(TeacherSchedule.is_floater.is_(False))
        )
        .scalars()
        .all()
    )

    if req.resolution == REMOVE_OTHER:
        for row in others:
            result.deleted_ids.append(row.id)
            db.delete(row)
        _ensure_target(db, req, is_floater=False, result=result)
    else:
        for row in others:
            row.is_floater = True
            result.updated_ids.append(row.id)
        _ensure_target(db, req, is_floater=True, result=result)

    log_audit_event(
        db,
        action="conflict_resolved",
        category="teacher_schedule",
        entity_type="teacher_schedule",
        entity_id=result.created_id,
        details={
            "teacher_id": req.teacher_id,
            "target_classroom_id": req.target_classroom_id,
            "day_of_week_id": req.day_of_week_id,
            "time_slot_id": req.time_slot_id,
            "reason": f"conflict_resolution_{req.resolution}",
            "deleted_ids": result.deleted_ids,
            "updated_ids": result.updated_ids,
        },
        commit=False,
    )
    db.commit()
    return result


def resolve_conflict(db: Session, req: ResolutionRequest) -> ResolutionResult:
    """Apply one resolution as a single idempotent request.

    Replaying a request converges on the same end state: the other rows are
    gone (or floaters) and the target row exists with the right flag. A
    duplicate-key race on the target row is retried once.
    """

    if req.resolution not in RESOLUTIONS:
        raise StaffingValidationError(f"Unknown conflict resolution {req.resolution!r}", code="INVALID_RESOLUTION")

    try:
        result = _apply_resolution(db, req)
    except IntegrityError as exc:
        db.rollback()
        if not is_duplicate_key_error(exc):
            raise
        logger.info("Duplicate target row while resolving conflict for teacher %s; retrying", req.teacher_id)
        result = _apply_resolution(db, req)

    logger.debug("Resolved conflict %s for teacher %s: %s", req.resolution, req.teacher_id, result.to_dict())
    return result
