from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.database import is_duplicate_key_error
from models.class_group import ClassGroup
from models.teacher_schedule import TeacherSchedule
from services.cells import CellEdit, DesiredTeacher, upsert_cell, validate_cell_edit
from services.conflicts import (
    CANCEL,
    MARK_FLOATER,
    Conflict,
    ResolutionRequest,
    classroom_names,
    detect_conflicts,
    require_resolutions,
    resolve_conflict,
    staff_names,
)
from services.errors import BatchApplyError, StaffingError, WriteFailedError
from services.ratios import staffing_targets
from services.roster_cache import RosterCache, RosterEntry
from services.snapshot import AssignmentRow, AssignmentSnapshot, CellRef, load_snapshot
from services.staffing import StaffingStatus, class_groups_by_cell, classify_staffing, count_scheduled


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CellPlan:
    cell: CellRef
    deletes: tuple[AssignmentRow, ...] = ()
    creates: tuple[DesiredTeacher, ...] = ()
    updates: tuple[tuple[AssignmentRow, bool], ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.deletes or self.creates or self.updates)

    def without_creates(self, teacher_ids: Iterable[Any]) -> "CellPlan":
        skip = set(teacher_ids)
        return CellPlan(
            cell=self.cell,
            deletes=self.deletes,
            creates=tuple(c for c in self.creates if c.teacher_id not in skip),
            updates=self.updates,
        )


def plan_cell_reconciliation(
    cell: CellRef,
    current: Iterable[AssignmentRow],
    desired: Iterable[DesiredTeacher],
) -> CellPlan:
    """Diff the current rows of one cell against the desired roster.

    Teachers not desired are deleted, new ones created with their requested
    floater flag, and kept ones updated only when the flag differs. Running the
    plan and re-planning against the result yields an empty plan.
    """

    wanted: dict[Any, DesiredTeacher] = {}
    for d in desired:
        wanted.setdefault(d.teacher_id, d)

    present: dict[Any, AssignmentRow] = {}
    deletes: list[AssignmentRow] = []
    for row in current:
        if row.cell != cell:
            continue
        if row.teacher_id not in wanted or row.teacher_id in present:
            deletes.append(row)
            continue
        present[row.teacher_id] = row

    creates = [d for tid, d in wanted.items() if tid not in present]
    updates = [
        (present[tid], bool(d.is_floater))
        for tid, d in wanted.items()
        if tid in present and bool(present[tid].is_floater) != bool(d.is_floater)
    ]
    return CellPlan(cell=cell, deletes=tuple(deletes), creates=tuple(creates), updates=tuple(updates))


class AssignmentStore(Protocol):
    def list_for_cell(self, cell: CellRef) -> list[AssignmentRow]: ...

    def create(self, cell: CellRef, teacher_id: Any, is_floater: bool) -> AssignmentRow: ...

    def update_floater(self, assignment_id: Any, is_floater: bool) -> AssignmentRow | None: ...

    def delete(self, assignment_id: Any) -> None: ...


class SqlAssignmentStore:
    """TeacherSchedule rows behind the store protocol. Every write commits on its own."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def list_for_cell(self, cell: CellRef) -> list[AssignmentRow]:
        rows = (
            self.db.execute(
                select(TeacherSchedule)
                .where(TeacherSchedule.classroom_id == cell.classroom_id)
                .where(TeacherSchedule.day_of_week_id == cell.day_of_week_id)
                .where(TeacherSchedule.time_slot_id == cell.time_slot_id)
            )
            .scalars()
            .all()
        )
        return [AssignmentRow.from_model(r) for r in rows]

    def create(self, cell: CellRef, teacher_id: Any, is_floater: bool) -> AssignmentRow:
        row = TeacherSchedule(
            teacher_id=teacher_id,
            classroom_id=cell.classroom_id,
            day_of_week_id=cell.day_of_week_id,
            time_slot_id=cell.time_slot_id,
            is_floater=bool(is_floater),
        )
        self.db.add(row)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(row)
        return AssignmentRow.from_model(row)

    def update_floater(self, assignment_id: Any, is_floater: bool) -> AssignmentRow | None:
        row = self.db.get(TeacherSchedule, assignment_id)
        if row is None:
            return None
        row.is_floater = bool(is_floater)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(row)
        return AssignmentRow.from_model(row)

    def delete(self, assignment_id: Any) -> None:
        row = self.db.get(TeacherSchedule, assignment_id)
        if row is None:
            return
        self.db.delete(row)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise


@dataclass
class StepResult:
    step: str
    status: str  # ok | skipped | failed
    cell: str | None = None
    teacher: str | None = None
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "status": self.status,
            "cell": self.cell,
            "teacher": self.teacher,
            "detail": self.detail,
        }


class BatchLog:
    """Ordered record of every step a batch attempted."""

    def __init__(self) -> None:
        self.steps: list[StepResult] = []

    def ok(self, step: str, **kw: Any) -> None:
        self.steps.append(StepResult(step=step, status="ok", **kw))
        logger.debug("step ok: %s %s", step, kw)

    def skipped(self, step: str, **kw: Any) -> None:
        self.steps.append(StepResult(step=step, status="skipped", **kw))

    def failed(self, step: str, **kw: Any) -> None:
        self.steps.append(StepResult(step=step, status="failed", **kw))
        logger.warning("step failed: %s %s", step, kw)

    def to_list(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self.steps]


def execute_cell_plan(
    store: AssignmentStore,
    plan: CellPlan,
    log: BatchLog,
    *,
    teacher_names: Mapping[Any, str] | None = None,
    cell_label: str | None = None,
) -> None:
    """Apply a plan write by write. Stops at the first failure with WriteFailedError."""

    teacher_names = teacher_names or {}
    label = cell_label or plan.cell.describe()

    def _name(teacher_id: Any) -> str:
        return teacher_names.get(teacher_id) or str(teacher_id)

    def _fail(step: str, teacher_id: Any, exc: BaseException | None, message: str) -> WriteFailedError:
        log.failed(step, cell=label, teacher=_name(teacher_id), detail=str(exc) if exc else message)
        return WriteFailedError(
            message,
            context={"teacher_id": str(teacher_id), "teacher_name": _name(teacher_id), "cell": label},
        )

    for row in plan.deletes:
        try:
            store.delete(row.id)
        except SQLAlchemyError as exc:
            raise _fail("delete_assignment", row.teacher_id, exc, f"Failed to remove {_name(row.teacher_id)} from {label}") from exc
        log.ok("delete_assignment", cell=label, teacher=_name(row.teacher_id))

    for d in plan.creates:
        try:
            store.create(plan.cell, d.teacher_id, d.is_floater)
        except IntegrityError as exc:
            if not is_duplicate_key_error(exc):
                raise _fail("create_assignment", d.teacher_id, exc, f"Failed to add {_name(d.teacher_id)} to {label}") from exc
            logger.info("Assignment for %s in %s already exists; treating as created", _name(d.teacher_id), label)
            log.ok("create_assignment", cell=label, teacher=_name(d.teacher_id), detail="already existed")
            continue
        except SQLAlchemyError as exc:
            raise _fail("create_assignment", d.teacher_id, exc, f"Failed to add {_name(d.teacher_id)} to {label}") from exc
        log.ok("create_assignment", cell=label, teacher=_name(d.teacher_id))

    for row, is_floater in plan.updates:
        try:
            updated = store.update_floater(row.id, is_floater)
        except SQLAlchemyError as exc:
            raise _fail("update_floater", row.teacher_id, exc, f"Failed to update {_name(row.teacher_id)} in {label}") from exc
        if updated is None or bool(updated.is_floater) != bool(is_floater):
            raise _fail(
                "update_floater",
                row.teacher_id,
                None,
                f"Update for {_name(row.teacher_id)} in {label} was not applied",
            )
        log.ok("update_floater", cell=label, teacher=_name(row.teacher_id))


def reconcile_cell(
    store: AssignmentStore,
    cell: CellRef,
    desired: Iterable[DesiredTeacher],
    *,
    log: BatchLog | None = None,
    teacher_names: Mapping[Any, str] | None = None,
) -> CellPlan:
    """Single-cell save: read current rows, plan, execute."""

    plan = plan_cell_reconciliation(cell, store.list_for_cell(cell), desired)
    execute_cell_plan(store, plan, log or BatchLog(), teacher_names=teacher_names)
    return plan


@dataclass
class BatchResult:
    cells: list[CellRef] = field(default_factory=list)
    steps: list[dict[str, Any]] = field(default_factory=list)
    resolutions: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[dict[str, Any]] = field(default_factory=list)
    rosters: dict[tuple, list[dict[str, Any]]] = field(default_factory=dict)


def _roster_entry(row: AssignmentRow) -> RosterEntry:
    return RosterEntry(assignment_id=row.id, teacher_id=row.teacher_id, is_floater=bool(row.is_floater))


def _projected_status(edit: CellEdit, groups: list[ClassGroup]) -> StaffingStatus | None:
    if not edit.is_active or edit.teachers is None or not groups:
        return None
    targets = staffing_targets(edit.enrollment_for_staffing, groups)
    if targets.required is None:
        return None
    scheduled = count_scheduled({"teacher_id": t.teacher_id, "is_floater": t.is_floater} for t in edit.teachers)
    return classify_staffing(scheduled, targets.required, targets.preferred)


def _desired_after_resolutions(
    edit: CellEdit,
    requests: list[ResolutionRequest],
) -> tuple[list[DesiredTeacher], set[Any]]:
    """Desired roster once resolutions are taken into account, plus the teachers
    whose target row the resolution already wrote."""

    here = (edit.cell.day_of_week_id, edit.cell.time_slot_id, edit.cell.classroom_id)
    mine = {r.teacher_id: r for r in requests if r.key[1:] == here}
    desired: list[DesiredTeacher] = []
    handled: set[Any] = set()
    for t in edit.teachers or []:
        req = mine.get(t.teacher_id)
        if req is None:
            desired.append(t)
            continue
        if req.resolution == CANCEL:
            continue
        handled.add(t.teacher_id)
        desired.append(DesiredTeacher(t.teacher_id, is_floater=req.resolution == MARK_FLOATER))
    return desired, handled


def apply_roster_batch(
    db: Session,
    *,
    edits: list[CellEdit],
    resolutions: Mapping[tuple[Any, Any, Any, Any], str] | None = None,
    store: AssignmentStore | None = None,
    cache: RosterCache | None = None,
) -> BatchResult:
    """Apply one roster edit to many cells as an explicit saga.

    Order: validate every cell; read one shared snapshot; detect conflicts and
    refuse to write anything while any lacks a resolution; upsert cells; issue
    one resolution request per conflict; reconcile each cell. Writes are not
    rolled back: the first failure raises BatchApplyError carrying the step log.
    """

    resolutions = resolutions or {}
    store = store or SqlAssignmentStore(db)
    log = BatchLog()
    result = BatchResult(cells=[e.cell for e in edits])

    if not edits:
        return result

    all_teacher_ids = [t.teacher_id for e in edits for t in (e.teachers or [])]
    names = staff_names(db, all_teacher_ids)
    rooms = classroom_names(db, [e.cell.classroom_id for e in edits])

    def _label(cell: CellRef) -> str:
        return cell.describe(rooms)

    for edit in edits:
        validate_cell_edit(edit, label=_label(edit.cell))

    snapshot: AssignmentSnapshot = load_snapshot(
        db,
        day_of_week_ids={e.cell.day_of_week_id for e in edits},
        time_slot_ids={e.cell.time_slot_id for e in edits},
    )
    rooms.update(classroom_names(db, {r.classroom_id for r in snapshot.rows} - set(rooms)))

    conflicts: list[Conflict] = []
    for edit in edits:
        if not edit.teachers:
            continue
        already_here = {r.teacher_id for r in snapshot.for_cell(edit.cell)}
        incoming = [t.teacher_id for t in edit.teachers if t.teacher_id not in already_here]
        conflicts.extend(
            detect_conflicts(snapshot, edit.cell, incoming, teacher_names=names, classroom_names=rooms)
        )
    requests = require_resolutions(conflicts, resolutions)

    if cache is not None:
        # Pre-save rosters, so an empty re-read right after the save is recognised as stale.
        for edit in edits:
            if edit.teachers is not None:
                cache.put(edit.cell.key, [_roster_entry(r) for r in snapshot.for_cell(edit.cell)])

    groups_by_cell: dict[Any, list[ClassGroup]] = {}
    try:
        for edit in edits:
            try:
                row = upsert_cell(db, edit)
            except SQLAlchemyError as exc:
                db.rollback()
                log.failed("upsert_cell", cell=_label(edit.cell), detail=str(exc))
                raise WriteFailedError(f"Failed to save cell {_label(edit.cell)}", context={"cell": _label(edit.cell)}) from exc
            log.ok("upsert_cell", cell=_label(edit.cell))
            groups_by_cell[edit.cell] = class_groups_by_cell(db, [row.id]).get(row.id, [])

        for req in requests:
            cell = CellRef(req.target_classroom_id, req.day_of_week_id, req.time_slot_id)
            teacher = req.teacher_name or names.get(req.teacher_id) or str(req.teacher_id)
            try:
                outcome = resolve_conflict(db, req)
            except (SQLAlchemyError, StaffingError) as exc:
                db.rollback()
                log.failed("resolve_conflict", cell=_label(cell), teacher=teacher, detail=str(exc))
                raise WriteFailedError(
                    f"Failed to resolve conflict for {teacher}",
                    context={"teacher_id": str(req.teacher_id), "teacher_name": teacher, "cell": _label(cell)},
                ) from exc
            log.ok("resolve_conflict", cell=_label(cell), teacher=teacher, detail=req.resolution)
            result.resolutions.append(outcome.to_dict())

        for edit in edits:
            if edit.teachers is None:
                log.skipped("reconcile_cell", cell=_label(edit.cell), detail="roster unchanged")
                continue
            desired, handled = _desired_after_resolutions(edit, requests)
            plan = plan_cell_reconciliation(edit.cell, snapshot.for_cell(edit.cell), desired).without_creates(handled)
            execute_cell_plan(store, plan, log, teacher_names=names, cell_label=_label(edit.cell))
            if cache is not None:
                cache.invalidate(edit.cell.key, saved_empty=not desired)
                kept = {r.teacher_id: r.id for r in snapshot.for_cell(edit.cell)}
                cache.record_saved(
                    edit.cell.key,
                    [RosterEntry(kept.get(t.teacher_id), t.teacher_id, bool(t.is_floater)) for t in desired],
                )

            status = _projected_status(
                CellEdit(
                    cell=edit.cell,
                    is_active=edit.is_active,
                    enrollment_for_staffing=edit.enrollment_for_staffing,
                    teachers=desired,
                ),
                groups_by_cell.get(edit.cell, []),
            )
            if status is not None and status.status != "adequate":
                result.warnings.append({"cell": _label(edit.cell), **status.to_dict()})
    except WriteFailedError as exc:
        raise BatchApplyError(
            f"{exc.message}. Earlier steps were applied; reopen the affected cells to review.",
            steps=log.to_list(),
        ) from exc

    if cache is not None:
        touched = [e.cell.key for e in edits if e.teachers is not None]
        for key, roster in cache.refetch_many(touched).items():
            result.rosters[key] = [
                {
                    "id": str(r.assignment_id) if r.assignment_id is not None else None,
                    "teacher_id": str(r.teacher_id),
                    "is_floater": r.is_floater,
                }
                for r in roster
            ]

    result.steps = log.to_list()
    logger.info("Applied roster batch to %d cells (%d steps)", len(edits), len(result.steps))
    return result
