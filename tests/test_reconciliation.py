"""
Tests for roster reconciliation and the multi-cell batch apply.

Run: pytest tests/test_reconciliation.py -v
"""

import itertools
from dataclasses import replace

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from models.schedule_cell import ScheduleCell
from models.teacher_schedule import TeacherSchedule
from services.cells import CellEdit, DesiredTeacher
from services.errors import BatchApplyError, StaffingValidationError, UnresolvedConflictsError, WriteFailedError
from services.reconciliation import (
    BatchLog,
    SqlAssignmentStore,
    apply_roster_batch,
    execute_cell_plan,
    plan_cell_reconciliation,
    reconcile_cell,
)
from services.roster_cache import RosterCache, sql_roster_loader
from services.snapshot import AssignmentRow, CellRef


CELL = CellRef("infant-room", "monday", "am")
OTHER = CellRef("toddler-room", "monday", "am")


def _row(id, teacher, *, cell=CELL, floater=False):
    return AssignmentRow(id, teacher, cell.classroom_id, cell.day_of_week_id, cell.time_slot_id, floater)


class MemoryStore:
    """In-memory assignment store that enforces one row per teacher and cell."""

    def __init__(self, rows=()):
        self.rows = {r.id: r for r in rows}
        self._ids = itertools.count(100)

    def list_for_cell(self, cell):
        return [r for r in self.rows.values() if r.cell == cell]

    def create(self, cell, teacher_id, is_floater):
        if any(r.cell == cell and r.teacher_id == teacher_id for r in self.rows.values()):
            raise IntegrityError(
                "INSERT INTO teacher_schedules",
                {},
                Exception("UNIQUE constraint failed: teacher_schedules.teacher_id"),
            )
        row = _row(next(self._ids), teacher_id, cell=cell, floater=is_floater)
        self.rows[row.id] = row
        return row

    def update_floater(self, assignment_id, is_floater):
        row = self.rows.get(assignment_id)
        if row is None:
            return None
        self.rows[assignment_id] = replace(row, is_floater=is_floater)
        return self.rows[assignment_id]

    def delete(self, assignment_id):
        self.rows.pop(assignment_id, None)


class SilentUpdateStore(MemoryStore):
    """Reports success on update without returning the row."""

    def update_floater(self, assignment_id, is_floater):
        return None


class BrokenCreateStore(MemoryStore):
    def create(self, cell, teacher_id, is_floater):
        raise OperationalError("INSERT INTO teacher_schedules", {}, Exception("disk I/O error"))


# =============================================================================
# Planning
# =============================================================================

class TestPlanCellReconciliation:
    """Diff of current rows against the desired roster for one cell."""

    def test_replaces_removed_teacher_and_adds_new_one(self):
        """A (floater), B -> B, C: delete A, create C, keep B untouched."""
        current = [_row(1, "A", floater=True), _row(2, "B")]
        desired = [DesiredTeacher("B"), DesiredTeacher("C")]

        plan = plan_cell_reconciliation(CELL, current, desired)

        assert [r.teacher_id for r in plan.deletes] == ["A"]
        assert [d.teacher_id for d in plan.creates] == ["C"]
        assert plan.updates == ()

    def test_floater_flag_change_is_an_update(self):
        plan = plan_cell_reconciliation(CELL, [_row(1, "A")], [DesiredTeacher("A", is_floater=True)])
        assert plan.deletes == ()
        assert plan.creates == ()
        assert plan.updates == ((_row(1, "A"), True),)

    def test_rows_from_other_cells_are_ignored(self):
        plan = plan_cell_reconciliation(CELL, [_row(1, "A", cell=OTHER)], [])
        assert plan.is_empty

    def test_duplicate_rows_for_a_teacher_are_deleted(self):
        plan = plan_cell_reconciliation(CELL, [_row(1, "A"), _row(2, "A")], [DesiredTeacher("A")])
        assert [r.id for r in plan.deletes] == [2]
        assert plan.creates == ()

    def test_empty_desired_roster_deletes_everything(self):
        plan = plan_cell_reconciliation(CELL, [_row(1, "A"), _row(2, "B")], [])
        assert len(plan.deletes) == 2

    def test_without_creates_skips_listed_teachers(self):
        plan = plan_cell_reconciliation(CELL, [], [DesiredTeacher("A"), DesiredTeacher("B")])
        assert [d.teacher_id for d in plan.without_creates(["A"]).creates] == ["B"]


# =============================================================================
# Executing a plan
# =============================================================================

class TestExecuteCellPlan:
    def test_replanning_after_execution_is_empty(self):
        store = MemoryStore([_row(1, "A", floater=True), _row(2, "B")])
        desired = [DesiredTeacher("B", is_floater=True), DesiredTeacher("C")]

        reconcile_cell(store, CELL, desired)

        assert plan_cell_reconciliation(CELL, store.list_for_cell(CELL), desired).is_empty
        assert {(r.teacher_id, r.is_floater) for r in store.list_for_cell(CELL)} == {("B", True), ("C", False)}

    def test_duplicate_create_counts_as_created(self):
        """Losing an insert race to an identical row is not a failure."""
        store = MemoryStore([_row(1, "A")])
        plan = plan_cell_reconciliation(CELL, [], [DesiredTeacher("A")])
        log = BatchLog()

        execute_cell_plan(store, plan, log)

        assert log.to_list()[0]["status"] == "ok"
        assert log.to_list()[0]["detail"] == "already existed"
        assert len(store.list_for_cell(CELL)) == 1

    def test_unapplied_update_is_a_failure(self):
        store = SilentUpdateStore([_row(1, "A")])
        plan = plan_cell_reconciliation(CELL, store.list_for_cell(CELL), [DesiredTeacher("A", is_floater=True)])
        log = BatchLog()

        with pytest.raises(WriteFailedError) as excinfo:
            execute_cell_plan(store, plan, log, teacher_names={"A": "Alice Adams"})

        assert excinfo.value.context["teacher_name"] == "Alice Adams"
        assert log.to_list()[-1]["status"] == "failed"

    def test_failed_create_stops_the_plan(self):
        store = BrokenCreateStore([_row(1, "A")])
        plan = plan_cell_reconciliation(CELL, store.list_for_cell(CELL), [DesiredTeacher("B")])
        log = BatchLog()

        with pytest.raises(WriteFailedError):
            execute_cell_plan(store, plan, log)

        steps = log.to_list()
        assert [(s["step"], s["status"]) for s in steps] == [
            ("delete_assignment", "ok"),
            ("create_assignment", "failed"),
        ]


# =============================================================================
# Batch apply against the database
# =============================================================================

def _count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def _edit(world, room, day_id, teachers, *, enrollment=10, groups=None):
    return CellEdit(
        cell=CellRef(room.id, day_id, world.am.id),
        enrollment_for_staffing=enrollment,
        class_group_ids=[g.id for g in (groups or [world.toddlers])],
        teachers=[DesiredTeacher(t.id) for t in teachers],
    )


class TestApplyRosterBatch:
    """Validate, snapshot, gate on conflicts, then write."""

    def test_missing_class_groups_fails_before_any_write(self, db, world):
        edit = CellEdit(cell=CellRef(world.toddler_room.id, world.monday, world.am.id), teachers=[])

        with pytest.raises(StaffingValidationError) as excinfo:
            apply_roster_batch(db, edits=[edit])

        assert excinfo.value.code == "CELL_MISSING_CLASS_GROUPS"
        assert _count(db, ScheduleCell) == 0

    def test_unresolved_conflict_writes_nothing(self, db, world, assign):
        assign(world.alice, world.infant_room, world.monday, world.am)

        with pytest.raises(UnresolvedConflictsError) as excinfo:
            apply_roster_batch(db, edits=[_edit(world, world.toddler_room, world.monday, [world.alice, world.bob])])

        conflicts = excinfo.value.to_dict()["conflicts"]
        assert len(conflicts) == 1
        assert conflicts[0]["teacher_name"] == "Alice Adams"
        assert conflicts[0]["conflicting_classroom_name"] == "Infant Room"
        assert _count(db, ScheduleCell) == 0
        assert _count(db, TeacherSchedule) == 1

    def test_floater_elsewhere_is_not_a_conflict(self, db, world, assign):
        assign(world.alice, world.infant_room, world.monday, world.am, is_floater=True)

        result = apply_roster_batch(db, edits=[_edit(world, world.toddler_room, world.monday, [world.alice])])

        assert result.resolutions == []
        assert _count(db, TeacherSchedule) == 2

    def test_remove_other_moves_the_teacher(self, db, world, assign):
        assign(world.alice, world.infant_room, world.monday, world.am)
        key = (world.alice.id, world.monday, world.am.id, world.toddler_room.id)

        result = apply_roster_batch(
            db,
            edits=[_edit(world, world.toddler_room, world.monday, [world.alice, world.bob])],
            resolutions={key: "remove_other"},
        )

        rows = db.execute(select(TeacherSchedule)).scalars().all()
        assert {(r.teacher_id, r.classroom_id) for r in rows} == {
            (world.alice.id, world.toddler_room.id),
            (world.bob.id, world.toddler_room.id),
        }
        assert [s["step"] for s in result.steps].count("resolve_conflict") == 1
        assert result.resolutions[0]["resolution"] == "remove_other"

    def test_mark_floater_keeps_both_rows_as_floaters(self, db, world, assign):
        assign(world.alice, world.infant_room, world.monday, world.am)
        key = (world.alice.id, world.monday, world.am.id, world.toddler_room.id)

        apply_roster_batch(
            db,
            edits=[_edit(world, world.toddler_room, world.monday, [world.alice])],
            resolutions={key: "mark_floater"},
        )

        rows = db.execute(select(TeacherSchedule).where(TeacherSchedule.teacher_id == world.alice.id)).scalars().all()
        assert len(rows) == 2
        assert all(r.is_floater for r in rows)

    def test_cancel_drops_the_teacher_from_the_edit(self, db, world, assign):
        assign(world.alice, world.infant_room, world.monday, world.am)
        key = (world.alice.id, world.monday, world.am.id, world.toddler_room.id)

        apply_roster_batch(
            db,
            edits=[_edit(world, world.toddler_room, world.monday, [world.alice, world.bob])],
            resolutions={key: "cancel"},
        )

        toddler_rows = (
            db.execute(select(TeacherSchedule).where(TeacherSchedule.classroom_id == world.toddler_room.id))
            .scalars()
            .all()
        )
        assert [r.teacher_id for r in toddler_rows] == [world.bob.id]
        assert _count(db, TeacherSchedule) == 2

    def test_one_resolution_per_conflicting_cell(self, db, world, assign):
        """Same slot across two days: one conflict and one resolution request per day."""
        assign(world.alice, world.infant_room, world.monday, world.am)
        assign(world.alice, world.infant_room, world.tuesday, world.am)
        edits = [
            _edit(world, world.toddler_room, world.monday, [world.alice]),
            _edit(world, world.toddler_room, world.tuesday, [world.alice]),
        ]
        resolutions = {
            (world.alice.id, day, world.am.id, world.toddler_room.id): "remove_other"
            for day in (world.monday, world.tuesday)
        }

        result = apply_roster_batch(db, edits=edits, resolutions=resolutions)

        assert [s["step"] for s in result.steps].count("resolve_conflict") == 2
        assert len(result.resolutions) == 2

    def test_projected_shortage_is_a_warning(self, db, world):
        """Toddlers 1:5 with 10 children and one teacher is below required, but still saved."""
        result = apply_roster_batch(db, edits=[_edit(world, world.toddler_room, world.monday, [world.bob])])

        assert len(result.warnings) == 1
        assert result.warnings[0]["status"] == "below_required"
        assert _count(db, TeacherSchedule) == 1

    def test_roster_untouched_when_teachers_is_none(self, db, world, assign):
        assign(world.bob, world.toddler_room, world.monday, world.am)
        edit = _edit(world, world.toddler_room, world.monday, [])
        edit.teachers = None

        result = apply_roster_batch(db, edits=[edit])

        assert _count(db, TeacherSchedule) == 1
        assert result.steps[-1]["status"] == "skipped"

    def test_rosters_are_reread_through_the_cache(self, db, world):
        cache = RosterCache(sql_roster_loader(db), refetch_delay=0, stale_grace=5.0)
        edit = _edit(world, world.toddler_room, world.monday, [world.bob, world.carol])

        result = apply_roster_batch(db, edits=[edit], cache=cache)

        roster = result.rosters[edit.cell.key]
        assert {r["teacher_id"] for r in roster} == {str(world.bob.id), str(world.carol.id)}

    def test_lagging_empty_reread_keeps_the_saved_roster(self, db, world, assign):
        """A store that has not caught up returns [] after a non-empty save; the saved roster wins."""
        assign(world.bob, world.toddler_room, world.monday, world.am)
        cache = RosterCache(lambda key: [], refetch_delay=0, stale_grace=60.0)
        edit = _edit(world, world.toddler_room, world.monday, [world.bob, world.carol])

        result = apply_roster_batch(db, edits=[edit], cache=cache)

        roster = result.rosters[edit.cell.key]
        assert {r["teacher_id"] for r in roster} == {str(world.bob.id), str(world.carol.id)}
        assert _count(db, TeacherSchedule) == 2

    def test_emptied_cell_rereads_as_empty(self, db, world, assign):
        assign(world.bob, world.toddler_room, world.monday, world.am)
        cache = RosterCache(lambda key: [], refetch_delay=0, stale_grace=60.0)
        edit = _edit(world, world.toddler_room, world.monday, [])

        result = apply_roster_batch(db, edits=[edit], cache=cache)

        assert result.rosters[edit.cell.key] == []

    def test_write_failure_reports_partial_progress(self, db, world):
        store = BrokenCreateStore()

        with pytest.raises(BatchApplyError) as excinfo:
            apply_roster_batch(db, edits=[_edit(world, world.toddler_room, world.monday, [world.bob])], store=store)

        steps = excinfo.value.steps
        assert steps[0] == {
            "step": "upsert_cell",
            "status": "ok",
            "cell": "Toddler Room / %s / %s" % (world.monday, world.am.id),
            "teacher": None,
            "detail": None,
        }
        assert steps[-1]["status"] == "failed"
        assert steps[-1]["teacher"] == "Bob Brown"
        # Earlier steps stay applied.
        assert _count(db, ScheduleCell) == 1


class TestSqlAssignmentStore:
    def test_duplicate_insert_is_reported_as_duplicate(self, db, world, assign):
        assign(world.bob, world.toddler_room, world.monday, world.am)
        store = SqlAssignmentStore(db)
        cell = CellRef(world.toddler_room.id, world.monday, world.am.id)
        plan = plan_cell_reconciliation(cell, [], [DesiredTeacher(world.bob.id)])
        log = BatchLog()

        execute_cell_plan(store, plan, log)

        assert log.to_list()[0]["detail"] == "already existed"
        assert len(store.list_for_cell(cell)) == 1
