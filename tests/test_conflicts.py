"""
Tests for cross-classroom conflict detection and the three resolutions.

Run: pytest tests/test_conflicts.py -v
"""

import pytest
from sqlalchemy import func, select

from models.audit_log import AuditLog
from models.teacher_schedule import TeacherSchedule
from services.conflicts import (
    Conflict,
    ResolutionRequest,
    detect_conflicts,
    find_conflicts,
    require_resolutions,
    resolve_conflict,
)
from services.errors import StaffingValidationError, UnresolvedConflictsError
from services.snapshot import AssignmentRow, AssignmentSnapshot, CellRef


def _request(world, resolution):
    return ResolutionRequest(
        teacher_id=world.alice.id,
        day_of_week_id=world.monday,
        time_slot_id=world.am.id,
        target_classroom_id=world.toddler_room.id,
        resolution=resolution,
    )


def _alice_rows(db, world):
    return (
        db.execute(select(TeacherSchedule).where(TeacherSchedule.teacher_id == world.alice.id))
        .scalars()
        .all()
    )


def _state(db, world):
    return sorted((str(r.classroom_id), bool(r.is_floater)) for r in _alice_rows(db, world))


# =============================================================================
# Detection
# =============================================================================

class TestDetectConflicts:
    """Only non-floater rows in another classroom at the same day/slot conflict."""

    TARGET = CellRef("toddler", "mon", "am")

    def test_non_floater_elsewhere_conflicts(self):
        snapshot = AssignmentSnapshot([AssignmentRow(1, "alice", "infant", "mon", "am", False)])
        found = detect_conflicts(snapshot, self.TARGET, ["alice"], classroom_names={"infant": "Infant Room"})
        assert len(found) == 1
        assert found[0].conflicting_classroom_name == "Infant Room"

    def test_floater_elsewhere_does_not_conflict(self):
        snapshot = AssignmentSnapshot([AssignmentRow(1, "alice", "infant", "mon", "am", True)])
        assert detect_conflicts(snapshot, self.TARGET, ["alice"]) == []

    def test_same_classroom_does_not_conflict(self):
        snapshot = AssignmentSnapshot([AssignmentRow(1, "alice", "toddler", "mon", "am", False)])
        assert detect_conflicts(snapshot, self.TARGET, ["alice"]) == []

    def test_other_slot_does_not_conflict(self):
        snapshot = AssignmentSnapshot([AssignmentRow(1, "alice", "infant", "mon", "pm", False)])
        assert detect_conflicts(snapshot, self.TARGET, ["alice"]) == []

    def test_find_conflicts_fills_in_names(self, db, world, assign):
        assign(world.alice, world.infant_room, world.monday, world.am)

        found = find_conflicts(db, checks=[(world.alice.id, CellRef(world.toddler_room.id, world.monday, world.am.id))])

        assert [(c.teacher_name, c.conflicting_classroom_name) for c in found] == [("Alice Adams", "Infant Room")]


class TestRequireResolutions:
    def _conflict(self, room):
        return Conflict("alice", "mon", "am", "toddler", room, f"row-{room}", teacher_name="Alice")

    def test_missing_resolution_raises(self):
        with pytest.raises(UnresolvedConflictsError) as excinfo:
            require_resolutions([self._conflict("infant")], {})
        assert excinfo.value.status_code == 409
        assert "Alice" in excinfo.value.message

    def test_conflicts_sharing_a_key_collapse_to_one_request(self):
        """Two rooms in conflict for the same teacher/slot/target -> a single resolution."""
        conflicts = [self._conflict("infant"), self._conflict("preschool")]
        requests = require_resolutions(conflicts, {("alice", "mon", "am", "toddler"): "remove_other"})
        assert len(requests) == 1

    def test_unknown_resolution_is_rejected(self):
        with pytest.raises(StaffingValidationError):
            require_resolutions([self._conflict("infant")], {("alice", "mon", "am", "toddler"): "ignore"})


# =============================================================================
# Resolutions
# =============================================================================

class TestResolveConflict:
    """Each resolution converges on the same state when replayed."""

    def test_remove_other(self, db, world, assign):
        original = assign(world.alice, world.infant_room, world.monday, world.am)
        original_id = original.id

        result = resolve_conflict(db, _request(world, "remove_other"))

        assert result.deleted_ids == [original_id]
        assert _state(db, world) == [(str(world.toddler_room.id), False)]

    def test_mark_floater(self, db, world, assign):
        assign(world.alice, world.infant_room, world.monday, world.am)

        result = resolve_conflict(db, _request(world, "mark_floater"))

        assert len(result.updated_ids) == 1
        assert _state(db, world) == sorted(
            [(str(world.infant_room.id), True), (str(world.toddler_room.id), True)]
        )

    def test_cancel_only_records_an_audit_row(self, db, world, assign):
        assign(world.alice, world.infant_room, world.monday, world.am)

        result = resolve_conflict(db, _request(world, "cancel"))

        assert result.created_id is None
        assert _state(db, world) == [(str(world.infant_room.id), False)]
        audit = db.execute(select(AuditLog)).scalars().one()
        assert audit.details["canceled"] is True

    @pytest.mark.parametrize("resolution", ["remove_other", "mark_floater"])
    def test_replay_is_idempotent(self, db, world, assign, resolution):
        assign(world.alice, world.infant_room, world.monday, world.am)

        first = resolve_conflict(db, _request(world, resolution))
        after_first = _state(db, world)
        second = resolve_conflict(db, _request(world, resolution))

        assert _state(db, world) == after_first
        assert second.created_id == first.created_id
        assert second.deleted_ids == []
        assert second.updated_ids == []

    def test_every_resolution_is_audited(self, db, world, assign):
        assign(world.alice, world.infant_room, world.monday, world.am)

        resolve_conflict(db, _request(world, "remove_other"))

        count = db.execute(select(func.count()).select_from(AuditLog)).scalar_one()
        assert count == 1

    def test_unknown_resolution(self, db, world):
        with pytest.raises(StaffingValidationError):
            resolve_conflict(db, _request(world, "ignore"))
