"""
Tests for staffing classification, floater weighting and the cell/shift rollups.

Run: pytest tests/test_staffing.py -v
"""

from datetime import date

import pytest

from models.staffing_event import StaffingEvent, StaffingEventShift
from models.sub_assignment import SubAssignment
from services.staffing import (
    ADEQUATE,
    BELOW_PREFERRED,
    BELOW_REQUIRED,
    cell_staffing,
    classify_staffing,
    count_scheduled,
    dashboard_rollup,
    round_one,
    shift_metrics,
)


# =============================================================================
# classify_staffing
# =============================================================================

class TestClassifyStaffing:
    """Exactly one status holds for any (scheduled, required, preferred)."""

    @pytest.mark.parametrize(
        "scheduled,required,preferred,expected",
        [
            (1.0, 2, 3, BELOW_REQUIRED),
            (2.0, 2, 3, BELOW_PREFERRED),
            (2.5, 2, 3, BELOW_PREFERRED),
            (3.0, 2, 3, ADEQUATE),
            (4.0, 2, 3, ADEQUATE),
            (1.0, 2, None, BELOW_REQUIRED),
            (2.0, 2, None, ADEQUATE),
            (0.0, None, None, ADEQUATE),
        ],
    )
    def test_exclusive_status(self, scheduled, required, preferred, expected):
        assert classify_staffing(scheduled, required, preferred).status == expected

    def test_shortfall_against_required(self):
        status = classify_staffing(1.5, 3, 4)
        assert status.shortfall == 1.5
        assert "required" in status.message()

    def test_shortfall_against_preferred(self):
        status = classify_staffing(3.0, 3, 4)
        assert status.shortfall == 1.0
        assert "preferred" in status.message()

    def test_adequate_has_no_shortfall(self):
        assert classify_staffing(5.0, 3, 4).shortfall == 0.0


# =============================================================================
# Floater weighting
# =============================================================================

class TestCountScheduled:
    def test_two_floaters_count_as_one_teacher(self):
        rows = [
            {"teacher_id": "a", "is_floater": False},
            {"teacher_id": "b", "is_floater": True},
            {"teacher_id": "c", "is_floater": True},
        ]
        assert count_scheduled(rows, mode="fixed", weight=0.5) == 2.0

    def test_proportional_mode_splits_by_rooms(self):
        rows = [{"teacher_id": "a", "is_floater": False}, {"teacher_id": "b", "is_floater": True}]
        assert count_scheduled(rows, floater_rooms={"b": 3}, mode="proportional") == 1.3

    def test_proportional_without_room_count_uses_fixed_weight(self):
        rows = [{"teacher_id": "b", "is_floater": True}]
        assert count_scheduled(rows, floater_rooms={}, mode="proportional", weight=0.5) == 0.5

    def test_empty_roster(self):
        assert count_scheduled([], mode="fixed") == 0.0


class TestRoundOne:
    def test_rounds_half_up(self):
        """2.25 -> 2.3, not banker's rounding."""
        assert round_one(2.25) == 2.3
        assert round_one(0.05) == 0.1

    def test_keeps_one_decimal(self):
        assert round_one(1.0 / 3) == 0.3


# =============================================================================
# Cell staffing against the database
# =============================================================================

class TestCellStaffing:
    def test_enrollment_ten_two_teachers_is_below_preferred(self, db, world, add_cell, assign):
        """Toddlers 1:5 (preferred 1:4), 10 children, 2 teachers -> short 1.0 of preferred."""
        cell = add_cell(world.toddler_room, world.monday, world.am, enrollment=10, groups=[world.toddlers])
        rows = [
            assign(world.alice, world.toddler_room, world.monday, world.am),
            assign(world.bob, world.toddler_room, world.monday, world.am),
        ]

        result = cell_staffing(db, cell=cell, assignments=rows)

        assert result.targets.required == 2
        assert result.targets.preferred == 3
        assert result.status.status == BELOW_PREFERRED
        assert result.status.shortfall == 1.0

    def test_inactive_cell_is_exempt(self, db, world, add_cell):
        cell = add_cell(world.toddler_room, world.monday, world.am, enrollment=10, groups=[world.toddlers], is_active=False)
        assert cell_staffing(db, cell=cell, assignments=[]).status is None

    def test_cell_without_groups_is_exempt(self, db, world, add_cell):
        cell = add_cell(world.toddler_room, world.monday, world.am, enrollment=10)
        assert cell_staffing(db, cell=cell, assignments=[]).status is None

    def test_unsaved_cell_has_no_targets(self, db):
        result = cell_staffing(db, cell=None, assignments=[])
        assert result.status is None
        assert result.to_dict()["required"] is None

    def test_mixed_groups_use_youngest(self, db, world, add_cell):
        cell = add_cell(world.infant_room, world.monday, world.am, enrollment=8, groups=[world.toddlers, world.infants])
        result = cell_staffing(db, cell=cell, assignments=[])
        assert result.targets.class_group_id == world.infants.id
        assert result.targets.required == 2
        assert result.status.status == BELOW_REQUIRED


class TestDashboardRollup:
    def test_counts_every_evaluated_cell(self, db, world, add_cell, assign):
        add_cell(world.toddler_room, world.monday, world.am, enrollment=10, groups=[world.toddlers])
        add_cell(world.infant_room, world.monday, world.am, enrollment=4, groups=[world.infants])
        assign(world.alice, world.infant_room, world.monday, world.am)
        assign(world.bob, world.infant_room, world.monday, world.am)

        rollup = dashboard_rollup(db, day_of_week_id=world.monday)

        assert rollup["counts"] == {BELOW_REQUIRED: 1, BELOW_PREFERRED: 0, ADEQUATE: 1}
        assert len(rollup["cells"]) == 2


class TestShiftMetrics:
    def test_subs_and_flex_add_to_baseline(self, db, world, add_cell, assign):
        """Monday 2024-01-01: one teacher + one sub + one flex shift = 3 scheduled."""
        monday = date(2024, 1, 1)
        add_cell(world.toddler_room, world.monday, world.am, enrollment=10, groups=[world.toddlers])
        assign(world.alice, world.toddler_room, world.monday, world.am)
        db.add(
            SubAssignment(
                sub_id=world.sam.id,
                teacher_id=world.bob.id,
                date=monday,
                day_of_week_id=world.monday,
                time_slot_id=world.am.id,
                classroom_id=world.toddler_room.id,
            )
        )
        event = StaffingEvent(staff_id=world.fran.id, start_date=monday, end_date=monday)
        db.add(event)
        db.flush()
        db.add(
            StaffingEventShift(
                staffing_event_id=event.id,
                staff_id=world.fran.id,
                date=monday,
                day_of_week_id=world.monday,
                time_slot_id=world.am.id,
                classroom_id=world.toddler_room.id,
            )
        )
        db.commit()

        metrics = shift_metrics(db, dates=[monday], time_slot_ids=[world.am.id], classroom_ids=[world.toddler_room.id])

        assert len(metrics) == 1
        assert metrics[0].status.scheduled == 3.0
        assert metrics[0].status.status == ADEQUATE
        assert metrics[0].to_dict()["classroom_name"] == "Toddler Room"

    def test_empty_inputs(self, db):
        assert shift_metrics(db, dates=[], time_slot_ids=[], classroom_ids=[]) == []
