"""
Tests for the sub finder: coverage requests, contact states, shift overrides,
assignment gating (availability, swaps, confirmation) and unassignment.

Run: pytest tests/test_sub_finder.py -v
"""

import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy import select

from models.sub_assignment import SubAssignment
from models.sub_availability import SubClassGroupQualification
from models.substitute_contact import SubstituteContact
from models.time_off import TimeOffRequest, TimeOffShift
from services.coverage import (
    active_shifts,
    cancel_absence,
    coverage_details,
    ensure_coverage_request,
    remaining_shifts,
)
from services.errors import (
    AssignmentNotActiveError,
    ConfirmationRequiredError,
    ShiftHeldError,
    ShiftNotAssignableError,
    StaffingValidationError,
)
from services.sub_assignments import assign_sub_shifts, candidate_subs, sub_availability, unassign_shifts
from services.sub_contacts import (
    apply_contact_status,
    contact_details,
    contact_overrides,
    derive_contact_status,
    get_or_create_contact,
    resolve_shift_overrides,
    update_contact,
)


WEEK = [date(2024, 1, 1) + timedelta(days=i) for i in range(5)]  # Mon..Fri


# --- Fixtures ---

@pytest.fixture
def absence(db, world, add_cell, assign):
    """Alice teaches Toddler Room every weekday morning and is out all week."""
    for d in WEEK:
        day_id = world.days.id_for_date(d)
        add_cell(world.toddler_room, day_id, world.am, enrollment=10, groups=[world.toddlers])
        assign(world.alice, world.toddler_room, day_id, world.am)

    request = TimeOffRequest(teacher_id=world.alice.id, start_date=WEEK[0], end_date=WEEK[-1], status="active")
    db.add(request)
    db.flush()
    for d in WEEK:
        db.add(
            TimeOffShift(
                time_off_request_id=request.id,
                date=d,
                day_of_week_id=world.days.id_for_date(d),
                time_slot_id=world.am.id,
            )
        )
    db.commit()
    return request


@pytest.fixture
def coverage(db, absence):
    return ensure_coverage_request(db, absence)


@pytest.fixture
def shifts(db, coverage):
    return active_shifts(db, coverage.id)


@pytest.fixture
def weekday_mornings(world):
    return [(world.days.id_for_date(d), world.am) for d in WEEK]


@pytest.fixture
def sam_available(world, make_available, weekday_mornings):
    make_available(world.sam, weekday_mornings)


def _assign(db, coverage, sub, shift_list, **kw):
    kw.setdefault("confirm", True)
    return assign_sub_shifts(
        db,
        coverage_request_id=coverage.id,
        sub_id=sub.id,
        selected_shift_ids=[s.id for s in shift_list],
        **kw,
    )


# =============================================================================
# Coverage requests
# =============================================================================

class TestCoverageRequest:
    def test_created_once_with_a_shift_per_absence_shift(self, db, absence, coverage, world):
        shifts = active_shifts(db, coverage.id)

        assert len(shifts) == 5
        assert ensure_coverage_request(db, absence).id == coverage.id
        # Classroom and class group come from Alice's baseline schedule.
        assert {s.classroom_id for s in shifts} == {world.toddler_room.id}
        assert {s.class_group_id for s in shifts} == {world.toddlers.id}

    def test_details_start_uncovered(self, db, coverage):
        details = coverage_details(db, coverage)

        assert details["status"] == "open"
        assert details["uncovered_shifts"] == 5
        assert "2024-01-01|AM" in details["shift_map"]

    def test_remaining_counts_every_unheld_shift(
        self, db, world, coverage, shifts, sam_available, make_available, weekday_mornings
    ):
        """5 shifts, 3 assigned across two subs without overlap -> 2 remaining."""
        make_available(world.sue, weekday_mornings)
        _assign(db, coverage, world.sam, shifts[:2])
        _assign(db, coverage, world.sue, shifts[2:3])

        summary = remaining_shifts(db, coverage)

        assert {a["sub_id"] for a in summary["assigned_shifts"]} == {str(world.sam.id), str(world.sue.id)}
        assert summary["total_shifts"] == 5
        assert summary["remaining_shift_count"] == 2
        assert summary["remaining_shift_keys"] == ["2024-01-04|AM", "2024-01-05|AM"]

    def test_cancelling_the_absence_cancels_coverage(self, db, world, absence, coverage, shifts, sam_available):
        _assign(db, coverage, world.sam, shifts[:1])

        cancel_absence(db, absence)

        db.refresh(coverage)
        assert coverage.status == "cancelled"
        assert active_shifts(db, coverage.id) == []
        statuses = {a.status for a in db.execute(select(SubAssignment)).scalars().all()}
        assert statuses == {"cancelled"}


# =============================================================================
# Contact states
# =============================================================================

class TestContactStatus:
    @pytest.mark.parametrize(
        "is_contacted,response,expected",
        [
            (False, "none", "not_contacted"),
            (None, None, "not_contacted"),
            (True, "none", "pending"),
            (False, "pending", "pending"),
            (True, "confirmed", "confirmed"),
            (True, "declined_all", "declined_all"),
        ],
    )
    def test_derive(self, is_contacted, response, expected):
        assert derive_contact_status(is_contacted, response) == expected

    def test_first_contact_stamps_contacted_at(self):
        contact = SubstituteContact(is_contacted=False, response_status="none")

        clear = apply_contact_status(contact, "pending")

        assert clear is False
        assert contact.is_contacted is True
        assert contact.contacted_at is not None

    def test_declining_all_asks_to_clear_selections(self):
        contact = SubstituteContact(is_contacted=True, response_status="pending")
        assert apply_contact_status(contact, "declined_all") is True

    def test_unknown_status(self):
        with pytest.raises(StaffingValidationError):
            apply_contact_status(SubstituteContact(), "maybe")


class TestUpdateContact:
    def test_declined_all_clears_selected_shifts(self, db, world, coverage, shifts):
        contact = get_or_create_contact(db, coverage_request_id=coverage.id, sub_id=world.sam.id)
        update_contact(
            db,
            contact_id=contact.id,
            contact_status="pending",
            shift_overrides=[{"coverage_request_shift_id": shifts[0].id, "selected": True}],
        )
        assert len(contact_overrides(db, contact.id)) == 1

        update_contact(db, contact_id=contact.id, contact_status="declined_all")

        assert contact_overrides(db, contact.id) == []
        assert contact_details(db, contact)["contact_status"] == "declined_all"

    def test_confirmed_without_shifts_is_rejected(self, db, world, coverage):
        contact = get_or_create_contact(db, coverage_request_id=coverage.id, sub_id=world.sam.id)

        with pytest.raises(StaffingValidationError) as excinfo:
            update_contact(db, contact_id=contact.id, contact_status="confirmed")

        assert excinfo.value.code == "CONFIRMED_WITHOUT_SHIFTS"
        assert excinfo.value.status_code == 400
        db.refresh(contact)
        assert contact.response_status == "none"

    def test_confirmed_with_a_selected_shift(self, db, world, coverage, shifts):
        contact = get_or_create_contact(db, coverage_request_id=coverage.id, sub_id=world.sam.id)

        update_contact(
            db,
            contact_id=contact.id,
            contact_status="confirmed",
            shift_overrides=[{"coverage_request_shift_id": shifts[0].id, "selected": True}],
        )

        details = contact_details(db, contact)
        assert details["contact_status"] == "confirmed"
        assert details["selected_shift_ids"] == [str(shifts[0].id)]

    def test_declined_with_selection_is_rejected(self, db, world, coverage):
        contact = get_or_create_contact(db, coverage_request_id=coverage.id, sub_id=world.sam.id)

        with pytest.raises(StaffingValidationError) as excinfo:
            update_contact(db, contact_id=contact.id, contact_status="declined_all", selected_shift_keys=["2024-01-01|AM"])
        assert excinfo.value.code == "DECLINED_WITH_SELECTION"

    def test_override_for_another_request_is_rejected(self, db, world, coverage):
        contact = get_or_create_contact(db, coverage_request_id=coverage.id, sub_id=world.sam.id)

        with pytest.raises(StaffingValidationError) as excinfo:
            update_contact(db, contact_id=contact.id, shift_overrides=[{"coverage_request_shift_id": uuid.uuid4()}])
        assert excinfo.value.code == "SHIFT_NOT_IN_REQUEST"


class TestResolveShiftOverrides:
    def test_unavailable_shifts_need_an_override_to_be_selected(self, db, coverage, shifts):
        ids = {s.date.isoformat(): s.id for s in shifts}

        result = resolve_shift_overrides(
            db,
            coverage_request_id=coverage.id,
            selected_shift_keys=["2024-01-01|AM", "2024-01-02|AM", "2024-01-03|AM"],
            override_shift_keys=["2024-01-02|AM"],
            available_shift_keys=["2024-01-01|AM"],
            unavailable_shift_keys=["2024-01-02|AM", "2024-01-03|AM"],
        )

        assert result["selected_shift_ids"] == [ids["2024-01-01"], ids["2024-01-02"]]
        by_id = {o["coverage_request_shift_id"]: o for o in result["shift_overrides"]}
        assert by_id[ids["2024-01-02"]]["override_availability"] is True
        assert by_id[ids["2024-01-03"]]["selected"] is False


# =============================================================================
# Availability and ranking
# =============================================================================

class TestSubAvailability:
    def test_no_availability_data_means_unavailable(self, db, world, coverage):
        verdicts = sub_availability(db, coverage_request_id=coverage.id, sub_id=world.sue.id)

        assert {v["reason"] for v in verdicts} == {"unavailable"}
        assert all(v["overridable"] for v in verdicts)

    def test_teaching_elsewhere_is_a_hard_conflict(self, db, world, coverage, sam_available, assign):
        assign(world.sam, world.infant_room, world.monday, world.am)

        verdicts = sub_availability(db, coverage_request_id=coverage.id, sub_id=world.sam.id)

        monday = next(v for v in verdicts if v["date"] == "2024-01-01")
        assert monday["reason"] == "schedule_conflict"
        assert monday["overridable"] is False
        assert sum(1 for v in verdicts if v["can_cover"]) == 4

    def test_qualification_mismatch(self, db, world, coverage, make_available, weekday_mornings):
        make_available(world.sue, weekday_mornings)
        db.add(SubClassGroupQualification(sub_id=world.sue.id, class_group_id=world.infants.id))
        db.commit()

        verdicts = sub_availability(db, coverage_request_id=coverage.id, sub_id=world.sue.id)

        assert {v["reason"] for v in verdicts} == {"qualification_mismatch"}

    def test_candidates_ranked_by_coverable_shifts(self, db, world, coverage, sam_available):
        ranked = candidate_subs(db, coverage_request_id=coverage.id)

        assert [c["name"] for c in ranked] == ["Sam Sub", "Sue Stand"]
        assert ranked[0]["can_cover_count"] == 5
        assert ranked[1]["overridable_count"] == 5

    def test_flexible_staff_join_candidates_on_request(self, db, world, coverage):
        names = [c["name"] for c in candidate_subs(db, coverage_request_id=coverage.id, include_flexible=True)]
        assert "Fran Flex" in names


# =============================================================================
# Assignment gating
# =============================================================================

class TestAssignSubShifts:
    def test_assigning_every_shift_fills_the_request(self, db, world, coverage, shifts, sam_available):
        result = _assign(db, coverage, world.sam, shifts)

        assert len(result["assigned_shifts"]) == 5
        assert result["coverage_request_status"] == "filled"
        assert result["response_status"] == "confirmed"

    def test_unavailable_shift_is_blocked(self, db, world, coverage, shifts):
        with pytest.raises(ShiftNotAssignableError) as excinfo:
            _assign(db, coverage, world.sue, shifts[:1])

        blocked = excinfo.value.details["shifts"]
        assert blocked[0]["reason"] == "unavailable"
        assert db.execute(select(SubAssignment)).scalars().all() == []

    def test_override_unlocks_an_unavailable_shift(self, db, world, coverage, shifts):
        contact = get_or_create_contact(db, coverage_request_id=coverage.id, sub_id=world.sue.id)
        update_contact(
            db,
            contact_id=contact.id,
            shift_overrides=[
                {"coverage_request_shift_id": shifts[0].id, "selected": True, "override_availability": True}
            ],
        )

        result = _assign(db, coverage, world.sue, shifts[:1])

        assert len(result["assigned_shifts"]) == 1

    def test_override_cannot_unlock_a_hard_conflict(self, db, world, coverage, shifts, sam_available, assign):
        assign(world.sam, world.infant_room, world.monday, world.am)
        contact = get_or_create_contact(db, coverage_request_id=coverage.id, sub_id=world.sam.id)
        update_contact(
            db,
            contact_id=contact.id,
            shift_overrides=[
                {"coverage_request_shift_id": shifts[0].id, "selected": True, "override_availability": True}
            ],
        )

        with pytest.raises(ShiftNotAssignableError) as excinfo:
            _assign(db, coverage, world.sam, shifts[:1])
        assert excinfo.value.details["shifts"][0]["reason"] == "schedule_conflict"

    def test_confirmation_is_required_for_an_unconfirmed_sub(self, db, world, coverage, shifts, sam_available):
        with pytest.raises(ConfirmationRequiredError) as excinfo:
            _assign(db, coverage, world.sam, shifts[:1], confirm=None)

        assert excinfo.value.details["choices"] == ["confirm_and_assign", "assign_without_confirming"]
        assert db.execute(select(SubAssignment)).scalars().all() == []

    def test_assign_without_confirming(self, db, world, coverage, shifts, sam_available):
        result = _assign(db, coverage, world.sam, shifts[:1], confirm=False)

        assert len(result["assigned_shifts"]) == 1
        assert result["response_status"] == "none"

    def test_shift_held_by_another_sub_needs_swap(self, db, world, coverage, shifts, sam_available, make_available, weekday_mornings):
        make_available(world.sue, weekday_mornings)
        _assign(db, coverage, world.sam, shifts[:1])

        with pytest.raises(ShiftHeldError) as excinfo:
            _assign(db, coverage, world.sue, shifts[:1])
        holder = excinfo.value.details["holders"][0]
        assert holder["sub_name"] == "Sam Sub"

        result = _assign(db, coverage, world.sue, shifts[:1], swap=True)

        assert len(result["swapped_assignment_ids"]) == 1
        active = db.execute(select(SubAssignment).where(SubAssignment.status == "active")).scalars().all()
        assert [a.sub_id for a in active] == [world.sue.id]

    def test_reassigning_the_same_sub_is_a_no_op(self, db, world, coverage, shifts, sam_available):
        _assign(db, coverage, world.sam, shifts[:2])

        result = _assign(db, coverage, world.sam, shifts[:2])

        assert result["assigned_shifts"] == []
        assert len(db.execute(select(SubAssignment)).scalars().all()) == 2

    def test_empty_selection(self, db, world, coverage):
        with pytest.raises(StaffingValidationError) as excinfo:
            assign_sub_shifts(db, coverage_request_id=coverage.id, sub_id=world.sam.id, selected_shift_ids=[])
        assert excinfo.value.code == "NO_SHIFTS_SELECTED"

    def test_cancelled_request(self, db, world, absence, coverage, shifts, sam_available):
        cancel_absence(db, absence)

        with pytest.raises(StaffingValidationError) as excinfo:
            _assign(db, coverage, world.sam, shifts[:1])
        assert excinfo.value.code == "COVERAGE_REQUEST_CANCELLED"


# =============================================================================
# Unassignment
# =============================================================================

class TestUnassignShifts:
    def test_single_removal_reopens_a_filled_request(self, db, world, absence, coverage, shifts, sam_available):
        _assign(db, coverage, world.sam, shifts)

        result = unassign_shifts(
            db,
            absence_id=absence.id,
            sub_id=world.sam.id,
            scope="single",
            coverage_request_shift_id=shifts[0].id,
        )

        assert result["removed_count"] == 1
        assert result["coverage_request_status"] == "open"
        contact = get_or_create_contact(db, coverage_request_id=coverage.id, sub_id=world.sam.id)
        selected = {o.coverage_request_shift_id for o in contact_overrides(db, contact.id) if o.selected}
        assert shifts[0].id not in selected
        assert len(selected) == 4

    def test_remove_all_for_absence(self, db, world, absence, coverage, shifts, sam_available):
        _assign(db, coverage, world.sam, shifts[:3])

        result = unassign_shifts(db, absence_id=absence.id, sub_id=world.sam.id, scope="all_for_absence")

        assert result["removed_count"] == 3
        assert remaining_shifts(db, coverage)["remaining_shift_count"] == 5

    def test_nothing_active_to_remove(self, db, world, absence, coverage):
        with pytest.raises(AssignmentNotActiveError):
            unassign_shifts(db, absence_id=absence.id, sub_id=world.sam.id, scope="all_for_absence")

    def test_single_needs_a_target(self, db, world, absence, coverage):
        with pytest.raises(StaffingValidationError) as excinfo:
            unassign_shifts(db, absence_id=absence.id, sub_id=world.sam.id, scope="single")
        assert excinfo.value.code == "REMOVAL_TARGET_REQUIRED"
