"""
Shared fixtures for the staffing engine tests.

Every test runs against a fresh in-memory SQLite database: tables are
created (and the seven weekdays seeded) before the test and dropped after.

Run: pytest tests/ -v
"""

import os

# Settings are read at import time; point them at SQLite before any app import.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ["REFETCH_DELAY_SECONDS"] = "0"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import time
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from core.bootstrap import init_db
from core.database import ENGINE, SessionLocal, get_db
from models.base import Base
from models.class_group import ClassGroup
from models.classroom import Classroom
from models.schedule_cell import ScheduleCell, ScheduleCellClassGroup
from models.staff import Staff
from models.sub_availability import SubAvailability
from models.teacher_schedule import TeacherSchedule
from models.time_slot import TimeSlot
from services.calendar import load_day_lookup


# --- Database Fixtures ---

@pytest.fixture
def db():
    """A session on a freshly created schema."""
    init_db(ENGINE)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(ENGINE)


@pytest.fixture
def client(db):
    """TestClient whose requests share the test session.

    The client is not entered as a context manager, so the app lifespan
    (which would initialise the configured database) does not run.
    """
    from main import app

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# --- Seed Data ---

@pytest.fixture
def world(db):
    """
    A small centre:

    - two classrooms (Infant Room, Toddler Room)
    - two class groups (Infants 1:4 preferred 1:3, Toddlers 1:5 preferred 1:4)
    - two time slots (AM, PM)
    - three teachers, two subs and one flex staff member
    """
    days = load_day_lookup(db)

    infant_room = Classroom(name="Infant Room", display_order=1)
    toddler_room = Classroom(name="Toddler Room", display_order=2)
    infants = ClassGroup(name="Infants", min_age=0, max_age=12, required_ratio=4, preferred_ratio=3)
    toddlers = ClassGroup(name="Toddlers", min_age=12, max_age=36, required_ratio=5, preferred_ratio=4)
    am = TimeSlot(code="AM", name="Morning", start_time=time(7, 0), end_time=time(12, 0), display_order=1)
    pm = TimeSlot(code="PM", name="Afternoon", start_time=time(12, 0), end_time=time(18, 0), display_order=2)

    alice = Staff(first_name="Alice", last_name="Adams", is_teacher=True)
    bob = Staff(first_name="Bob", last_name="Brown", is_teacher=True)
    carol = Staff(first_name="Carol", last_name="Clark", is_teacher=True)
    sam = Staff(first_name="Sam", last_name="Sub", is_teacher=False, is_sub=True)
    sue = Staff(first_name="Sue", last_name="Stand", is_teacher=False, is_sub=True)
    fran = Staff(first_name="Fran", last_name="Flex", is_teacher=False, is_flexible=True)

    db.add_all([infant_room, toddler_room, infants, toddlers, am, pm, alice, bob, carol, sam, sue, fran])
    db.commit()

    return SimpleNamespace(
        days=days,
        monday=days.id_by_name["Monday"],
        tuesday=days.id_by_name["Tuesday"],
        wednesday=days.id_by_name["Wednesday"],
        infant_room=infant_room,
        toddler_room=toddler_room,
        infants=infants,
        toddlers=toddlers,
        am=am,
        pm=pm,
        alice=alice,
        bob=bob,
        carol=carol,
        sam=sam,
        sue=sue,
        fran=fran,
    )


@pytest.fixture
def add_cell(db):
    """Factory: save a schedule cell with its class groups."""
    def factory(classroom, day_of_week_id, slot, *, enrollment=None, groups=(), is_active=True):
        cell = ScheduleCell(
            classroom_id=classroom.id,
            day_of_week_id=day_of_week_id,
            time_slot_id=slot.id,
            enrollment_for_staffing=enrollment,
            is_active=is_active,
        )
        db.add(cell)
        db.flush()
        for g in groups:
            db.add(ScheduleCellClassGroup(schedule_cell_id=cell.id, class_group_id=g.id))
        db.commit()
        return cell
    return factory


@pytest.fixture
def assign(db):
    """Factory: put a teacher on the baseline schedule."""
    def factory(teacher, classroom, day_of_week_id, slot, *, is_floater=False):
        row = TeacherSchedule(
            teacher_id=teacher.id,
            classroom_id=classroom.id,
            day_of_week_id=day_of_week_id,
            time_slot_id=slot.id,
            is_floater=is_floater,
        )
        db.add(row)
        db.commit()
        return row
    return factory


@pytest.fixture
def make_available(db):
    """Factory: weekly availability for a sub on the given (day, slot) pairs."""
    def factory(staff, pairs):
        for day_id, slot in pairs:
            db.add(SubAvailability(sub_id=staff.id, day_of_week_id=day_id, time_slot_id=slot.id, available=True))
        db.commit()
    return factory
