from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Index, Text, Uuid, text
from sqlalchemy.sql import func

from models.base import Base


STAFFING_EVENT_STATUSES = ("active", "cancelled")


class StaffingEvent(Base):
    __tablename__ = "staffing_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type = Column(Text, nullable=False, default="flex_assignment")
    staff_id = Column(Uuid, nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("status in ('active', 'cancelled')", name="ck_staffing_events_status"),
        CheckConstraint("start_date <= end_date", name="ck_staffing_events_range"),
    )


class StaffingEventShift(Base):
    __tablename__ = "staffing_event_shifts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    staffing_event_id = Column(Uuid, nullable=False, index=True)
    staff_id = Column(Uuid, nullable=False)
    date = Column(Date, nullable=False)
    day_of_week_id = Column(Uuid, nullable=True)
    time_slot_id = Column(Uuid, nullable=False)
    classroom_id = Column(Uuid, nullable=False)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("status in ('active', 'cancelled')", name="ck_staffing_event_shifts_status"),
        # A staff member holds a given shift at most once while it is active.
        Index(
            "ux_staffing_event_shifts_active",
            "staff_id",
            "date",
            "time_slot_id",
            "classroom_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )
