from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class TimeOffRequest(Base):
    """An absence: the teacher is out for some shifts in a date range."""

    __tablename__ = "time_off_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    teacher_id = Column(Uuid, nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")
    coverage_request_id = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("status in ('draft', 'active', 'cancelled')", name="ck_time_off_requests_status"),
    )


class TimeOffShift(Base):
    __tablename__ = "time_off_shifts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    time_off_request_id = Column(Uuid, nullable=False, index=True)
    date = Column(Date, nullable=False)
    day_of_week_id = Column(Uuid, nullable=True)
    time_slot_id = Column(Uuid, nullable=False)
    is_partial = Column(Boolean, nullable=False, default=False)
