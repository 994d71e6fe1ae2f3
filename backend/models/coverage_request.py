from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class CoverageRequest(Base):
    __tablename__ = "coverage_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    request_type = Column(Text, nullable=False, default="time_off")
    source_request_id = Column(Uuid, nullable=True, index=True)
    teacher_id = Column(Uuid, nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="open")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("status in ('open', 'filled', 'cancelled')", name="ck_coverage_requests_status"),
    )


class CoverageRequestShift(Base):
    __tablename__ = "coverage_request_shifts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coverage_request_id = Column(Uuid, nullable=False, index=True)
    date = Column(Date, nullable=False)
    day_of_week_id = Column(Uuid, nullable=True)
    time_slot_id = Column(Uuid, nullable=False)
    classroom_id = Column(Uuid, nullable=True)
    class_group_id = Column(Uuid, nullable=True)
    is_partial = Column(Boolean, nullable=False, default=False)
    status = Column(Text, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint("status in ('active', 'cancelled')", name="ck_coverage_request_shifts_status"),
    )
