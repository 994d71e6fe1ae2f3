from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class SubAssignment(Base):
    __tablename__ = "sub_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sub_id = Column(Uuid, nullable=False, index=True)
    # The absent teacher being covered.
    teacher_id = Column(Uuid, nullable=False, index=True)
    coverage_request_shift_id = Column(Uuid, nullable=True, index=True)
    date = Column(Date, nullable=False)
    day_of_week_id = Column(Uuid, nullable=True)
    time_slot_id = Column(Uuid, nullable=False)
    classroom_id = Column(Uuid, nullable=True)
    assignment_type = Column(Text, nullable=False, default="Substitute Shift")
    is_partial = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("status in ('active', 'cancelled')", name="ck_sub_assignments_status"),
    )
