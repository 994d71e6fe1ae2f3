from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class ScheduleCell(Base):
    __tablename__ = "schedule_cells"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    classroom_id = Column(Uuid, nullable=False, index=True)
    day_of_week_id = Column(Uuid, nullable=False)
    time_slot_id = Column(Uuid, nullable=False)
    # Inactive cells keep their data but are exempt from staffing validation.
    is_active = Column(Boolean, nullable=False, default=True)
    enrollment_for_staffing = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "enrollment_for_staffing is null or enrollment_for_staffing >= 0",
            name="ck_schedule_cells_enrollment",
        ),
        UniqueConstraint("classroom_id", "day_of_week_id", "time_slot_id", name="uq_schedule_cells_slot"),
    )


class ScheduleCellClassGroup(Base):
    __tablename__ = "schedule_cell_class_groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_cell_id = Column(Uuid, nullable=False, index=True)
    class_group_id = Column(Uuid, nullable=False)

    __table_args__ = (
        UniqueConstraint("schedule_cell_id", "class_group_id", name="uq_schedule_cell_class_groups"),
    )
