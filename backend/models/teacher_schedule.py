from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class TeacherSchedule(Base):
    __tablename__ = "teacher_schedules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    teacher_id = Column(Uuid, nullable=False, index=True)
    classroom_id = Column(Uuid, nullable=False)
    day_of_week_id = Column(Uuid, nullable=False)
    time_slot_id = Column(Uuid, nullable=False)
    is_floater = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(
            "teacher_id",
            "classroom_id",
            "day_of_week_id",
            "time_slot_id",
            name="uq_teacher_schedules_teacher_slot",
        ),
    )
