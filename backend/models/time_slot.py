from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, Text, Time, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(Text, nullable=False)
    name = Column(Text, nullable=True)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (UniqueConstraint("code", name="uq_time_slots_code"),)
