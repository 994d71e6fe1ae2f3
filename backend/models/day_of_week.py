from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, Integer, Text, UniqueConstraint, Uuid

from models.base import Base


class DayOfWeek(Base):
    __tablename__ = "days_of_week"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    # ISO numbering: 1 = Monday ... 7 = Sunday.
    day_number = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("day_number >= 1 and day_number <= 7", name="ck_days_of_week_day_number"),
        UniqueConstraint("day_number", name="uq_days_of_week_day_number"),
        UniqueConstraint("name", name="uq_days_of_week_name"),
    )
