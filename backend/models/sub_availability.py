from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, Date, UniqueConstraint, Uuid

from models.base import Base


class SubAvailability(Base):
    """Weekly availability of a sub or flex staff member for a day/time slot."""

    __tablename__ = "sub_availability"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sub_id = Column(Uuid, nullable=False, index=True)
    day_of_week_id = Column(Uuid, nullable=False)
    time_slot_id = Column(Uuid, nullable=False)
    available = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("sub_id", "day_of_week_id", "time_slot_id", name="uq_sub_availability_slot"),
    )


class SubAvailabilityException(Base):
    """Date-specific override of the weekly availability."""

    __tablename__ = "sub_availability_exceptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sub_id = Column(Uuid, nullable=False, index=True)
    date = Column(Date, nullable=False)
    time_slot_id = Column(Uuid, nullable=False)
    available = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("sub_id", "date", "time_slot_id", name="uq_sub_availability_exceptions_slot"),
    )


class SubClassGroupQualification(Base):
    __tablename__ = "sub_class_group_qualifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sub_id = Column(Uuid, nullable=False, index=True)
    class_group_id = Column(Uuid, nullable=False)

    __table_args__ = (
        UniqueConstraint("sub_id", "class_group_id", name="uq_sub_class_group_qualifications"),
    )
