from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class ClassGroup(Base):
    __tablename__ = "class_groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    # Ages in months.
    min_age = Column(Integer, nullable=True)
    max_age = Column(Integer, nullable=True)
    # Children per teacher.
    required_ratio = Column(Integer, nullable=False)
    preferred_ratio = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("required_ratio > 0", name="ck_class_groups_required_ratio"),
        CheckConstraint("preferred_ratio is null or preferred_ratio > 0", name="ck_class_groups_preferred_ratio"),
        CheckConstraint(
            "min_age is null or max_age is null or min_age <= max_age",
            name="ck_class_groups_age_range",
        ),
    )
