from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class Staff(Base):
    __tablename__ = "staff"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    display_name = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)

    is_teacher = Column(Boolean, nullable=False, default=True)
    is_sub = Column(Boolean, nullable=False, default=False)
    # Flex staff can be assigned ad hoc across classrooms and date ranges.
    is_flexible = Column(Boolean, nullable=False, default=False)

    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @property
    def name(self) -> str:
        if self.display_name:
            return str(self.display_name)
        return f"{self.first_name} {self.last_name}".strip()
