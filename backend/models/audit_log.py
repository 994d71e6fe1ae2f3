from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    action = Column(Text, nullable=False)
    category = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Uuid, nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
