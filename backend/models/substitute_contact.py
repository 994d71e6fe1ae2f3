from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class SubstituteContact(Base):
    __tablename__ = "substitute_contacts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coverage_request_id = Column(Uuid, nullable=False, index=True)
    sub_id = Column(Uuid, nullable=False)
    is_contacted = Column(Boolean, nullable=False, default=False)
    contacted_at = Column(DateTime(timezone=True), nullable=True)
    response_status = Column(Text, nullable=False, default="none")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "response_status in ('none', 'pending', 'confirmed', 'declined_all')",
            name="ck_substitute_contacts_response_status",
        ),
        UniqueConstraint("coverage_request_id", "sub_id", name="uq_substitute_contacts_request_sub"),
    )


class SubContactShiftOverride(Base):
    __tablename__ = "sub_contact_shift_overrides"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    substitute_contact_id = Column(Uuid, nullable=False, index=True)
    coverage_request_shift_id = Column(Uuid, nullable=False)
    selected = Column(Boolean, nullable=False, default=False)
    # Director forced an otherwise unavailable shift to be selectable.
    override_availability = Column(Boolean, nullable=False, default=False)
    is_partial = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "substitute_contact_id",
            "coverage_request_shift_id",
            name="uq_sub_contact_shift_overrides_contact_shift",
        ),
    )
