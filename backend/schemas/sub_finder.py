from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel, Field


ContactStatus = Literal["not_contacted", "pending", "confirmed", "declined_all"]
ResponseStatus = Literal["none", "pending", "confirmed", "declined_all"]


class ShiftOverrideIn(BaseModel):
    coverage_request_shift_id: uuid.UUID
    selected: bool = False
    override_availability: bool = False
    is_partial: bool | None = None
    notes: str | None = None


class SubstituteContactUpdate(BaseModel):
    id: uuid.UUID
    contact_status: ContactStatus | None = None
    # Legacy pair; collapsed into contact_status when contact_status is omitted.
    response_status: ResponseStatus | None = None
    is_contacted: bool | None = None
    notes: str | None = None
    shift_overrides: list[ShiftOverrideIn] | None = None
    selected_shift_keys: list[str] | None = None


class ShiftOverridesRequest(BaseModel):
    coverage_request_id: uuid.UUID
    selected_shift_keys: list[str] = Field(default_factory=list)
    override_shift_keys: list[str] = Field(default_factory=list)
    available_shift_keys: list[str] = Field(default_factory=list)
    unavailable_shift_keys: list[str] = Field(default_factory=list)


class AssignShiftsRequest(BaseModel):
    coverage_request_id: uuid.UUID
    sub_id: uuid.UUID
    selected_shift_ids: list[uuid.UUID] = Field(min_length=1)
    # None asks the caller to choose when the sub has not confirmed yet.
    confirm: bool | None = None
    swap: bool = False


class UnassignShiftsRequest(BaseModel):
    absence_id: uuid.UUID
    sub_id: uuid.UUID
    scope: Literal["single", "all_for_absence"]
    assignment_id: uuid.UUID | None = None
    coverage_request_shift_id: uuid.UUID | None = None
