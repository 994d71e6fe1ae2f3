from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel, Field


Resolution = Literal["remove_other", "cancel", "mark_floater"]


class CellTeacherIn(BaseModel):
    teacher_id: uuid.UUID
    is_floater: bool = False


class ScheduleCellIn(BaseModel):
    classroom_id: uuid.UUID
    day_of_week_id: uuid.UUID
    time_slot_id: uuid.UUID
    is_active: bool = True
    enrollment_for_staffing: int | None = Field(default=None, ge=0)
    notes: str | None = None
    class_group_ids: list[uuid.UUID] = Field(default_factory=list)
    # None leaves the cell's roster as it is.
    teachers: list[CellTeacherIn] | None = None


class BulkCellUpdate(BaseModel):
    cells: list[ScheduleCellIn] = Field(min_length=1)


class ConflictResolutionIn(BaseModel):
    teacher_id: uuid.UUID
    day_of_week_id: uuid.UUID
    time_slot_id: uuid.UUID
    target_classroom_id: uuid.UUID
    resolution: Resolution


class RosterApplyRequest(BaseModel):
    """One roster edit applied to many cells (single cell, same slot across days,
    or same day across slots)."""

    cells: list[ScheduleCellIn] = Field(min_length=1)
    resolutions: list[ConflictResolutionIn] = Field(default_factory=list)


class ClassGroupRef(BaseModel):
    id: uuid.UUID
    name: str
    min_age: int | None = None
    required_ratio: int
    preferred_ratio: int | None = None

    class Config:
        from_attributes = True


class CellAssignmentOut(BaseModel):
    id: uuid.UUID
    teacher_id: uuid.UUID
    teacher_name: str | None = None
    is_floater: bool


class StaffingStatusOut(BaseModel):
    status: str
    scheduled: float
    required: int | None = None
    preferred: int | None = None
    shortfall: float
    message: str


class ScheduleCellOut(BaseModel):
    id: uuid.UUID | None = None
    classroom_id: uuid.UUID
    day_of_week_id: uuid.UUID
    time_slot_id: uuid.UUID
    is_active: bool
    enrollment_for_staffing: int | None = None
    notes: str | None = None
    class_groups: list[ClassGroupRef] = Field(default_factory=list)
    assignments: list[CellAssignmentOut] = Field(default_factory=list)
    required: int | None = None
    preferred: int | None = None
    ratio_class_group_id: uuid.UUID | None = None
    staffing: StaffingStatusOut | None = None


class BatchStepOut(BaseModel):
    step: str
    status: str
    cell: str | None = None
    teacher: str | None = None
    detail: str | None = None


class RosterApplyOut(BaseModel):
    ok: bool = True
    cells: int
    steps: list[BatchStepOut]
    resolutions: list[dict]
    warnings: list[dict]
    rosters: list[dict]
