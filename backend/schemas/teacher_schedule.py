from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from schemas.schedule_cell import Resolution


class TeacherScheduleBase(BaseModel):
    teacher_id: uuid.UUID
    classroom_id: uuid.UUID
    day_of_week_id: uuid.UUID
    time_slot_id: uuid.UUID
    is_floater: bool = False


class TeacherScheduleCreate(TeacherScheduleBase):
    pass


class TeacherScheduleUpdate(BaseModel):
    classroom_id: uuid.UUID | None = None
    day_of_week_id: uuid.UUID | None = None
    time_slot_id: uuid.UUID | None = None
    is_floater: bool | None = None


class TeacherScheduleOut(TeacherScheduleBase):
    id: uuid.UUID
    created_at: datetime

    class Config:
        from_attributes = True


class ConflictCheckItem(BaseModel):
    teacher_id: uuid.UUID
    classroom_id: uuid.UUID
    day_of_week_id: uuid.UUID
    time_slot_id: uuid.UUID


class ConflictCheckRequest(BaseModel):
    checks: list[ConflictCheckItem] = Field(min_length=1)


class ConflictOut(BaseModel):
    teacher_id: uuid.UUID
    teacher_name: str | None = None
    day_of_week_id: uuid.UUID
    time_slot_id: uuid.UUID
    target_classroom_id: uuid.UUID
    conflicting_classroom_id: uuid.UUID
    conflicting_classroom_name: str | None = None
    conflicting_assignment_id: uuid.UUID


class ConflictCheckOut(BaseModel):
    conflicts: list[ConflictOut]


class ResolveConflictRequest(BaseModel):
    teacher_id: uuid.UUID
    day_of_week_id: uuid.UUID
    time_slot_id: uuid.UUID
    target_classroom_id: uuid.UUID
    resolution: Resolution


class ResolveConflictOut(BaseModel):
    ok: bool = True
    resolution: Resolution
    teacher_id: uuid.UUID
    created_id: uuid.UUID | None = None
    deleted_ids: list[uuid.UUID] = Field(default_factory=list)
    updated_ids: list[uuid.UUID] = Field(default_factory=list)
