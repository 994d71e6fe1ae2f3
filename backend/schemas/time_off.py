from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel, Field


class TimeOffShiftIn(BaseModel):
    date: dt.date
    time_slot_id: uuid.UUID
    is_partial: bool = False


class TimeOffCreate(BaseModel):
    teacher_id: uuid.UUID
    start_date: dt.date
    end_date: dt.date | None = None
    reason: str | None = None
    notes: str | None = None
    status: str = "active"
    shifts: list[TimeOffShiftIn] = Field(default_factory=list)


class TimeOffShiftOut(BaseModel):
    id: uuid.UUID
    date: dt.date
    day_of_week_id: uuid.UUID | None = None
    time_slot_id: uuid.UUID
    is_partial: bool

    class Config:
        from_attributes = True


class TimeOffOut(BaseModel):
    id: uuid.UUID
    teacher_id: uuid.UUID
    start_date: dt.date
    end_date: dt.date | None = None
    reason: str | None = None
    notes: str | None = None
    status: str
    coverage_request_id: uuid.UUID | None = None
    created_at: dt.datetime

    class Config:
        from_attributes = True
