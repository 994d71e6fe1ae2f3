from __future__ import annotations

import datetime as dt
import uuid
from typing import Literal

from pydantic import BaseModel, Field


class FlexAvailabilityRequest(BaseModel):
    start_date: dt.date
    end_date: dt.date
    time_slot_ids: list[uuid.UUID] = Field(min_length=1)
    classroom_ids: list[uuid.UUID] = Field(default_factory=list)


class FlexShiftIn(BaseModel):
    date: dt.date
    time_slot_id: uuid.UUID
    classroom_id: uuid.UUID


class FlexAssignmentCreate(BaseModel):
    staff_id: uuid.UUID
    start_date: dt.date
    end_date: dt.date
    classroom_ids: list[uuid.UUID] = Field(default_factory=list)
    time_slot_ids: list[uuid.UUID] = Field(default_factory=list)
    day_mode: Literal["this_day_only", "specific_weekdays"] = "this_day_only"
    # this_day_only: optional anchor weekday; specific_weekdays: the weekdays to keep.
    weekdays: list[str] = Field(default_factory=list)
    # Explicit shift list; when given it replaces the range/filter enumeration.
    shifts: list[FlexShiftIn] | None = None
    notes: str | None = None


class FlexAssignmentOut(BaseModel):
    id: uuid.UUID
    staff_id: uuid.UUID
    start_date: dt.date
    end_date: dt.date
    status: str
    notes: str | None = None
    shift_count: int


class FlexRemoveRequest(BaseModel):
    event_id: uuid.UUID
    scope: Literal["single_shift", "weekday", "all_shifts"]
    date: dt.date | None = None
    day_of_week_id: uuid.UUID | None = None
    classroom_id: uuid.UUID | None = None
    time_slot_id: uuid.UUID | None = None


class FlexRemoveOut(BaseModel):
    ok: bool = True
    removed_count: int
    remaining_active_shifts: int
    scope: str
    event_status: str
