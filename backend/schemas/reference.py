from __future__ import annotations

import datetime as dt
import uuid
from datetime import datetime, time

from pydantic import BaseModel, Field


class ClassroomBase(BaseModel):
    name: str = Field(min_length=1)
    capacity: int | None = Field(default=None, ge=0)
    display_order: int = 0
    is_active: bool = True


class ClassroomCreate(ClassroomBase):
    pass


class ClassroomUpdate(BaseModel):
    name: str | None = None
    capacity: int | None = Field(default=None, ge=0)
    display_order: int | None = None
    is_active: bool | None = None


class ClassroomOut(ClassroomBase):
    id: uuid.UUID
    created_at: datetime

    class Config:
        from_attributes = True


class ClassGroupBase(BaseModel):
    name: str = Field(min_length=1)
    min_age: int | None = Field(default=None, ge=0)
    max_age: int | None = Field(default=None, ge=0)
    required_ratio: int = Field(gt=0)
    preferred_ratio: int | None = Field(default=None, gt=0)
    is_active: bool = True


class ClassGroupCreate(ClassGroupBase):
    pass


class ClassGroupUpdate(BaseModel):
    name: str | None = None
    min_age: int | None = Field(default=None, ge=0)
    max_age: int | None = Field(default=None, ge=0)
    required_ratio: int | None = Field(default=None, gt=0)
    preferred_ratio: int | None = Field(default=None, gt=0)
    is_active: bool | None = None


class ClassGroupOut(ClassGroupBase):
    id: uuid.UUID
    created_at: datetime

    class Config:
        from_attributes = True


class TimeSlotBase(BaseModel):
    code: str = Field(min_length=1)
    name: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    display_order: int = 0
    is_active: bool = True


class TimeSlotCreate(TimeSlotBase):
    pass


class TimeSlotUpdate(BaseModel):
    code: str | None = None
    name: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    display_order: int | None = None
    is_active: bool | None = None


class TimeSlotOut(TimeSlotBase):
    id: uuid.UUID
    created_at: datetime

    class Config:
        from_attributes = True


class DayOfWeekOut(BaseModel):
    id: uuid.UUID
    name: str
    day_number: int

    class Config:
        from_attributes = True


class StaffBase(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    display_name: str | None = None
    phone: str | None = None
    email: str | None = None
    is_teacher: bool = True
    is_sub: bool = False
    is_flexible: bool = False
    active: bool = True


class StaffCreate(StaffBase):
    pass


class StaffUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    display_name: str | None = None
    phone: str | None = None
    email: str | None = None
    is_teacher: bool | None = None
    is_sub: bool | None = None
    is_flexible: bool | None = None
    active: bool | None = None


class StaffOut(StaffBase):
    id: uuid.UUID
    name: str
    created_at: datetime

    class Config:
        from_attributes = True


class SubAvailabilityIn(BaseModel):
    day_of_week_id: uuid.UUID
    time_slot_id: uuid.UUID
    available: bool = True


class SubAvailabilityExceptionIn(BaseModel):
    date: dt.date
    time_slot_id: uuid.UUID
    available: bool = False


class SubAvailabilityPut(BaseModel):
    """Replaces a sub's weekly availability, date exceptions and class-group qualifications."""

    weekly: list[SubAvailabilityIn] = Field(default_factory=list)
    exceptions: list[SubAvailabilityExceptionIn] = Field(default_factory=list)
    qualified_class_group_ids: list[uuid.UUID] = Field(default_factory=list)
