from __future__ import annotations

from fastapi import APIRouter

from api.routes import (
    class_groups,
    classrooms,
    dashboard,
    flex,
    schedule_cells,
    staff,
    sub_finder,
    teacher_schedules,
    time_off,
    time_slots,
)


api_router = APIRouter()
api_router.include_router(classrooms.router, prefix="/classrooms", tags=["classrooms"])
api_router.include_router(class_groups.router, prefix="/class-groups", tags=["class-groups"])
api_router.include_router(time_slots.router, prefix="/time-slots", tags=["time-slots"])
api_router.include_router(time_slots.days_router, prefix="/days-of-week", tags=["days-of-week"])
api_router.include_router(staff.router, prefix="/staff", tags=["staff"])
api_router.include_router(schedule_cells.router, prefix="/schedule-cells", tags=["schedule-cells"])
api_router.include_router(teacher_schedules.router, prefix="/teacher-schedules", tags=["teacher-schedules"])
api_router.include_router(flex.router, prefix="/staffing-events", tags=["staffing-events"])
api_router.include_router(time_off.router, prefix="/time-off", tags=["time-off"])
api_router.include_router(sub_finder.router, prefix="/sub-finder", tags=["sub-finder"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
