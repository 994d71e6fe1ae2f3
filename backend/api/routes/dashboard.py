from __future__ import annotations

import datetime as dt
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from core.database import get_db
from services.staffing import dashboard_rollup, shift_metrics


router = APIRouter()


@router.get("/staffing")
def get_staffing_rollup(
    day_of_week_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    return dashboard_rollup(db, day_of_week_id=day_of_week_id)


@router.get("/shift-metrics")
def get_shift_metrics(
    start_date: dt.date = Query(...),
    end_date: dt.date = Query(...),
    time_slot_ids: list[uuid.UUID] = Query(...),
    classroom_ids: list[uuid.UUID] = Query(...),
    db: Session = Depends(get_db),
) -> list[dict]:
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="DATE_RANGE_INVERTED")
    dates = [start_date + dt.timedelta(days=i) for i in range((end_date - start_date).days + 1)]
    metrics = shift_metrics(db, dates=dates, time_slot_ids=time_slot_ids, classroom_ids=classroom_ids)
    return [m.to_dict() for m in metrics]
