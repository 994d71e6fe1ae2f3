from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterator

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.day_of_week import DayOfWeek


WEEKDAY_NAMES: tuple[str, ...] = tuple(calendar.day_name)


def weekday_name(value: date) -> str:
    return WEEKDAY_NAMES[value.weekday()]


def normalize_weekday(name: str) -> str:
    """Accept 'mon', 'Monday', 'MONDAY' and return 'Monday'."""

    cleaned = (name or "").strip().lower()
    for full in WEEKDAY_NAMES:
        if full.lower() == cleaned or full.lower()[:3] == cleaned:
            return full
    raise ValueError(f"Unknown weekday: {name!r}")


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Every calendar date in [start, end], inclusive."""

    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def shift_key(shift_date: date | str, slot: Any) -> str:
    day = shift_date.isoformat() if isinstance(shift_date, date) else str(shift_date)
    return f"{day}|{slot}"


@dataclass(frozen=True)
class DayLookup:
    id_by_name: dict[str, Any]
    name_by_id: dict[Any, str]
    id_by_number: dict[int, Any]

    def id_for_date(self, value: date) -> Any | None:
        return self.id_by_number.get(value.isoweekday())


def load_day_lookup(db: Session) -> DayLookup:
    rows = db.execute(select(DayOfWeek).order_by(DayOfWeek.day_number.asc())).scalars().all()
    return DayLookup(
        id_by_name={str(r.name): r.id for r in rows},
        name_by_id={r.id: str(r.name) for r in rows},
        id_by_number={int(r.day_number): r.id for r in rows},
    )
