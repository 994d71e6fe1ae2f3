from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.teacher_schedule import TeacherSchedule


@dataclass(frozen=True)
class CellRef:
    classroom_id: Any
    day_of_week_id: Any
    time_slot_id: Any

    @property
    def key(self) -> tuple[Any, Any, Any]:
        return (self.classroom_id, self.day_of_week_id, self.time_slot_id)

    def describe(self, names: dict[Any, str] | None = None) -> str:
        names = names or {}
        parts = [names.get(v, str(v)) for v in self.key]
        return " / ".join(parts)


@dataclass(frozen=True)
class AssignmentRow:
    id: Any
    teacher_id: Any
    classroom_id: Any
    day_of_week_id: Any
    time_slot_id: Any
    is_floater: bool

    @property
    def cell(self) -> CellRef:
        return CellRef(self.classroom_id, self.day_of_week_id, self.time_slot_id)

    @classmethod
    def from_model(cls, row: TeacherSchedule) -> "AssignmentRow":
        return cls(
            id=row.id,
            teacher_id=row.teacher_id,
            classroom_id=row.classroom_id,
            day_of_week_id=row.day_of_week_id,
            time_slot_id=row.time_slot_id,
            is_floater=bool(row.is_floater),
        )


class AssignmentSnapshot:
    """Teacher assignments read once and shared by every cell of a batch."""

    def __init__(self, rows: Iterable[AssignmentRow]) -> None:
        self.rows = list(rows)
        self._by_cell: dict[tuple, list[AssignmentRow]] = defaultdict(list)
        self._by_slot: dict[tuple, list[AssignmentRow]] = defaultdict(list)
        for r in self.rows:
            self._by_cell[r.cell.key].append(r)
            self._by_slot[(r.teacher_id, r.day_of_week_id, r.time_slot_id)].append(r)

    def for_cell(self, cell: CellRef) -> list[AssignmentRow]:
        return list(self._by_cell.get(cell.key, []))

    def for_teacher_slot(self, teacher_id: Any, day_of_week_id: Any, time_slot_id: Any) -> list[AssignmentRow]:
        return list(self._by_slot.get((teacher_id, day_of_week_id, time_slot_id), []))


def load_snapshot(
    db: Session,
    *,
    day_of_week_ids: Iterable[Any] | None = None,
    time_slot_ids: Iterable[Any] | None = None,
) -> AssignmentSnapshot:
    q = select(TeacherSchedule)
    if day_of_week_ids is not None:
        q = q.where(TeacherSchedule.day_of_week_id.in_(list(day_of_week_ids)))
    if time_slot_ids is not None:
        q = q.where(TeacherSchedule.time_slot_id.in_(list(time_slot_ids)))
    return AssignmentSnapshot(AssignmentRow.from_model(r) for r in db.execute(q).scalars().all())
