from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.config import settings
from models.teacher_schedule import TeacherSchedule


logger = logging.getLogger(__name__)


CellKey = tuple[Any, Any, Any]  # (classroom_id, day_of_week_id, time_slot_id)


@dataclass(frozen=True)
class RosterEntry:
    assignment_id: Any
    teacher_id: Any
    is_floater: bool


@dataclass
class _Cached:
    roster: list[RosterEntry]
    seen_at: float


class RosterCache:
    """Per-session cache of cell rosters keyed by (classroom, day, time slot).

    Owned by whoever runs an edit session (one batch apply, one request);
    never shared through module state. Entries are dropped by ``invalidate``
    once a write to that cell succeeds.
    """

    def __init__(
        self,
        loader: Callable[[CellKey], list[RosterEntry]],
        *,
        refetch_delay: float | None = None,
        stale_grace: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._loader = loader
        self._delay = settings.refetch_delay_seconds if refetch_delay is None else refetch_delay
        self._grace = settings.stale_roster_grace_seconds if stale_grace is None else stale_grace
        self._clock = clock
        self._sleep = sleep
        self._entries: dict[Hashable, _Cached] = {}
        # Last time a non-empty roster was observed per key; survives invalidate.
        self._last_non_empty: dict[Hashable, tuple[float, list[RosterEntry]]] = {}

    def __contains__(self, key: CellKey) -> bool:
        return key in self._entries

    def put(self, key: CellKey, roster: list[RosterEntry]) -> None:
        now = self._clock()
        self._entries[key] = _Cached(roster=list(roster), seen_at=now)
        if roster:
            self._last_non_empty[key] = (now, list(roster))

    def get(self, key: CellKey) -> list[RosterEntry]:
        cached = self._entries.get(key)
        if cached is not None:
            return list(cached.roster)
        roster = self._loader(key)
        self.put(key, roster)
        return list(roster)

    def invalidate(self, key: CellKey, *, saved_empty: bool = False) -> None:
        self._entries.pop(key, None)
        if saved_empty:
            # The write itself emptied the roster; an empty re-read is expected.
            self._last_non_empty.pop(key, None)

    def record_saved(self, key: CellKey, roster: list[RosterEntry]) -> None:
        """Remember the roster a successful write produced without caching it.

        A lagging empty re-read inside the grace window falls back to this
        roster instead of the pre-save one.
        """

        if roster:
            self._last_non_empty[key] = (self._clock(), list(roster))

    def clear(self) -> None:
        self._entries.clear()

    def refetch(self, key: CellKey) -> list[RosterEntry]:
        """Re-read a cell after a save.

        Waits the configured delay first. An empty result is not trusted when
        a non-empty roster was seen within the grace window; the previous
        roster is returned and the key stays uncached so the next read hits
        the store again.
        """

        return self.refetch_many([key])[key]

    def refetch_many(self, keys: list[CellKey]) -> dict[CellKey, list[RosterEntry]]:
        """``refetch`` for several cells, paying the delay once."""

        for key in keys:
            self.invalidate(key)
        if keys and self._delay > 0:
            self._sleep(self._delay)
        return {key: self._reread(key) for key in keys}

    def _reread(self, key: CellKey) -> list[RosterEntry]:
        roster = self._loader(key)
        if not roster:
            previous = self._last_non_empty.get(key)
            if previous is not None and self._clock() - previous[0] <= self._grace:
                logger.info("Empty roster re-read for %s inside grace window; keeping previous", key)
                return list(previous[1])
        self.put(key, roster)
        return list(roster)


def sql_roster_loader(db: Session) -> Callable[[CellKey], list[RosterEntry]]:
    def load(key: CellKey) -> list[RosterEntry]:
        classroom_id, day_of_week_id, time_slot_id = key
        rows = (
            db.execute(
                select(TeacherSchedule)
                .where(TeacherSchedule.classroom_id == classroom_id)
                .where(TeacherSchedule.day_of_week_id == day_of_week_id)
                .where(TeacherSchedule.time_slot_id == time_slot_id)
            )
            .scalars()
            .all()
        )
        return [RosterEntry(assignment_id=r.id, teacher_id=r.teacher_id, is_floater=bool(r.is_floater)) for r in rows]

    return load
