from __future__ import annotations

import calendar
import logging

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

import models  # noqa: F401  (registers every table on Base.metadata)
from core.database import ENGINE
from models.base import Base
from models.day_of_week import DayOfWeek


logger = logging.getLogger(__name__)


def seed_days_of_week(db: Session) -> None:
    # Keep this idempotent: safe across deploys.
    existing = {int(n) for n in db.execute(select(DayOfWeek.day_number)).scalars().all()}
    added = 0
    for index, name in enumerate(calendar.day_name):
        day_number = index + 1
        if day_number in existing:
            continue
        db.add(DayOfWeek(name=name, day_number=day_number))
        added += 1
    if added:
        db.commit()
        logger.info("Seeded %d days_of_week rows", added)


def init_db(engine: Engine | None = None) -> None:
    engine = engine or ENGINE
    Base.metadata.create_all(engine)
    with Session(engine) as db:
        seed_days_of_week(db)
