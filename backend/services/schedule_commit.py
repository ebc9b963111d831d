from __future__ import annotations

import logging
import uuid
from typing import Iterable, Sequence

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.schedule_entry import ScheduleEntry
from solver.errors import PersistenceError
from solver.types import PlacedEntry


logger = logging.getLogger(__name__)


def replace_schedule(
    db: Session,
    *,
    semester: str,
    entries: Iterable[PlacedEntry],
    activity_ids: Sequence[uuid.UUID] | None = None,
) -> int:
    """Swap stored entries for newly solved ones in one transaction.

    Full generation (`activity_ids is None`) clears the whole semester; a partial
    regeneration clears only the entries of `activity_ids`. Returns the number of rows
    inserted.
    """
    entries = list(entries)
    q = delete(ScheduleEntry).where(ScheduleEntry.semester == semester)
    if activity_ids is not None:
        q = q.where(ScheduleEntry.activity_id.in_(list(activity_ids)))

    try:
        removed = db.execute(q).rowcount or 0
        db.add_all(
            [
                ScheduleEntry(
                    activity_id=e.activity_id,
                    room_id=e.room_id,
                    reserved_timeslot_ids=[str(t) for t in e.timeslot_ids],
                    total_duration=e.total_duration,
                    student_group_id=e.student_group_id,
                    created_by=e.created_by,
                    semester=semester,
                )
                for e in entries
            ]
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to store schedule for semester %s", semester)
        raise PersistenceError(
            f"Failed to store schedule for semester {semester}",
            details={"semester": semester, "entries": len(entries)},
        ) from exc

    logger.info("Stored %d schedule entries for %s (replaced %d)", len(entries), semester, removed)
    return len(entries)
