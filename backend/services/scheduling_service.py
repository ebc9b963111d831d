from __future__ import annotations

import logging
import random
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from sqlalchemy.orm import Session

from core.config import settings
from services.schedule_commit import replace_schedule
from services.schedule_store import (
    fetch_grouped_schedule,
    load_activities,
    load_fixed_entries,
    load_rooms,
    load_timeslots,
)
from solver.errors import InfeasibleError, ValidationError
from solver.expander import expand_sessions
from solver.retry import SolveOptions, solve_with_retries
from solver.types import Session as SolverSession


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

_PROGRESS_LOADED = 5
_PROGRESS_EXPANDED = 10
_PROGRESS_RESOURCES = 20
_PROGRESS_SEARCH = 30
_PROGRESS_PER_ATTEMPT = 2
_PROGRESS_CEILING = 95


@dataclass
class ScheduleOutcome:
    grouped: dict[str, dict[str, Any]]
    attempts: int
    entries_written: int


def _report(progress: ProgressCallback | None, value: int) -> None:
    if progress is not None:
        progress(min(int(value), _PROGRESS_CEILING))


def _attempt_reporter(progress: ProgressCallback | None) -> Callable[[int], None]:
    def on_attempt(attempt: int) -> None:
        _report(progress, _PROGRESS_SEARCH + _PROGRESS_PER_ATTEMPT * attempt)

    return on_attempt


def _warn_capped(sessions: Sequence[SolverSession], session_cap: int) -> None:
    per_activity = Counter(s.activity_id for s in sessions)
    for activity_id, count in per_activity.items():
        if count > session_cap:
            logger.warning(
                "Activity %s expands to %d sessions but only %d will be placed (session cap)",
                activity_id,
                count,
                session_cap,
            )


def generate_schedule(
    db: Session,
    *,
    semester: str,
    actor_id: str | None,
    options: SolveOptions | None = None,
    rng: random.Random | None = None,
    progress: ProgressCallback | None = None,
) -> ScheduleOutcome:
    """Solve and store the full schedule of a semester, replacing any previous one."""
    options = options or SolveOptions.from_settings(settings)
    rng = rng or random.Random()

    activities = load_activities(db, semester=semester)
    _report(progress, _PROGRESS_LOADED)
    if not activities:
        raise InfeasibleError(f"No activities found for semester {semester}", details={"semester": semester})

    sessions = expand_sessions(activities)
    _warn_capped(sessions, options.session_cap)
    _report(progress, _PROGRESS_EXPANDED)

    rooms = load_rooms(db)
    timeslots = load_timeslots(db)
    _report(progress, _PROGRESS_RESOURCES)
    logger.info(
        "Generating %s: %d activities, %d sessions, %d rooms, %d timeslots",
        semester,
        len(activities),
        len(sessions),
        len(rooms),
        len(timeslots),
    )

    _report(progress, _PROGRESS_SEARCH)
    result = solve_with_retries(
        sessions,
        rooms,
        timeslots,
        options=options,
        rng=rng,
        created_by=actor_id,
        on_attempt=_attempt_reporter(progress),
    )

    written = replace_schedule(db, semester=semester, entries=result.entries)
    return ScheduleOutcome(
        grouped=fetch_grouped_schedule(db, semester=semester),
        attempts=result.attempts,
        entries_written=written,
    )


def regenerate_schedule(
    db: Session,
    *,
    semester: str,
    activity_ids: Sequence[uuid.UUID],
    actor_id: str | None,
    options: SolveOptions | None = None,
    rng: random.Random | None = None,
    progress: ProgressCallback | None = None,
) -> ScheduleOutcome:
    """Re-place only `activity_ids`; every other stored entry of the semester stays put.

    The untouched entries seed the constraint state, so the new placements never collide
    with them.
    """
    if not activity_ids:
        raise ValidationError("At least one activity id is required for regeneration")
    options = options or SolveOptions.from_settings(settings, reschedule=True)
    rng = rng or random.Random()
    activity_ids = list(dict.fromkeys(activity_ids))

    activities = load_activities(db, semester=semester, activity_ids=activity_ids)
    _report(progress, _PROGRESS_LOADED)

    sessions = expand_sessions(activities)
    _warn_capped(sessions, options.session_cap)
    _report(progress, _PROGRESS_EXPANDED)

    rooms = load_rooms(db)
    timeslots = load_timeslots(db)
    fixed = load_fixed_entries(db, semester=semester, exclude_activity_ids=activity_ids)
    _report(progress, _PROGRESS_RESOURCES)
    logger.info(
        "Regenerating %d activities of %s around %d fixed entries",
        len(activities),
        semester,
        len(fixed),
    )

    _report(progress, _PROGRESS_SEARCH)
    result = solve_with_retries(
        sessions,
        rooms,
        timeslots,
        options=options,
        rng=rng,
        fixed_entries=fixed,
        created_by=actor_id,
        on_attempt=_attempt_reporter(progress),
    )

    written = replace_schedule(db, semester=semester, entries=result.entries, activity_ids=activity_ids)
    return ScheduleOutcome(
        grouped=fetch_grouped_schedule(db, semester=semester),
        attempts=result.attempts,
        entries_written=written,
    )
