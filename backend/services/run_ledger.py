from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.schedule_run import ScheduleRun


_NOTES_MAX = 2000

TERMINAL_STATUSES = frozenset({"COMPLETED", "VALIDATION_FAILED", "INFEASIBLE", "ERROR", "TIMEOUT"})


def _truncate(notes: str | None) -> str | None:
    if notes is None:
        return None
    return notes if len(notes) <= _NOTES_MAX else notes[: _NOTES_MAX - 3] + "..."


def start_run(
    db: Session,
    *,
    run_id: uuid.UUID,
    semester: str,
    scope: str,
    created_by: str | None,
    seed: int | None = None,
    parameters: dict[str, Any] | None = None,
) -> ScheduleRun:
    run = db.get(ScheduleRun, run_id)
    if run is None:
        run = ScheduleRun(id=run_id, semester=semester, scope=scope)
        db.add(run)
    run.status = "RUNNING"
    run.seed = seed
    run.parameters = dict(parameters or {})
    run.created_by = created_by
    db.commit()
    return run


def finish_run(
    db: Session,
    *,
    run_id: uuid.UUID,
    status: str,
    attempts: int | None = None,
    entries_written: int | None = None,
    notes: str | None = None,
    semester: str | None = None,
    scope: str = "FULL",
) -> ScheduleRun | None:
    """Record the outcome of a run.

    A run that already reached a terminal status is left alone so a late worker message
    cannot overwrite a recorded timeout. When the row is missing (the worker died before
    writing it) it is created from `semester`/`scope`.
    """
    run = db.get(ScheduleRun, run_id)
    if run is None:
        if semester is None:
            return None
        run = ScheduleRun(id=run_id, semester=semester, scope=scope, parameters={})
        db.add(run)
    elif run.status in TERMINAL_STATUSES:
        return run

    run.status = status
    if attempts is not None:
        run.attempts = attempts
    if entries_written is not None:
        run.entries_written = entries_written
    run.notes = _truncate(notes)
    run.finished_at = datetime.now(timezone.utc)
    db.commit()
    return run


def list_runs(db: Session, *, semester: str | None = None, limit: int = 50) -> list[ScheduleRun]:
    q = select(ScheduleRun)
    if semester:
        q = q.where(ScheduleRun.semester == semester)
    return list(db.execute(q.order_by(ScheduleRun.created_at.desc()).limit(limit)).scalars().all())
