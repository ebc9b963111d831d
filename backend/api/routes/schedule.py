from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.deps import get_worker_registry
from core.database import get_db
from schemas.schedule import (
    ActivityOut,
    DeleteScheduleResponse,
    GenerateScheduleRequest,
    ListRunsResponse,
    RegenerateScheduleRequest,
    RoomOut,
    RunOut,
    StartScheduleResponse,
    WorkerStatusResponse,
)
from services.run_ledger import list_runs
from services.schedule_store import (
    delete_semester,
    fetch_grouped_schedule,
    free_rooms,
    list_scheduled_activities,
    list_semesters,
)
from workers.registry import WorkerRegistry, record_registry_failure


router = APIRouter()

logger = logging.getLogger(__name__)


def _start(registry: WorkerRegistry, message: dict[str, Any]) -> StartScheduleResponse:
    try:
        handle = registry.start(message)
    except OSError:
        logger.exception("Failed to start schedule worker for %s", message["semester"])
        raise HTTPException(status_code=503, detail="WORKER_START_FAILED")
    return StartScheduleResponse(worker_id=handle.worker_id, run_id=handle.run_id)


@router.post("/generate", response_model=StartScheduleResponse)
def generate(
    payload: GenerateScheduleRequest,
    registry: WorkerRegistry = Depends(get_worker_registry),
    db: Session = Depends(get_db),
) -> StartScheduleResponse:
    for handle in registry.reap_expired():
        record_registry_failure(db, handle)

    message = {
        "run_id": str(uuid.uuid4()),
        "semester": payload.semester,
        "scope": "FULL",
        "activity_ids": [],
        "created_by": payload.created_by,
        "seed": payload.seed,
    }
    return _start(registry, message)


@router.post("/regenerate", response_model=StartScheduleResponse)
def regenerate(
    payload: RegenerateScheduleRequest,
    registry: WorkerRegistry = Depends(get_worker_registry),
    db: Session = Depends(get_db),
) -> StartScheduleResponse:
    for handle in registry.reap_expired():
        record_registry_failure(db, handle)

    message = {
        "run_id": str(uuid.uuid4()),
        "semester": payload.semester,
        "scope": "PARTIAL",
        "activity_ids": [str(a) for a in dict.fromkeys(payload.activity_ids)],
        "created_by": payload.created_by,
        "seed": payload.seed,
    }
    return _start(registry, message)


@router.get("/status/{worker_id}", response_model=WorkerStatusResponse)
def worker_status(
    worker_id: str,
    registry: WorkerRegistry = Depends(get_worker_registry),
    db: Session = Depends(get_db),
) -> WorkerStatusResponse:
    handle = registry.poll(worker_id)
    if handle is None:
        raise HTTPException(status_code=404, detail="WORKER_NOT_FOUND")

    snapshot = WorkerStatusResponse(**handle.snapshot())
    if handle.is_terminal:
        record_registry_failure(db, handle)
        # Terminal states are reported once; later polls get 404.
        registry.remove(worker_id)
    return snapshot


@router.get("/semesters", response_model=list[str])
def semesters(db: Session = Depends(get_db)) -> list[str]:
    return list_semesters(db)


@router.get("/runs", response_model=ListRunsResponse)
def runs(
    semester: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> ListRunsResponse:
    return ListRunsResponse(runs=[RunOut.model_validate(r) for r in list_runs(db, semester=semester, limit=limit)])


@router.get("/{semester}")
def get_schedule(semester: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    grouped = fetch_grouped_schedule(db, semester=semester)
    if not grouped:
        raise HTTPException(status_code=404, detail=f"No schedules found for semester: {semester}")
    return grouped


@router.get("/{semester}/free-rooms", response_model=list[RoomOut])
def get_free_rooms(
    semester: str,
    timeslot_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
) -> list[RoomOut]:
    return free_rooms(db, semester=semester, timeslot_id=timeslot_id)


@router.get("/{semester}/scheduled-activities", response_model=list[ActivityOut])
def get_scheduled_activities(semester: str, db: Session = Depends(get_db)) -> list[ActivityOut]:
    activities = list_scheduled_activities(db, semester=semester)
    if not activities:
        raise HTTPException(status_code=404, detail=f"No scheduled activities found for semester: {semester}")
    return activities


@router.delete("/{semester}", response_model=DeleteScheduleResponse)
def delete_schedule(semester: str, db: Session = Depends(get_db)) -> DeleteScheduleResponse:
    deleted = delete_semester(db, semester=semester)
    logger.info("Deleted %d schedule entries for %s", deleted, semester)
    return DeleteScheduleResponse(semester=semester, deleted=deleted)
