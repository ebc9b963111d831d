from __future__ import annotations

from datetime import datetime
import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class GenerateScheduleRequest(BaseModel):
    semester: str = Field(min_length=1)
    created_by: str | None = None
    seed: int | None = None

    @field_validator("semester")
    @classmethod
    def _strip_semester(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("semester must not be blank")
        return v


class RegenerateScheduleRequest(GenerateScheduleRequest):
    activity_ids: list[uuid.UUID] = Field(min_length=1)


class StartScheduleResponse(BaseModel):
    worker_id: str
    run_id: uuid.UUID
    status: Literal["running"] = "running"


class WorkerStatusResponse(BaseModel):
    worker_id: str
    run_id: uuid.UUID
    status: Literal["running", "completed", "failed"]
    progress: int = Field(ge=0, le=100)
    result: dict[str, Any] | None = None
    error: str | None = None
    error_type: str | None = None


class RunOut(BaseModel):
    id: uuid.UUID
    semester: str
    scope: str
    status: str
    seed: int | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    entries_written: int = 0
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    finished_at: datetime | None = None

    class Config:
        from_attributes = True


class ListRunsResponse(BaseModel):
    runs: list[RunOut]


class RoomOut(BaseModel):
    id: uuid.UUID
    name: str
    capacity: int
    room_type: str
    building: str | None = None

    class Config:
        from_attributes = True


class ActivityOut(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID | None = None
    instructor_id: uuid.UUID | None = None
    student_group_id: uuid.UUID | None = None
    semester: str
    room_requirement: str | None = None
    total_duration: int
    split: int
    created_by: str | None = None

    class Config:
        from_attributes = True


class DeleteScheduleResponse(BaseModel):
    semester: str
    deleted: int
    message: str = "All schedules deleted successfully"
