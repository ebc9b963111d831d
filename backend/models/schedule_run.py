from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Enum, Integer, JSON, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


RUN_STATUS = Enum(
    "RUNNING",
    "COMPLETED",
    "VALIDATION_FAILED",
    "INFEASIBLE",
    "ERROR",
    "TIMEOUT",
    name="schedule_run_status",
)

RUN_SCOPE = Enum(
    "FULL",
    "PARTIAL",
    name="schedule_run_scope",
)


class ScheduleRun(Base):
    __tablename__ = "schedule_runs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    semester = Column(Text, nullable=False, index=True)
    scope = Column(RUN_SCOPE, nullable=False, default="FULL")
    status = Column(RUN_STATUS, nullable=False, default="RUNNING")
    seed = Column(Integer, nullable=True)
    # Activity id subset for PARTIAL runs, plus the solver options in effect.
    parameters = Column(JSON, nullable=False, default=dict)
    attempts = Column(Integer, nullable=False, default=0)
    entries_written = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    finished_at = Column(DateTime(timezone=True), nullable=True)
